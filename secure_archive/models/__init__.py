"""
Domain models for the archive engine.

Value objects are immutable (frozen) dataclasses; Session is the only
mutable record and is owned by the session controller.
"""

from secure_archive.models.archive import (
    Direction,
    EncryptionMethod,
    FileEntry,
    InputEntry,
)
from secure_archive.models.session import Session, SessionResult, SessionState

__all__ = [
    # Archive
    "Direction",
    "EncryptionMethod",
    "FileEntry",
    "InputEntry",
    # Session
    "Session",
    "SessionResult",
    "SessionState",
]
