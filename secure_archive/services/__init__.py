"""
Orchestration services for the archive engine.
"""

from secure_archive.services.path_expander import PathExpander
from secure_archive.services.session_controller import SessionController

__all__ = [
    "PathExpander",
    "SessionController",
]
