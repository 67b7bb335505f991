"""
Session domain models.
"""

import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from secure_archive.core.cancellation import CancellationToken
from secure_archive.crypto.secret import SecretPassword
from secure_archive.models.archive import Direction, EncryptionMethod, FileEntry


class SessionState(StrEnum):
    """Lifecycle state of the session controller."""

    IDLE = "idle"
    VALIDATING = "validating"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (SessionState.VALIDATING, SessionState.RUNNING)

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.CANCELLED, SessionState.FAILED)


@dataclass(kw_only=True)
class Session:
    """
    One encrypt or decrypt run, from start command to terminal outcome.

    Mutated only by the session controller and, for `progress`, by the
    active strategy's sink.

    Attributes:
        direction: Encrypt or decrypt.
        method: Encryption method; for decryption it is detected during validation.
        password: Secret password, cleared when the session ends.
        target: Output archive (encrypt) or output directory (decrypt).
        source_paths: Paths selected by the user (encrypt) or the archive (decrypt).
        files: Expanded archive members (encrypt only).
        state: Current lifecycle state.
        progress: Last reported percentage.
        cancel_token: Cooperative cancellation flag.
        session_id: Random identifier used in logs.
    """

    direction: Direction
    method: EncryptionMethod | None
    password: SecretPassword
    target: Path
    source_paths: list[Path]
    files: list[FileEntry] = field(default_factory=list)
    state: SessionState = SessionState.VALIDATING
    progress: int = 0
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])


@dataclass(frozen=True, kw_only=True)
class SessionResult:
    """
    Normal terminal outcome of a session (completed or cancelled).

    Failures are raised as ArchiveEngineError subclasses instead.
    """

    status: SessionState
    direction: Direction
    method: EncryptionMethod | None
    output_path: Path | None
    message: str
    session_id: str | None = None

    @property
    def completed(self) -> bool:
        return self.status is SessionState.COMPLETED

    @property
    def cancelled(self) -> bool:
        return self.status is SessionState.CANCELLED
