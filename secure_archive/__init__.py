"""
Secure Archive.

An async Python engine that encrypts files and folders into password
protected archives (WinZip AES-256 ZIP, ZipCrypto ZIP or 7z) and decrypts
them back, with progress reporting and cancellation.

Example:
    ```python
    from secure_archive import ArchiveEngine, EncryptionMethod

    async with ArchiveEngine(progress=print) as engine:
        result = await engine.encrypt_files(
            ["docs/"], "docs_aes256.zip", "correct horse", EncryptionMethod.AES256
        )

        # Later
        await engine.decrypt_file("docs_aes256.zip", "restored/", "correct horse")
    ```
"""

from secure_archive.config import AesBackend, ArchiveEngineConfig
from secure_archive.core.progress import (
    CallbackProgressSink,
    LoopProgressSink,
    ProgressSink,
)
from secure_archive.engine import ArchiveEngine
from secure_archive.exceptions import (
    ArchiveEngineError,
    ArchiveFormatError,
    InvalidInputError,
    IoFailureError,
    OperationCancelledError,
    PathNotFoundError,
    SessionBusyError,
    ToolExecutionFailedError,
    ToolUnavailableError,
    WrongPasswordError,
)
from secure_archive.models import (
    Direction,
    EncryptionMethod,
    InputEntry,
    SessionResult,
    SessionState,
)

__version__ = "0.1.0"

__all__ = [
    # Main engine
    "ArchiveEngine",
    "ArchiveEngineConfig",
    "AesBackend",
    # Progress
    "CallbackProgressSink",
    "LoopProgressSink",
    "ProgressSink",
    # Models
    "Direction",
    "EncryptionMethod",
    "InputEntry",
    "SessionResult",
    "SessionState",
    # Exceptions
    "ArchiveEngineError",
    "ArchiveFormatError",
    "InvalidInputError",
    "IoFailureError",
    "OperationCancelledError",
    "PathNotFoundError",
    "SessionBusyError",
    "ToolExecutionFailedError",
    "ToolUnavailableError",
    "WrongPasswordError",
]
