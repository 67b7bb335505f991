"""
Encryption strategy protocol.

Defines the interface every archive method implements, so the session
controller can drive them interchangeably.
"""

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from secure_archive.core.cancellation import CancellationToken
from secure_archive.core.progress import ProgressSink
from secure_archive.crypto.secret import SecretPassword
from secure_archive.models.archive import EncryptionMethod, FileEntry


@runtime_checkable
class EncryptionStrategy(Protocol):
    """
    Protocol for archive encryption methods.

    Implementations run on the engine's worker thread. They report progress
    through `progress`, poll `cancel` at entry and chunk boundaries and
    raise ArchiveEngineError subclasses on failure. Neither method leaves
    partial output behind when it raises.
    """

    method: EncryptionMethod

    def encrypt(
        self,
        files: Sequence[FileEntry],
        password: SecretPassword,
        output_path: Path,
        progress: ProgressSink,
        cancel: CancellationToken,
    ) -> None:
        """
        Write `files` into a new encrypted archive at `output_path`.

        Args:
            files: Expanded archive members, in archive order.
            password: Archive password.
            output_path: Destination archive; replaced only on success.
            progress: Receives percentages ending at 100.
            cancel: Cooperative cancellation flag.

        Raises:
            OperationCancelledError: If cancellation was observed.
            ArchiveEngineError: If the archive cannot be produced.
        """
        ...

    def decrypt(
        self,
        archive_path: Path,
        password: SecretPassword,
        output_dir: Path,
        progress: ProgressSink,
        cancel: CancellationToken,
    ) -> None:
        """
        Extract `archive_path` into `output_dir`.

        Nothing is written to `output_dir` unless every entry decrypted and
        verified.

        Raises:
            WrongPasswordError: If password verification fails.
            ArchiveFormatError: If the archive is malformed or unsafe.
            OperationCancelledError: If cancellation was observed.
        """
        ...
