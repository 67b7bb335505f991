"""
7z archives with encrypted headers, produced by the external tool.
"""

from collections.abc import Sequence
from pathlib import Path

from secure_archive.config import ArchiveEngineConfig
from secure_archive.core.cancellation import CancellationToken
from secure_archive.core.progress import ProgressSink
from secure_archive.crypto.secret import SecretPassword
from secure_archive.models.archive import EncryptionMethod, FileEntry
from secure_archive.strategies.tool_archiver import ToolArchiver
from secure_archive.tools.external_tool import ExternalToolAdapter


class SevenZipStrategy:
    """
    AES-256 7z archives with `-mhe=on`, so entry names are encrypted too.

    Raises ToolUnavailableError (with installation guidance) when no 7-Zip
    executable can be located.
    """

    method = EncryptionMethod.SEVEN_ZIP

    def __init__(
        self,
        config: ArchiveEngineConfig | None = None,
        tool_adapter: ExternalToolAdapter | None = None,
    ) -> None:
        config = config or ArchiveEngineConfig()
        self._archiver = ToolArchiver(
            tool_adapter or ExternalToolAdapter(config),
            config,
            archive_type="7z",
            switches=("-mhe=on",),
        )

    def encrypt(
        self,
        files: Sequence[FileEntry],
        password: SecretPassword,
        output_path: Path,
        progress: ProgressSink,
        cancel: CancellationToken,
    ) -> None:
        self._archiver.encrypt(files, password, output_path, progress, cancel)

    def decrypt(
        self,
        archive_path: Path,
        password: SecretPassword,
        output_dir: Path,
        progress: ProgressSink,
        cancel: CancellationToken,
    ) -> None:
        self._archiver.decrypt(archive_path, password, output_dir, progress, cancel)
