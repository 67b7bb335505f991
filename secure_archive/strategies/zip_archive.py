"""
ZIP-based encryption methods.

AES-256 archives are written with pyzipper, ZipCrypto archives with the
native streaming writer. Both are read back through pyzipper. AES-256 can
alternatively be delegated to the external tool.
"""

import os
from collections.abc import Callable, Sequence
from pathlib import Path

import pyzipper
import structlog

from secure_archive.archive.reader import ZipReader
from secure_archive.archive.writer import ZipWriter
from secure_archive.config import AesBackend, ArchiveEngineConfig
from secure_archive.core.cancellation import CancellationToken
from secure_archive.core.progress import ProgressSink, ProgressTracker
from secure_archive.crypto.secret import SecretPassword
from secure_archive.exceptions import InvalidInputError
from secure_archive.models.archive import EncryptionMethod, FileEntry
from secure_archive.strategies.staging import (
    atomic_output,
    check_extraction_limits,
    member_parts,
    staging_directory,
)
from secure_archive.strategies.tool_archiver import ToolArchiver
from secure_archive.tools.external_tool import ExternalToolAdapter

logger = structlog.get_logger(__name__)

ChunkCallback = Callable[[int], None]


class NativeZipStrategy:
    """
    Streams members into a password protected ZIP container.

    Subclasses write the container through `_write_members`. Decryption reads
    either cipher, whatever the subclass, since each entry declares its own.
    """

    method: EncryptionMethod

    def __init__(self, config: ArchiveEngineConfig | None = None) -> None:
        self._config = config or ArchiveEngineConfig()

    def encrypt(
        self,
        files: Sequence[FileEntry],
        password: SecretPassword,
        output_path: Path,
        progress: ProgressSink,
        cancel: CancellationToken,
    ) -> None:
        tracker = ProgressTracker(sum(f.size for f in files if not f.is_directory), progress)
        tracker.start()

        def on_chunk(n: int) -> None:
            cancel.raise_if_cancelled()
            tracker.advance(n)

        with atomic_output(output_path) as partial:
            self._write_members(partial, files, password.encode(), on_chunk, cancel)
        tracker.complete()
        logger.info(
            "Archive written",
            path=str(output_path),
            method=self.method,
            members=len(files),
            bytes=tracker.processed,
        )

    def decrypt(
        self,
        archive_path: Path,
        password: SecretPassword,
        output_dir: Path,
        progress: ProgressSink,
        cancel: CancellationToken,
    ) -> None:
        with open(archive_path, "rb") as fp, ZipReader(fp) as reader:
            entries = reader.entries
            check_extraction_limits(len(entries), reader.total_file_size, self._config)
            targets = [(info, member_parts(info.filename)) for info in entries]

            tracker = ProgressTracker(reader.total_file_size, progress)
            tracker.start()

            def on_chunk(n: int) -> None:
                cancel.raise_if_cancelled()
                tracker.advance(n)

            secret = password.encode()
            with staging_directory(output_dir) as staging:
                for info, parts in targets:
                    cancel.raise_if_cancelled()
                    dest = staging.joinpath(*parts)
                    if info.is_dir():
                        dest.mkdir(parents=True, exist_ok=True)
                        continue
                    dest.parent.mkdir(parents=True, exist_ok=True)
                    with open(dest, "wb") as out:
                        reader.extract(
                            info,
                            secret,
                            out,
                            chunk_size=self._config.chunk_size,
                            on_chunk=on_chunk,
                        )
        tracker.complete()
        logger.info("Archive extracted", path=str(archive_path), members=len(entries))

    def _write_members(
        self,
        partial: Path,
        files: Sequence[FileEntry],
        secret: bytes,
        on_chunk: ChunkCallback,
        cancel: CancellationToken,
    ) -> None:
        raise NotImplementedError


class Aes256Strategy(NativeZipStrategy):
    """
    WinZip AES-256 (AE-2) ZIP archives, written with pyzipper.

    With `AesBackend.EXTERNAL_TOOL` both directions are delegated to the
    external tool (`7z -tzip -mem=AES256`); the archives are interchangeable.
    """

    method = EncryptionMethod.AES256

    def __init__(
        self,
        config: ArchiveEngineConfig | None = None,
        tool_adapter: ExternalToolAdapter | None = None,
    ) -> None:
        super().__init__(config)
        self._delegate: ToolArchiver | None = None
        if self._config.aes_backend is AesBackend.EXTERNAL_TOOL:
            self._delegate = ToolArchiver(
                tool_adapter or ExternalToolAdapter(self._config),
                self._config,
                archive_type="zip",
                switches=("-mem=AES256",),
            )

    def encrypt(
        self,
        files: Sequence[FileEntry],
        password: SecretPassword,
        output_path: Path,
        progress: ProgressSink,
        cancel: CancellationToken,
    ) -> None:
        if self._delegate is not None:
            self._delegate.encrypt(files, password, output_path, progress, cancel)
            return
        super().encrypt(files, password, output_path, progress, cancel)

    def decrypt(
        self,
        archive_path: Path,
        password: SecretPassword,
        output_dir: Path,
        progress: ProgressSink,
        cancel: CancellationToken,
    ) -> None:
        if self._delegate is not None:
            self._delegate.decrypt(archive_path, password, output_dir, progress, cancel)
            return
        super().decrypt(archive_path, password, output_dir, progress, cancel)

    def _write_members(
        self,
        partial: Path,
        files: Sequence[FileEntry],
        secret: bytes,
        on_chunk: ChunkCallback,
        cancel: CancellationToken,
    ) -> None:
        level = self._config.compression_level
        compression = pyzipper.ZIP_STORED if level == 0 else pyzipper.ZIP_DEFLATED
        with pyzipper.AESZipFile(
            partial,
            "w",
            compression=compression,
            compresslevel=level,
            strict_timestamps=False,
            encryption=pyzipper.WZ_AES,
            encryption_kwargs={"nbits": 256},
        ) as zf:
            zf.setpassword(secret)
            for entry in files:
                cancel.raise_if_cancelled()
                if entry.is_directory:
                    # Directory records carry no data and are never encrypted.
                    zf.write(entry.absolute_path, entry.archive_name)
                    continue
                info = zf.zipinfo_cls.from_file(
                    entry.absolute_path, entry.archive_name, strict_timestamps=False
                )
                info.compress_type = compression
                info._compresslevel = level
                try:
                    with open(entry.absolute_path, "rb") as src, zf.open(info, "w") as dest:
                        while chunk := src.read(self._config.chunk_size):
                            dest.write(chunk)
                            on_chunk(len(chunk))
                except RuntimeError as exc:
                    # Raised when the entry is closed and outgrew its ZIP64 decision.
                    name = entry.archive_name
                    msg = f"File grew past the ZIP64 threshold while archiving: {name}"
                    raise InvalidInputError(msg) from exc


class CryptoZipStrategy(NativeZipStrategy):
    """Traditional PKWARE (ZipCrypto) archives: weak, but readable everywhere."""

    method = EncryptionMethod.CRYPTO_ZIP

    def _write_members(
        self,
        partial: Path,
        files: Sequence[FileEntry],
        secret: bytes,
        on_chunk: ChunkCallback,
        cancel: CancellationToken,
    ) -> None:
        with open(partial, "wb") as fp, ZipWriter(
            fp, password=secret, compression_level=self._config.compression_level
        ) as zf:
            for entry in files:
                cancel.raise_if_cancelled()
                st = os.stat(entry.absolute_path)
                if entry.is_directory:
                    zf.add_directory(entry.archive_name, mtime=st.st_mtime)
                    continue
                with open(entry.absolute_path, "rb") as src:
                    zf.add_file(
                        entry.archive_name,
                        src,
                        size_hint=entry.size,
                        mtime=st.st_mtime,
                        mode=st.st_mode,
                        chunk_size=self._config.chunk_size,
                        on_chunk=on_chunk,
                    )
