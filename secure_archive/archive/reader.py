"""
ZIP reading on top of pyzipper.

pyzipper checks the password when an entry is opened and the HMAC (WinZip
AES) or CRC (ZipCrypto) once the entry is fully read. Its exceptions are
translated to the engine's errors here.
"""

import zlib
from collections.abc import Callable
from typing import BinaryIO, Self

import pyzipper

from secure_archive.exceptions import (
    ArchiveEngineError,
    ArchiveFormatError,
    WrongPasswordError,
)


def is_aes(info: pyzipper.ZipInfo) -> bool:
    """True for WinZip AES entries (AE-1 or AE-2)."""
    return getattr(info, "wz_aes_version", None) is not None


def _integrity_error(info: pyzipper.ZipInfo, reason: str) -> ArchiveEngineError:
    # On an encrypted entry a verification failure almost always means the
    # password slipped past the short check value.
    if info.is_encrypted:
        msg = f"Incorrect password or corrupted data: {reason}"
        return WrongPasswordError(msg, entry=info.filename)
    return ArchiveFormatError(f"Corrupted entry: {reason}", entry=info.filename)


class ZipReader:
    """
    Reads the central directory of a ZIP archive and extracts entries.

    Entries are decrypted, inflated and verified in a single streaming pass.
    A wrong password is reported before any plaintext is produced, except in
    the rare case where it passes the check value; the caller is responsible
    for discarding output when `extract` raises.

    Example:
        ```python
        with open("in.zip", "rb") as f, ZipReader(f) as reader:
            for info in reader.entries:
                with open(info.filename, "wb") as out:
                    reader.extract(info, b"secret", out)
        ```
    """

    def __init__(self, fileobj: BinaryIO) -> None:
        """
        Args:
            fileobj: Seekable archive opened for binary reading.

        Raises:
            ArchiveFormatError: If the central directory cannot be parsed.
        """
        try:
            self._zf = pyzipper.AESZipFile(fileobj)
        except (pyzipper.BadZipFile, pyzipper.LargeZipFile, ValueError, EOFError) as exc:
            raise ArchiveFormatError(f"Unreadable ZIP archive: {exc}") from exc

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def close(self) -> None:
        self._zf.close()

    @property
    def entries(self) -> list[pyzipper.ZipInfo]:
        return self._zf.infolist()

    @property
    def total_file_size(self) -> int:
        return sum(info.file_size for info in self._zf.infolist())

    def extract(
        self,
        info: pyzipper.ZipInfo,
        password: bytes,
        dest: BinaryIO,
        *,
        chunk_size: int = 64 * 1024,
        on_chunk: Callable[[int], None] | None = None,
    ) -> None:
        """
        Decrypt, inflate and verify one entry into `dest`.

        Args:
            info: Entry from `entries`.
            password: Password bytes (ignored for unencrypted entries).
            dest: Binary file object receiving the plaintext.
            chunk_size: Plaintext bytes read per step.
            on_chunk: Called with the number of plaintext bytes after each step.
                It may raise to abort the extraction (e.g. on cancellation).

        Raises:
            WrongPasswordError: If the password check or authentication fails.
            ArchiveFormatError: If the entry is malformed or unsupported.
        """
        if info.is_dir():
            return
        try:
            src = self._zf.open(info, pwd=password)
        except RuntimeError as exc:
            raise WrongPasswordError(entry=info.filename) from exc
        except NotImplementedError as exc:
            raise ArchiveFormatError(f"Unsupported entry: {exc}", entry=info.filename) from exc
        except pyzipper.BadZipFile as exc:
            raise ArchiveFormatError(f"Corrupted entry: {exc}", entry=info.filename) from exc

        with src:
            while True:
                try:
                    chunk = src.read(chunk_size)
                except (pyzipper.BadZipFile, zlib.error, EOFError) as exc:
                    raise _integrity_error(info, str(exc)) from exc
                if not chunk:
                    return
                dest.write(chunk)
                if on_chunk is not None:
                    on_chunk(len(chunk))
