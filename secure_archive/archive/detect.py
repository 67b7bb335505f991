from pathlib import Path

from secure_archive.archive.format import SEVEN_ZIP_SIGNATURE, ZIP_SIGNATURES
from secure_archive.archive.reader import ZipReader, is_aes
from secure_archive.exceptions import ArchiveFormatError
from secure_archive.models.archive import EncryptionMethod


def detect_archive_method(path: Path) -> EncryptionMethod:
    """
    Identify which method can decrypt an archive from its header bytes.

    ZIP archives are opened far enough to read the central directory, so a
    truncated or corrupted ZIP is rejected here.

    Args:
        path: Archive on disk.

    Returns:
        SEVEN_ZIP for 7z archives, AES256 for ZIPs holding WinZip AES entries,
        CRYPTO_ZIP for any other ZIP.

    Raises:
        ArchiveFormatError: If the file is not a supported archive.
    """
    with path.open("rb") as f:
        magic = f.read(len(SEVEN_ZIP_SIGNATURE))
        if magic == SEVEN_ZIP_SIGNATURE:
            return EncryptionMethod.SEVEN_ZIP
        if magic[:4] not in ZIP_SIGNATURES:
            raise ArchiveFormatError("Unsupported archive format", path=str(path))
        with ZipReader(f) as reader:
            entries = reader.entries
    if any(is_aes(entry) for entry in entries):
        return EncryptionMethod.AES256
    return EncryptionMethod.CRYPTO_ZIP
