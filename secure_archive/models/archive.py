"""
Archive-related domain models.
"""

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path


class EncryptionMethod(StrEnum):
    """Encryption scheme used for an archive."""

    AES256 = "aes256"
    CRYPTO_ZIP = "crypto_zip"
    SEVEN_ZIP = "seven_zip"

    @property
    def extension(self) -> str:
        """File extension (with dot) of archives produced by this method."""
        match self:
            case self.SEVEN_ZIP:
                return ".7z"
            case _:
                return ".zip"

    @property
    def label(self) -> str:
        """Short user-facing description of the security trade-off."""
        match self:
            case self.AES256:
                return "strong"
            case self.CRYPTO_ZIP:
                return "basic/compatible"
            case _:
                return "strong, hidden file names"


class Direction(StrEnum):
    """Whether a session produces or consumes an archive."""

    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"


@dataclass(frozen=True, kw_only=True)
class InputEntry:
    """
    A user-selected path, classified without recursing into it.

    Attributes:
        path: The path as selected by the user.
        is_directory: Whether the path is a directory.
    """

    path: str
    is_directory: bool


@dataclass(frozen=True, kw_only=True)
class FileEntry:
    """
    A single archive member resolved from the user's selection.

    Attributes:
        absolute_path: Location on disk.
        archive_name: Relative name inside the archive, always '/'-separated.
            Directory records end with '/'.
        size: File size in bytes captured during expansion (0 for directories).
        is_directory: Whether this record describes a directory.
    """

    absolute_path: Path
    archive_name: str
    size: int = 0
    is_directory: bool = False

    def __post_init__(self) -> None:
        if self.is_directory and not self.archive_name.endswith("/"):
            msg = f"Directory archive name must end with '/': {self.archive_name}"
            raise ValueError(msg)
        if self.size < 0:
            msg = f"File size must be non-negative: {self.size}"
            raise ValueError(msg)
