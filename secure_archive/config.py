"""
Archive engine configuration.
"""

from dataclasses import dataclass
from enum import StrEnum

_KIB = 1024
_GIB = 1024 * 1024 * 1024


class AesBackend(StrEnum):
    """AES-256 ZIP implementation: in-process pyzipper or the external tool."""

    NATIVE = "native"
    EXTERNAL_TOOL = "external_tool"


@dataclass(frozen=True, kw_only=True)
class ArchiveEngineConfig:
    """
    Attributes:
        chunk_size: Bytes read per step when streaming file data. Cancellation
            and progress are checked at this granularity.
        compression_level: DEFLATE level (0-9) for ZIP entries.
        password_length: Length of generated passwords.
        password_symbols: Symbol class used by the password generator.
        max_archive_entries: Refuse to extract archives with more entries.
        max_extracted_size: Refuse to extract archives declaring more bytes.
        aes_backend: pyzipper (native) or external tool for the AES-256 method.
        tool_names: Executable names searched on PATH, in order.
        tool_search_paths: Well-known install locations checked after PATH.
        tool_liveness_timeout: Seconds without tool output before the tool is
            considered hung.
        tool_terminate_timeout: Seconds to wait for a terminated tool before
            killing it.
    """

    chunk_size: int = 64 * _KIB
    compression_level: int = 6
    password_length: int = 16
    password_symbols: str = "!@#$%^&*-_=+?"
    max_archive_entries: int = 10_000
    max_extracted_size: int = 10 * _GIB
    aes_backend: AesBackend = AesBackend.NATIVE
    tool_names: tuple[str, ...] = ("7zz", "7z", "7za")
    tool_search_paths: tuple[str, ...] = (
        "/usr/bin/7z",
        "/usr/local/bin/7z",
        "/usr/local/bin/7zz",
        "/opt/homebrew/bin/7zz",
        "/opt/homebrew/bin/7z",
        r"C:\Program Files\7-Zip\7z.exe",
        r"C:\Program Files (x86)\7-Zip\7z.exe",
    )
    tool_liveness_timeout: float = 300.0
    tool_terminate_timeout: float = 10.0

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            msg = "chunk_size must be positive"
            raise ValueError(msg)
        if not 0 <= self.compression_level <= 9:
            msg = "compression_level must be between 0 and 9"
            raise ValueError(msg)
        if self.password_length <= 0:
            msg = "password_length must be positive"
            raise ValueError(msg)
        if not self.password_symbols:
            msg = "password_symbols must not be empty"
            raise ValueError(msg)
        if self.max_archive_entries <= 0:
            msg = "max_archive_entries must be positive"
            raise ValueError(msg)
        if self.max_extracted_size <= 0:
            msg = "max_extracted_size must be positive"
            raise ValueError(msg)
        if not self.tool_names:
            msg = "tool_names must not be empty"
            raise ValueError(msg)
        if self.tool_liveness_timeout <= 0:
            msg = "tool_liveness_timeout must be positive"
            raise ValueError(msg)
        if self.tool_terminate_timeout <= 0:
            msg = "tool_terminate_timeout must be positive"
            raise ValueError(msg)
