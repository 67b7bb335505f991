"""
ZIP container support.

This module provides:
- A streaming ZipCrypto ZIP writer
- A pyzipper based reader that verifies passwords before releasing plaintext
- Archive format detection
"""

from secure_archive.archive.detect import detect_archive_method
from secure_archive.archive.reader import ZipReader, is_aes
from secure_archive.archive.writer import ZipWriter

__all__ = [
    "ZipReader",
    "ZipWriter",
    "detect_archive_method",
    "is_aes",
]
