"""
Cryptographic building blocks.

This module provides:
- Traditional PKWARE (ZipCrypto) entry encryption
- Password generation
- Secret password handling

WinZip AES entries are encrypted and decrypted through pyzipper.
"""

from secure_archive.crypto.password import PasswordGenerator
from secure_archive.crypto.secret import SecretPassword
from secure_archive.crypto.zipcrypto import ZipCryptoEncryptor

__all__ = [
    "PasswordGenerator",
    "SecretPassword",
    "ZipCryptoEncryptor",
]
