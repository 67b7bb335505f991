"""
Traditional PKWARE ("ZipCrypto") stream cipher, encryption side.

Weak by modern standards but readable by virtually every ZIP tool. Each
entry starts with a 12-byte encrypted header whose last byte is a check byte
that lets readers reject most wrong passwords early. Reading is left to
pyzipper, which has no writer for this cipher.
"""

import os

HEADER_SIZE = 12


def _crc_table() -> tuple[int, ...]:
    table = []
    for i in range(256):
        crc = i
        for _ in range(8):
            crc = (crc >> 1) ^ 0xEDB88320 if crc & 1 else crc >> 1
        table.append(crc)
    return tuple(table)


_CRC_TABLE = _crc_table()


class ZipCryptoEncryptor:
    """
    Encrypts one ZIP entry. Write `header`, then each `encrypt()` result.

    Args:
        password: Password bytes.
        check_byte: Last header byte; the high byte of the CRC, or of the DOS
            time when the entry uses a data descriptor.
    """

    def __init__(self, password: bytes, check_byte: int) -> None:
        self._keys = (0x12345678, 0x23456789, 0x34567890)
        for byte in password:
            self._update(byte)
        self.header = self.encrypt(os.urandom(HEADER_SIZE - 1) + bytes([check_byte & 0xFF]))

    def _update(self, byte: int) -> None:
        k0, k1, k2 = self._keys
        k0 = _CRC_TABLE[(k0 ^ byte) & 0xFF] ^ (k0 >> 8)
        k1 = ((k1 + (k0 & 0xFF)) * 134775813 + 1) & 0xFFFFFFFF
        k2 = _CRC_TABLE[(k2 ^ (k1 >> 24)) & 0xFF] ^ (k2 >> 8)
        self._keys = (k0, k1, k2)

    def encrypt(self, data: bytes) -> bytes:
        # Key update inlined: this runs once per byte.
        k0, k1, k2 = self._keys
        table = _CRC_TABLE
        out = bytearray(len(data))
        for i, plain in enumerate(data):
            t = (k2 | 2) & 0xFFFF
            out[i] = plain ^ (((t * (t ^ 1)) >> 8) & 0xFF)
            k0 = table[(k0 ^ plain) & 0xFF] ^ (k0 >> 8)
            k1 = ((k1 + (k0 & 0xFF)) * 134775813 + 1) & 0xFFFFFFFF
            k2 = table[(k2 ^ (k1 >> 24)) & 0xFF] ^ (k2 >> 8)
        self._keys = (k0, k1, k2)
        return bytes(out)

    def finalize(self) -> bytes:
        return b""
