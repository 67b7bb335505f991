"""
ZIP container layout used by the ZipCrypto writer: record signatures, struct
formats and field helpers.
"""

import struct
import time

LOCAL_HEADER_SIGNATURE = 0x04034B50
CENTRAL_HEADER_SIGNATURE = 0x02014B50
END_OF_CENTRAL_DIR_SIGNATURE = 0x06054B50
ZIP64_END_SIGNATURE = 0x06064B50
ZIP64_LOCATOR_SIGNATURE = 0x07064B50
DATA_DESCRIPTOR_SIGNATURE = 0x08074B50

LOCAL_HEADER = struct.Struct("<IHHHHHIIIHH")
CENTRAL_HEADER = struct.Struct("<IHHHHHHIIIHHHHHII")
END_OF_CENTRAL_DIR = struct.Struct("<IHHHHIIH")
ZIP64_END = struct.Struct("<IQHHIIQQQQ")
ZIP64_LOCATOR = struct.Struct("<IIQI")
DATA_DESCRIPTOR = struct.Struct("<IIII")
DATA_DESCRIPTOR_ZIP64 = struct.Struct("<IIQQ")
EXTRA_HEADER = struct.Struct("<HH")

ZIP64_EXTRA_ID = 0x0001

FLAG_ENCRYPTED = 0x0001
FLAG_DATA_DESCRIPTOR = 0x0008
FLAG_UTF8 = 0x0800

METHOD_STORED = 0
METHOD_DEFLATED = 8

VERSION_DEFAULT = 20
VERSION_ZIP64 = 45
CREATE_SYSTEM_UNIX = 3

# Conservative limits, matching the standard library's zipfile.
ZIP64_LIMIT = (1 << 31) - 1
ZIP_FILECOUNT_LIMIT = (1 << 16) - 1

SEVEN_ZIP_SIGNATURE = b"7z\xbc\xaf\x27\x1c"
ZIP_SIGNATURES = (b"PK\x03\x04", b"PK\x05\x06")

DIRECTORY_MODE = 0o40755
FILE_MODE = 0o100644
MSDOS_DIRECTORY_ATTR = 0x10


def dos_datetime(timestamp: float) -> tuple[int, int]:
    """
    Convert a POSIX timestamp to DOS (time, date) fields.

    DOS dates cover 1980-2107; timestamps outside that range are clamped.
    """
    t = time.localtime(timestamp)
    if t.tm_year < 1980:
        return 0, (1 << 5) | 1
    if t.tm_year > 2107:
        return (23 << 11) | (59 << 5) | 29, (127 << 9) | (12 << 5) | 31
    dos_time = (t.tm_hour << 11) | (t.tm_min << 5) | (t.tm_sec // 2)
    dos_date = ((t.tm_year - 1980) << 9) | (t.tm_mon << 5) | t.tm_mday
    return dos_time, dos_date


def encode_name(name: str) -> tuple[bytes, int]:
    """Encode an entry name, returning the bytes and the flag bits it requires."""
    try:
        return name.encode("ascii"), 0
    except UnicodeEncodeError:
        return name.encode("utf-8"), FLAG_UTF8


def extra_record(header_id: int, payload: bytes) -> bytes:
    return EXTRA_HEADER.pack(header_id, len(payload)) + payload
