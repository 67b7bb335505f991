"""
Streaming ZIP writer with ZipCrypto entry encryption.

Entries are written sequentially with data descriptors, so the output never
needs to be rewound and memory use is bounded by the chunk size. WinZip AES
archives are written with pyzipper instead, which has no ZipCrypto writer.
"""

import struct
import zlib
from collections.abc import Callable
from dataclasses import dataclass
from typing import BinaryIO, Self

from secure_archive.archive.format import (
    CENTRAL_HEADER,
    CENTRAL_HEADER_SIGNATURE,
    CREATE_SYSTEM_UNIX,
    DATA_DESCRIPTOR,
    DATA_DESCRIPTOR_SIGNATURE,
    DATA_DESCRIPTOR_ZIP64,
    DIRECTORY_MODE,
    END_OF_CENTRAL_DIR,
    END_OF_CENTRAL_DIR_SIGNATURE,
    FILE_MODE,
    FLAG_DATA_DESCRIPTOR,
    FLAG_ENCRYPTED,
    LOCAL_HEADER,
    LOCAL_HEADER_SIGNATURE,
    METHOD_DEFLATED,
    METHOD_STORED,
    MSDOS_DIRECTORY_ATTR,
    VERSION_DEFAULT,
    VERSION_ZIP64,
    ZIP64_END,
    ZIP64_END_SIGNATURE,
    ZIP64_EXTRA_ID,
    ZIP64_LIMIT,
    ZIP64_LOCATOR,
    ZIP64_LOCATOR_SIGNATURE,
    ZIP_FILECOUNT_LIMIT,
    dos_datetime,
    encode_name,
    extra_record,
)
from secure_archive.crypto.zipcrypto import ZipCryptoEncryptor
from secure_archive.exceptions import InvalidInputError

_MAX_32 = 0xFFFFFFFF


@dataclass(frozen=True, kw_only=True)
class _CentralRecord:
    name: bytes
    flags: int
    method: int
    dos_time: int
    dos_date: int
    crc: int
    compressed_size: int
    file_size: int
    offset: int
    external_attr: int
    version: int


class ZipWriter:
    """
    Writes a ZipCrypto protected ZIP archive to a binary file object.

    Example:
        ```python
        with open("out.zip", "wb") as f, ZipWriter(f, password=b"secret") as zf:
            zf.add_directory("docs/", mtime=0)
            with open("report.pdf", "rb") as src:
                zf.add_file("docs/report.pdf", src, size_hint=1024, mtime=0)
        ```

    The central directory is only written when the context exits cleanly, so
    an aborted archive is never mistaken for a complete one.
    """

    def __init__(
        self,
        fileobj: BinaryIO,
        *,
        password: bytes,
        compression_level: int = 6,
    ) -> None:
        """
        Args:
            fileobj: Destination opened for binary writing.
            password: Password bytes file entries are encrypted with.
            compression_level: DEFLATE level; 0 stores entries uncompressed.
        """
        if not password:
            msg = "A password is required for encrypted archives"
            raise ValueError(msg)
        self._fp = fileobj
        self._password = password
        self._level = compression_level
        self._pos = 0
        self._records: list[_CentralRecord] = []
        self._names: set[str] = set()
        self._closed = False

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object
    ) -> None:
        if exc_type is None:
            self.close()

    def add_directory(self, name: str, *, mtime: float) -> None:
        """Add a directory record. Directory records are never encrypted."""
        if not name.endswith("/"):
            name += "/"
        self._claim(name)
        name_bytes, flags = encode_name(name)
        dos_time, dos_date = dos_datetime(mtime)
        offset = self._pos
        self._write(
            LOCAL_HEADER.pack(
                LOCAL_HEADER_SIGNATURE,
                VERSION_DEFAULT,
                flags,
                METHOD_STORED,
                dos_time,
                dos_date,
                0,
                0,
                0,
                len(name_bytes),
                0,
            )
        )
        self._write(name_bytes)
        self._records.append(
            _CentralRecord(
                name=name_bytes,
                flags=flags,
                method=METHOD_STORED,
                dos_time=dos_time,
                dos_date=dos_date,
                crc=0,
                compressed_size=0,
                file_size=0,
                offset=offset,
                external_attr=(DIRECTORY_MODE << 16) | MSDOS_DIRECTORY_ATTR,
                version=VERSION_DEFAULT,
            )
        )

    def add_file(
        self,
        name: str,
        source: BinaryIO,
        *,
        size_hint: int,
        mtime: float,
        mode: int = FILE_MODE,
        chunk_size: int = 64 * 1024,
        on_chunk: Callable[[int], None] | None = None,
    ) -> None:
        """
        Stream one file into the archive.

        Args:
            name: Archive entry name.
            source: File object positioned at the start of the data.
            size_hint: Expected size; decides whether ZIP64 fields are used.
            mtime: Modification timestamp stored in the entry.
            mode: POSIX mode stored in the external attributes.
            chunk_size: Bytes read from `source` per step.
            on_chunk: Called with the number of source bytes after each step.
                It may raise to abort the archive (e.g. on cancellation).

        Raises:
            InvalidInputError: If the name is already used or the file grew
                past the ZIP64 threshold while being read.
        """
        self._claim(name)
        name_bytes, flags = encode_name(name)
        dos_time, dos_date = dos_datetime(mtime)
        zip64 = size_hint * 1.05 > ZIP64_LIMIT
        compression = METHOD_STORED if self._level == 0 else METHOD_DEFLATED
        flags |= FLAG_DATA_DESCRIPTOR | FLAG_ENCRYPTED
        version = VERSION_DEFAULT
        # Data descriptor entries use the DOS time as the check byte source.
        encryptor = ZipCryptoEncryptor(self._password, check_byte=dos_time >> 8)

        local_extra = b""
        size_field = 0
        if zip64:
            version = max(version, VERSION_ZIP64)
            local_extra = extra_record(ZIP64_EXTRA_ID, struct.pack("<QQ", 0, 0))
            size_field = _MAX_32

        offset = self._pos
        self._write(
            LOCAL_HEADER.pack(
                LOCAL_HEADER_SIGNATURE,
                version,
                flags,
                compression,
                dos_time,
                dos_date,
                0,
                size_field,
                size_field,
                len(name_bytes),
                len(local_extra),
            )
        )
        self._write(name_bytes)
        self._write(local_extra)

        data_start = self._pos
        self._write(encryptor.header)
        compressor = (
            zlib.compressobj(self._level, zlib.DEFLATED, -15)
            if compression == METHOD_DEFLATED
            else None
        )
        crc = 0
        file_size = 0
        while chunk := source.read(chunk_size):
            crc = zlib.crc32(chunk, crc)
            file_size += len(chunk)
            self._write_data(compressor.compress(chunk) if compressor else chunk, encryptor)
            if on_chunk is not None:
                on_chunk(len(chunk))
        if compressor is not None:
            self._write_data(compressor.flush(), encryptor)
        self._write(encryptor.finalize())
        compressed_size = self._pos - data_start

        if not zip64 and (file_size > ZIP64_LIMIT or compressed_size > ZIP64_LIMIT):
            msg = f"File grew past the ZIP64 threshold while archiving: {name}"
            raise InvalidInputError(msg)

        if zip64:
            descriptor = DATA_DESCRIPTOR_ZIP64.pack(
                DATA_DESCRIPTOR_SIGNATURE, crc, compressed_size, file_size
            )
        else:
            descriptor = DATA_DESCRIPTOR.pack(
                DATA_DESCRIPTOR_SIGNATURE, crc, compressed_size, file_size
            )
        self._write(descriptor)

        self._records.append(
            _CentralRecord(
                name=name_bytes,
                flags=flags,
                method=compression,
                dos_time=dos_time,
                dos_date=dos_date,
                crc=crc,
                compressed_size=compressed_size,
                file_size=file_size,
                offset=offset,
                external_attr=((mode or FILE_MODE) & 0xFFFF) << 16,
                version=version,
            )
        )

    def close(self) -> None:
        """Write the central directory. Idempotent."""
        if self._closed:
            return
        cd_start = self._pos
        for record in self._records:
            self._write_central_record(record)
        self._write_end_records(cd_start, self._pos - cd_start)
        self._fp.flush()
        self._closed = True

    def _claim(self, name: str) -> None:
        if self._closed:
            msg = "Archive already closed"
            raise ValueError(msg)
        if name in self._names:
            msg = f"Duplicate archive entry: {name}"
            raise InvalidInputError(msg)
        self._names.add(name)

    def _write(self, data: bytes) -> None:
        self._fp.write(data)
        self._pos += len(data)

    def _write_data(self, data: bytes, encryptor: ZipCryptoEncryptor) -> None:
        if data:
            self._write(encryptor.encrypt(data))

    def _write_central_record(self, record: _CentralRecord) -> None:
        file_size, compressed_size, offset = record.file_size, record.compressed_size, record.offset
        zip64_values = []
        if file_size > ZIP64_LIMIT:
            zip64_values.append(file_size)
            file_size = _MAX_32
        if compressed_size > ZIP64_LIMIT:
            zip64_values.append(compressed_size)
            compressed_size = _MAX_32
        if offset > ZIP64_LIMIT:
            zip64_values.append(offset)
            offset = _MAX_32

        version = record.version
        extra = b""
        if zip64_values:
            version = max(version, VERSION_ZIP64)
            extra = extra_record(
                ZIP64_EXTRA_ID, struct.pack(f"<{len(zip64_values)}Q", *zip64_values)
            )

        self._write(
            CENTRAL_HEADER.pack(
                CENTRAL_HEADER_SIGNATURE,
                (CREATE_SYSTEM_UNIX << 8) | version,
                version,
                record.flags,
                record.method,
                record.dos_time,
                record.dos_date,
                record.crc,
                compressed_size,
                file_size,
                len(record.name),
                len(extra),
                0,
                0,
                0,
                record.external_attr,
                offset,
            )
        )
        self._write(record.name)
        self._write(extra)

    def _write_end_records(self, cd_offset: int, cd_size: int) -> None:
        count = len(self._records)
        if count > ZIP_FILECOUNT_LIMIT or cd_offset > ZIP64_LIMIT or cd_size > ZIP64_LIMIT:
            zip64_end_offset = self._pos
            self._write(
                ZIP64_END.pack(
                    ZIP64_END_SIGNATURE,
                    ZIP64_END.size - 12,
                    VERSION_ZIP64,
                    VERSION_ZIP64,
                    0,
                    0,
                    count,
                    count,
                    cd_size,
                    cd_offset,
                )
            )
            self._write(ZIP64_LOCATOR.pack(ZIP64_LOCATOR_SIGNATURE, 0, zip64_end_offset, 1))
            count = min(count, 0xFFFF)
            cd_size = min(cd_size, _MAX_32)
            cd_offset = min(cd_offset, _MAX_32)
        self._write(
            END_OF_CENTRAL_DIR.pack(
                END_OF_CENTRAL_DIR_SIGNATURE, 0, 0, count, count, cd_size, cd_offset, 0
            )
        )
