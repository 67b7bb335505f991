import io
import os
import zipfile
import zlib

import pytest

from secure_archive.archive.format import FLAG_UTF8
from secure_archive.archive.reader import ZipReader, is_aes
from secure_archive.archive.writer import ZipWriter
from secure_archive.exceptions import ArchiveFormatError, InvalidInputError, WrongPasswordError

MTIME = 1_700_000_000.0


def build_archive(
    members: dict[str, bytes | None],
    *,
    password: bytes = b"secret",
    compression_level: int = 6,
) -> bytes:
    buffer = io.BytesIO()
    with ZipWriter(buffer, password=password, compression_level=compression_level) as zf:
        for name, data in members.items():
            if data is None:
                zf.add_directory(name, mtime=MTIME)
            else:
                zf.add_file(name, io.BytesIO(data), size_hint=len(data), mtime=MTIME)
    return buffer.getvalue()


def build_plain_archive(members: dict[str, bytes], *, compression: int) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=compression) as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def extract_all(archive: bytes, password: bytes) -> dict[str, bytes]:
    result = {}
    with ZipReader(io.BytesIO(archive)) as reader:
        for info in reader.entries:
            out = io.BytesIO()
            reader.extract(info, password, out)
            result[info.filename] = out.getvalue()
    return result


def test_round_trip_preserves_names_and_contents() -> None:
    payload = os.urandom(200_000)
    archive = build_archive({"a.txt": b"hello", "b/": None, "b/c.bin": payload, "empty.txt": b""})

    extracted = extract_all(archive, b"secret")

    assert extracted == {"a.txt": b"hello", "b/": b"", "b/c.bin": payload, "empty.txt": b""}


def test_zipcrypto_entries_store_crc() -> None:
    archive = build_archive({"a.txt": b"hello"})

    with ZipReader(io.BytesIO(archive)) as reader:
        (info,) = reader.entries

    assert info.is_encrypted
    assert not is_aes(info)
    assert info.CRC == zlib.crc32(b"hello")
    assert info.compress_type == zipfile.ZIP_DEFLATED


def test_directories_are_never_encrypted() -> None:
    archive = build_archive({"docs/": None})

    with ZipReader(io.BytesIO(archive)) as reader:
        (info,) = reader.entries

    assert info.is_dir()
    assert not info.is_encrypted


def test_level_zero_stores_entries() -> None:
    archive = build_archive({"a.txt": b"hello" * 100}, compression_level=0)

    with ZipReader(io.BytesIO(archive)) as reader:
        (info,) = reader.entries

    assert info.compress_type == zipfile.ZIP_STORED
    assert extract_all(archive, b"secret")["a.txt"] == b"hello" * 100


def test_non_ascii_names_set_utf8_flag() -> None:
    archive = build_archive({"résumé.txt": b"cv"})

    with ZipReader(io.BytesIO(archive)) as reader:
        (info,) = reader.entries

    assert info.filename == "résumé.txt"
    assert info.flag_bits & FLAG_UTF8


def test_wrong_password_raises_and_writes_nothing() -> None:
    archive = build_archive({"a.txt": b"hello" * 1000})
    out = io.BytesIO()

    with ZipReader(io.BytesIO(archive)) as reader:
        with pytest.raises(WrongPasswordError) as exc_info:
            reader.extract(reader.entries[0], b"not-the-password", out)

    assert exc_info.value.context["entry"] == "a.txt"
    # Check byte collisions may let a few bytes through; they must never be the plaintext.
    assert b"hello" not in out.getvalue()


def test_tampered_ciphertext_is_detected() -> None:
    archive = bytearray(build_archive({"a.txt": b"hello world, hello world"}, compression_level=0))
    # Last ciphertext byte, just before the data descriptor.
    descriptor = archive.index(b"PK\x07\x08")
    archive[descriptor - 1] ^= 0xFF

    with ZipReader(io.BytesIO(bytes(archive))) as reader:
        with pytest.raises(WrongPasswordError, match="CRC"):
            reader.extract(reader.entries[0], b"secret", io.BytesIO())


def test_unencrypted_archive_is_readable_without_password() -> None:
    archive = build_plain_archive({"a.txt": b"plain"}, compression=zipfile.ZIP_DEFLATED)

    assert extract_all(archive, b"") == {"a.txt": b"plain"}


def test_corrupted_unencrypted_entry_is_a_format_error() -> None:
    plain = build_plain_archive({"a.txt": b"plain text"}, compression=zipfile.ZIP_STORED)
    archive = bytearray(plain)
    archive[archive.index(b"plain text")] ^= 0x01

    with ZipReader(io.BytesIO(bytes(archive))) as reader:
        with pytest.raises(ArchiveFormatError, match="CRC"):
            reader.extract(reader.entries[0], b"", io.BytesIO())


def test_entry_inflating_past_declared_size_is_refused() -> None:
    archive = bytearray(
        build_plain_archive({"a.txt": b"A" * 10_000}, compression=zipfile.ZIP_DEFLATED)
    )
    # Shrink the uncompressed size declared in the central directory.
    central = archive.rindex(b"PK\x01\x02")
    archive[central + 24 : central + 28] = (100).to_bytes(4, "little")
    out = io.BytesIO()

    with ZipReader(io.BytesIO(bytes(archive))) as reader:
        with pytest.raises(ArchiveFormatError, match="Corrupted"):
            reader.extract(reader.entries[0], b"", out)

    assert len(out.getvalue()) <= 100


def test_duplicate_names_are_rejected() -> None:
    with ZipWriter(io.BytesIO(), password=b"x") as zf:
        zf.add_file("a.txt", io.BytesIO(b"1"), size_hint=1, mtime=MTIME)
        with pytest.raises(InvalidInputError, match="Duplicate"):
            zf.add_file("a.txt", io.BytesIO(b"2"), size_hint=1, mtime=MTIME)


def test_writer_requires_password() -> None:
    with pytest.raises(ValueError, match="password"):
        ZipWriter(io.BytesIO(), password=b"")


def test_central_directory_not_written_when_block_fails() -> None:
    buffer = io.BytesIO()
    with pytest.raises(RuntimeError):
        with ZipWriter(buffer, password=b"x") as zf:
            zf.add_file("a.txt", io.BytesIO(b"data"), size_hint=4, mtime=MTIME)
            raise RuntimeError("abort")

    with pytest.raises(ArchiveFormatError):
        ZipReader(io.BytesIO(buffer.getvalue()))


def test_on_chunk_receives_source_byte_counts() -> None:
    counts: list[int] = []
    with ZipWriter(io.BytesIO(), password=b"x") as zf:
        zf.add_file(
            "a.bin",
            io.BytesIO(bytes(2500)),
            size_hint=2500,
            mtime=MTIME,
            chunk_size=1000,
            on_chunk=counts.append,
        )

    assert counts == [1000, 1000, 500]


def test_extract_reports_plaintext_chunks() -> None:
    archive = build_archive({"a.bin": bytes(2500)})
    counts: list[int] = []

    with ZipReader(io.BytesIO(archive)) as reader:
        reader.extract(
            reader.entries[0], b"secret", io.BytesIO(), chunk_size=1000, on_chunk=counts.append
        )

    assert sum(counts) == 2500
    assert max(counts) <= 1000


def test_reader_totals() -> None:
    archive = build_archive({"a.txt": b"12345", "dir/": None, "b.txt": b"678"})

    with ZipReader(io.BytesIO(archive)) as reader:
        assert reader.total_file_size == 8


@pytest.mark.parametrize("data", [b"", b"not a zip at all", b"PK\x05\x06" + bytes(10)])
def test_garbage_is_a_format_error(data: bytes) -> None:
    with pytest.raises(ArchiveFormatError):
        ZipReader(io.BytesIO(data))
