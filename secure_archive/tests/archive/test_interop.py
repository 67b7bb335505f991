"""Archives written natively must open in standard tools, and vice versa."""

import io
import zipfile
import zlib

import pytest
import pyzipper

from secure_archive.archive.reader import ZipReader
from secure_archive.archive.writer import ZipWriter
from secure_archive.exceptions import WrongPasswordError

MTIME = 1_700_000_000.0
MEMBERS = {"a.txt": b"hello", "b/c.txt": b"world" * 5000}


def write_zipcrypto(password: bytes) -> bytes:
    buffer = io.BytesIO()
    with ZipWriter(buffer, password=password) as zf:
        zf.add_directory("b/", mtime=MTIME)
        for name, data in MEMBERS.items():
            zf.add_file(name, io.BytesIO(data), size_hint=len(data), mtime=MTIME)
    return buffer.getvalue()


def test_stdlib_zipfile_reads_zipcrypto_archive() -> None:
    archive = write_zipcrypto(b"Tr0ub4dor&3")

    with zipfile.ZipFile(io.BytesIO(archive)) as zf:
        zf.setpassword(b"Tr0ub4dor&3")
        assert zf.namelist() == ["b/", "a.txt", "b/c.txt"]
        for name, data in MEMBERS.items():
            assert zf.read(name) == data
        assert zf.testzip() is None


def test_stdlib_zipfile_rejects_wrong_zipcrypto_password() -> None:
    archive = write_zipcrypto(b"Tr0ub4dor&3")

    with zipfile.ZipFile(io.BytesIO(archive)) as zf:
        with pytest.raises((RuntimeError, zipfile.BadZipFile, zlib.error)):
            zf.read("b/c.txt", pwd=b"wrong")


def test_pyzipper_reads_zipcrypto_archive() -> None:
    archive = write_zipcrypto(b"s3cret")

    with pyzipper.AESZipFile(io.BytesIO(archive)) as zf:
        zf.setpassword(b"s3cret")
        for name, data in MEMBERS.items():
            assert zf.read(name) == data


def test_reader_opens_pyzipper_aes_archive() -> None:
    buffer = io.BytesIO()
    with pyzipper.AESZipFile(
        buffer, "w", compression=pyzipper.ZIP_DEFLATED, encryption=pyzipper.WZ_AES
    ) as zf:
        zf.setpassword(b"s3cret")
        for name, data in MEMBERS.items():
            zf.writestr(name, data)

    extracted = {}
    with ZipReader(io.BytesIO(buffer.getvalue())) as reader:
        for info in reader.entries:
            out = io.BytesIO()
            reader.extract(info, b"s3cret", out)
            extracted[info.filename] = out.getvalue()

        with pytest.raises(WrongPasswordError):
            reader.extract(reader.entries[0], b"nope", io.BytesIO())

    assert extracted == MEMBERS


def test_reader_opens_stdlib_unencrypted_archive() -> None:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, data in MEMBERS.items():
            zf.writestr(name, data)

    out = io.BytesIO()
    with ZipReader(io.BytesIO(buffer.getvalue())) as reader:
        reader.extract(reader.entries[1], b"", out)

    assert out.getvalue() == MEMBERS["b/c.txt"]
