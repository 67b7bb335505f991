import gc

import pytest

from secure_archive.crypto.secret import SecretPassword, _secure_zero


def test_from_string_encodes_utf8() -> None:
    password = SecretPassword.from_string("pässword")

    assert password.encode() == "pässword".encode()
    assert password.reveal() == "pässword"
    assert len(password) == len("pässword".encode())
    password.clear()


def test_repr_never_shows_secret() -> None:
    password = SecretPassword.from_string("hunter2")

    assert "hunter2" not in repr(password)
    assert "hunter2" not in str(password)
    assert repr(password) == "SecretPassword(***)"


def test_clear_zeros_data_and_is_idempotent() -> None:
    password = SecretPassword(b"secret")
    password.clear()
    password.clear()

    assert password.is_cleared
    assert password._data == bytearray(6)
    assert repr(password) == "SecretPassword(<cleared>)"
    assert not password


def test_access_after_clear_raises() -> None:
    password = SecretPassword(b"secret")
    password.clear()

    with pytest.raises(RuntimeError, match="cleared"):
        password.encode()
    with pytest.raises(RuntimeError, match="cleared"):
        password.reveal()


def test_context_manager_clears_on_exit() -> None:
    with SecretPassword(b"secret") as password:
        assert password
    assert password.is_cleared


def test_destructor_clears_data() -> None:
    password = SecretPassword(b"secret")
    data_reference = password._data

    del password
    gc.collect()

    assert all(byte == 0 for byte in data_reference)


def test_equality_is_by_content() -> None:
    assert SecretPassword(b"abc") == SecretPassword(b"abc")
    assert SecretPassword(b"abc") != SecretPassword(b"abd")
    assert SecretPassword(b"abc") != "abc"


def test_not_hashable() -> None:
    with pytest.raises(TypeError):
        hash(SecretPassword(b"abc"))


def test_secure_zero_handles_empty_buffer() -> None:
    data = bytearray()
    _secure_zero(data)

    assert data == bytearray()
