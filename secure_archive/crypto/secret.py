"""Password holder that keeps the secret out of logs and zeroes it after use."""

import ctypes
import hmac
import warnings
from typing import Self


def _secure_zero(data: bytearray) -> None:
    if len(data) == 0:
        return
    try:
        address = ctypes.addressof((ctypes.c_char * len(data)).from_buffer(data))
        ctypes.memset(address, 0, len(data))
    except Exception as exc:
        warnings.warn(f"ctypes.memset failed, using fallback: {exc}", RuntimeWarning)
        for i in range(len(data)):
            data[i] = 0


class SecretPassword:
    """
    UTF-8 encoded password with masked repr and explicit zeroing.

    Use as context manager for guaranteed cleanup. Accessors that return
    `bytes` or `str` create copies the interpreter manages; keep them short-lived.
    """

    __slots__ = ("_data", "_cleared")

    def __init__(self, data: bytes | bytearray) -> None:
        self._data = bytearray(data)
        self._cleared = False

    @classmethod
    def from_string(cls, password: str) -> Self:
        """Create from a string. Zeros the intermediate bytearray."""
        encoded = bytearray(password, "utf-8")
        try:
            return cls(encoded)
        finally:
            _secure_zero(encoded)

    def __del__(self) -> None:
        self.clear()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *_: object) -> None:
        self.clear()

    def clear(self) -> None:
        """Zero memory. Idempotent."""
        if self._cleared:
            return
        _secure_zero(self._data)
        self._cleared = True

    @property
    def is_cleared(self) -> bool:
        return self._cleared

    def encode(self) -> bytes:
        """Password bytes. Warning: creates an insecure copy."""
        self._check_cleared()
        return bytes(self._data)

    def reveal(self) -> str:
        """Password text, e.g. for a command line. Warning: not securely managed."""
        self._check_cleared()
        return self._data.decode("utf-8")

    def __len__(self) -> int:
        return len(self._data)

    def __bool__(self) -> bool:
        return not self._cleared and len(self._data) > 0

    def __repr__(self) -> str:
        if self._cleared:
            return "SecretPassword(<cleared>)"
        return "SecretPassword(***)"

    __str__ = __repr__

    def __eq__(self, other: object) -> bool:
        """Constant-time comparison."""
        if not isinstance(other, SecretPassword):
            return NotImplemented
        if self._cleared or other._cleared:
            return False
        return hmac.compare_digest(self._data, other._data)

    def __hash__(self) -> int:
        raise TypeError("SecretPassword is not hashable")

    def _check_cleared(self) -> None:
        if self._cleared:
            raise RuntimeError("SecretPassword has been cleared")
