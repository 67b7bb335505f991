"""Random password generation."""

import secrets
import string

_CLASSES_WITHOUT_SYMBOLS = (string.ascii_uppercase, string.ascii_lowercase, string.digits)


class PasswordGenerator:
    """
    Generates passwords from upper-case, lower-case, digit and symbol classes.

    Uses the `secrets` CSPRNG exclusively. When the length allows, every class
    contributes at least one character.
    """

    def __init__(self, length: int = 16, symbols: str = "!@#$%^&*-_=+?") -> None:
        """
        Args:
            length: Number of characters per password.
            symbols: Characters of the symbol class.
        """
        if length <= 0:
            msg = "length must be positive"
            raise ValueError(msg)
        if not symbols:
            msg = "symbols must not be empty"
            raise ValueError(msg)
        self._length = length
        self._classes = (*_CLASSES_WITHOUT_SYMBOLS, symbols)
        self._alphabet = "".join(self._classes)
        self._random = secrets.SystemRandom()

    @property
    def length(self) -> int:
        return self._length

    @property
    def character_classes(self) -> tuple[str, ...]:
        return self._classes

    def generate(self) -> str:
        chars = []
        if self._length >= len(self._classes):
            chars = [secrets.choice(cls) for cls in self._classes]
        chars.extend(secrets.choice(self._alphabet) for _ in range(self._length - len(chars)))
        self._random.shuffle(chars)
        return "".join(chars)
