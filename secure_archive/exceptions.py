"""
Archive engine exception hierarchy.

All exceptions inherit from ArchiveEngineError for easy catching.
"""

from typing import Any


class ArchiveEngineError(Exception):
    """Base exception for all secure_archive errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class PathNotFoundError(ArchiveEngineError):
    """An input path no longer exists."""

    def __init__(self, message: str, *, path: str) -> None:
        super().__init__(message, path=path)
        self.path = path


class SessionBusyError(ArchiveEngineError):
    """Another session is already validating or running."""

    def __init__(self, message: str = "Another archive operation is already in progress") -> None:
        super().__init__(message)


class InvalidInputError(ArchiveEngineError):
    """Empty password, empty selection or otherwise unusable request."""


class ArchiveFormatError(InvalidInputError):
    """Archive is not in a supported format, is corrupted or is unsafe to extract."""


class WrongPasswordError(ArchiveEngineError):
    """Password verification failed while decrypting."""

    def __init__(self, message: str = "Incorrect password", *, entry: str | None = None) -> None:
        if entry is None:
            super().__init__(message)
        else:
            super().__init__(message, entry=entry)
        self.entry = entry


class ToolUnavailableError(ArchiveEngineError):
    """No compatible external archiver could be located."""


class ToolExecutionFailedError(ArchiveEngineError):
    """External archiver exited with an error or stopped responding."""

    def __init__(self, message: str, *, exit_code: int | None, output: str = "") -> None:
        super().__init__(message, exit_code=exit_code)
        self.exit_code = exit_code
        self.output = output


class IoFailureError(ArchiveEngineError):
    """Reading or writing the file system failed (disk full, permission denied...)."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message, path=path)
        self.path = path


class OperationCancelledError(ArchiveEngineError):
    """The running session observed a cancellation request."""

    def __init__(self, message: str = "Operation cancelled by user") -> None:
        super().__init__(message)
