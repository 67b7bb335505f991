import threading

from secure_archive.exceptions import OperationCancelledError


class CancellationToken:
    """
    Cooperative cancellation flag shared between a session and its worker.

    The owner calls `cancel()`; the worker polls `raise_if_cancelled()` at
    entry and chunk boundaries. Safe to use across threads.

    Example:
        ```python
        token = CancellationToken()

        token.cancel()
        assert token.is_cancelled

        token.raise_if_cancelled()  # raises OperationCancelledError
        ```
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """
        Raises:
            OperationCancelledError: If cancellation was requested.
        """
        if self._event.is_set():
            raise OperationCancelledError()

    def wait(self, timeout: float) -> bool:
        """Block up to `timeout` seconds; return True if cancelled meanwhile."""
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        state = "cancelled" if self.is_cancelled else "active"
        return f"{self.__class__.__name__}({state})"
