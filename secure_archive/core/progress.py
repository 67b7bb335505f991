"""
Progress reporting primitives.

Strategies push byte counts into a ProgressTracker, which turns them into
integer percentages and forwards each new value to a ProgressSink. The
presentation layer implements its own sink.
"""

import asyncio
import threading
from collections.abc import Callable
from typing import Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


@runtime_checkable
class ProgressSink(Protocol):
    """Receiver of progress ticks for one session."""

    def on_progress(self, percent: int) -> None:
        """
        Called with a percentage in [0, 100].

        Called from the engine's worker thread, never after the session's
        terminal outcome.
        """
        ...


class NullProgressSink:
    """Sink that discards every tick."""

    def on_progress(self, percent: int) -> None:
        pass


class CallbackProgressSink:
    """Adapts a plain callable to the ProgressSink protocol."""

    def __init__(self, callback: Callable[[int], None]) -> None:
        self._callback = callback

    def on_progress(self, percent: int) -> None:
        self._callback(percent)


class LoopProgressSink:
    """
    Forwards ticks to a callback running on an asyncio event loop.

    Ticks are scheduled with `call_soon_threadsafe`, so they are delivered in
    order and before the session result resolves on that loop.
    """

    def __init__(
        self, callback: Callable[[int], None], loop: asyncio.AbstractEventLoop | None = None
    ) -> None:
        self._callback = callback
        self._loop = loop or asyncio.get_running_loop()

    def on_progress(self, percent: int) -> None:
        self._loop.call_soon_threadsafe(self._callback, percent)


class ScaledProgressSink:
    """Maps a 0-100 stream onto the [start, end] band of another sink."""

    def __init__(self, sink: ProgressSink, start: int, end: int) -> None:
        if not 0 <= start <= end <= 100:
            msg = f"Invalid progress band: {start}-{end}"
            raise ValueError(msg)
        self._sink = sink
        self._start = start
        self._end = end

    def on_progress(self, percent: int) -> None:
        span = self._end - self._start
        self._sink.on_progress(self._start + span * max(0, min(100, percent)) // 100)


class GatedProgressSink:
    """
    Session-scoped sink that enforces monotonic values and can be closed.

    Once closed, ticks are dropped. This guarantees no progress is reported
    after a session reached its terminal state.
    """

    def __init__(self, sink: ProgressSink) -> None:
        self._sink = sink
        self._lock = threading.Lock()
        self._closed = False
        self._last = -1

    @property
    def last_percent(self) -> int:
        return max(self._last, 0)

    def on_progress(self, percent: int) -> None:
        percent = max(0, min(100, percent))
        with self._lock:
            if self._closed or percent <= self._last:
                return
            self._last = percent
            try:
                self._sink.on_progress(percent)
            except Exception:
                logger.exception("Progress sink failed", percent=percent)

    def close(self) -> None:
        with self._lock:
            self._closed = True


class ProgressTracker:
    """
    Converts cumulative byte counts into percentage ticks.

    The total is computed up front by the caller so values never move
    backward and reach 100 exactly on `complete()`.
    """

    def __init__(self, total: int, sink: ProgressSink) -> None:
        """
        Args:
            total: Total number of bytes the operation will process.
            sink: Destination of percentage ticks.
        """
        self._total = max(total, 0)
        self._sink = sink
        self._done = 0
        self._last = -1

    @property
    def processed(self) -> int:
        return self._done

    def start(self) -> None:
        self._emit(0)

    def advance(self, n: int) -> None:
        """Record `n` more processed bytes."""
        self._done += n
        if self._total == 0:
            return
        # Hold back 100 until complete() so a finished run is unambiguous.
        self._emit(min(99, self._done * 100 // self._total))

    def complete(self) -> None:
        self._emit(100)

    def _emit(self, percent: int) -> None:
        if percent <= self._last:
            return
        self._last = percent
        self._sink.on_progress(percent)
