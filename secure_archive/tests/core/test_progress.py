import asyncio

import pytest

from secure_archive.core.progress import (
    CallbackProgressSink,
    GatedProgressSink,
    LoopProgressSink,
    NullProgressSink,
    ProgressSink,
    ProgressTracker,
    ScaledProgressSink,
)
from secure_archive.tests.utils.recording_sink import RecordingSink


def test_sinks_satisfy_protocol() -> None:
    assert isinstance(NullProgressSink(), ProgressSink)
    assert isinstance(CallbackProgressSink(lambda p: None), ProgressSink)
    assert isinstance(RecordingSink(), ProgressSink)


def test_callback_sink_forwards_values() -> None:
    received = []
    CallbackProgressSink(received.append).on_progress(42)

    assert received == [42]


def test_tracker_reports_monotonic_percentages_ending_at_100() -> None:
    sink = RecordingSink()
    tracker = ProgressTracker(1000, sink)

    tracker.start()
    for _ in range(10):
        tracker.advance(100)
    tracker.complete()

    assert sink.values == [0, 10, 20, 30, 40, 50, 60, 70, 80, 90, 99, 100]
    assert tracker.processed == 1000


def test_tracker_only_emits_when_percentage_changes() -> None:
    sink = RecordingSink()
    tracker = ProgressTracker(10_000, sink)

    tracker.start()
    for _ in range(50):
        tracker.advance(1)

    assert sink.values == [0]


def test_tracker_holds_back_100_until_complete() -> None:
    sink = RecordingSink()
    tracker = ProgressTracker(10, sink)

    tracker.advance(50)

    assert sink.values == [99]


def test_tracker_with_zero_total_jumps_to_100_on_complete() -> None:
    sink = RecordingSink()
    tracker = ProgressTracker(0, sink)

    tracker.start()
    tracker.advance(0)
    tracker.complete()

    assert sink.values == [0, 100]


def test_scaled_sink_maps_into_band() -> None:
    sink = RecordingSink()
    scaled = ScaledProgressSink(sink, 50, 100)

    for value in (0, 50, 100):
        scaled.on_progress(value)

    assert sink.values == [50, 75, 100]


def test_scaled_sink_rejects_invalid_band() -> None:
    with pytest.raises(ValueError, match="Invalid progress band"):
        ScaledProgressSink(NullProgressSink(), 60, 40)


def test_gated_sink_drops_regressions_and_duplicates() -> None:
    sink = RecordingSink()
    gate = GatedProgressSink(sink)

    for value in (0, 10, 10, 5, 20, 150):
        gate.on_progress(value)

    assert sink.values == [0, 10, 20, 100]
    assert gate.last_percent == 100


def test_gated_sink_drops_ticks_after_close() -> None:
    sink = RecordingSink()
    gate = GatedProgressSink(sink)

    gate.on_progress(10)
    gate.close()
    gate.on_progress(50)

    assert sink.values == [10]


def test_gated_sink_survives_failing_sink() -> None:
    def explode(percent: int) -> None:
        raise RuntimeError("UI went away")

    gate = GatedProgressSink(CallbackProgressSink(explode))

    gate.on_progress(10)

    assert gate.last_percent == 10


@pytest.mark.asyncio
async def test_loop_sink_delivers_on_event_loop_thread() -> None:
    received: list[int] = []
    loop = asyncio.get_running_loop()
    sink = LoopProgressSink(received.append)

    await loop.run_in_executor(None, sink.on_progress, 33)
    await asyncio.sleep(0)

    assert received == [33]
