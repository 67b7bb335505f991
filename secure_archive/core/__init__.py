"""
Cross-cutting primitives shared by the controller and the strategies.
"""

from secure_archive.core.cancellation import CancellationToken
from secure_archive.core.progress import (
    CallbackProgressSink,
    GatedProgressSink,
    LoopProgressSink,
    NullProgressSink,
    ProgressSink,
    ProgressTracker,
    ScaledProgressSink,
)

__all__ = [
    "CallbackProgressSink",
    "CancellationToken",
    "GatedProgressSink",
    "LoopProgressSink",
    "NullProgressSink",
    "ProgressSink",
    "ProgressTracker",
    "ScaledProgressSink",
]
