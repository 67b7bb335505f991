"""
Adapter for the external 7-Zip executable.

Locates a compatible binary, runs it with streamed output, turns its
progress lines into percentages and maps exit codes to engine errors.
"""

import os
import queue
import re
import shutil
import subprocess
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import IO

import structlog

from secure_archive.config import ArchiveEngineConfig
from secure_archive.core.cancellation import CancellationToken
from secure_archive.core.progress import NullProgressSink, ProgressSink
from secure_archive.exceptions import (
    OperationCancelledError,
    ToolExecutionFailedError,
    ToolUnavailableError,
)

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_WARNING = 1
EXIT_USER_STOPPED = 255

INSTALL_HINT = (
    "No 7-Zip executable was found. Install 7-Zip (https://www.7-zip.org) or p7zip "
    "and make sure '7z' or '7zz' is on your PATH."
)

# Percentages only count at the start of a progress line, never inside a file name.
_PROGRESS_RE = re.compile(rb"[\r\n\x08] *(\d{1,3})%")
_VERSION_RE = re.compile(r"7-Zip(?:\s+\(\w+\))?(?:\s+\[\d+\])?\s+(\d+)\.(\d+)")
# -bsp progress switches appeared in 7-Zip 15.
_MIN_PROGRESS_MAJOR = 15
_POLL_INTERVAL = 0.1
_DIAGNOSTIC_LIMIT = 64 * 1024
# A line start at the end of a chunk may begin a percentage split across reads.
_PROGRESS_PREFIX_RE = re.compile(rb"[\r\n\x08] *\d{0,3}\Z")

_tool_cache: dict[tuple, "ToolHandle"] = {}
_tool_cache_lock = threading.Lock()


@dataclass(frozen=True, kw_only=True)
class ToolHandle:
    """
    A located archiver executable.

    Attributes:
        path: Executable path.
        version: Version parsed from the banner, if recognised.
        supports_progress: Whether machine-readable progress (-bsp1) is available.
    """

    path: Path
    version: str | None = None
    supports_progress: bool = False


def clear_tool_cache() -> None:
    """Forget memoised tool locations."""
    with _tool_cache_lock:
        _tool_cache.clear()


def sanitize_args_for_log(args: Sequence[str]) -> list[str]:
    """
    Redact secrets from a command line before logging.

    Args:
        args: Command line arguments.

    Returns:
        Copy with password switches replaced by "-p***".
    """
    return ["-p***" if arg.startswith("-p") else arg for arg in args]


def _pump(stream: IO[bytes], sink: "queue.Queue[bytes | None]") -> None:
    try:
        while chunk := stream.read1(4096):
            sink.put(chunk)
    finally:
        sink.put(None)


class ExternalToolAdapter:
    """Locates and drives the external archiver."""

    def __init__(self, config: ArchiveEngineConfig | None = None) -> None:
        """
        Args:
            config: Engine configuration (tool names, search paths, timeouts).
        """
        self._config = config or ArchiveEngineConfig()

    def locate(self) -> ToolHandle:
        """
        Find a compatible archiver.

        Successful lookups are memoised for the lifetime of the process.

        Returns:
            Handle to the executable.

        Raises:
            ToolUnavailableError: If no executable is found or it cannot start.
        """
        key = (
            self._config.tool_names,
            self._config.tool_search_paths,
            os.environ.get("PATH", ""),
        )
        with _tool_cache_lock:
            cached = _tool_cache.get(key)
        if cached is not None:
            return cached

        path = self._find_executable()
        if path is None:
            raise ToolUnavailableError(INSTALL_HINT, searched=list(self._config.tool_names))
        handle = self._read_banner(path)
        with _tool_cache_lock:
            handle = _tool_cache.setdefault(key, handle)
        logger.info(
            "External archiver located",
            path=str(handle.path),
            version=handle.version,
            supports_progress=handle.supports_progress,
        )
        return handle

    def run(
        self,
        tool: ToolHandle,
        args: Sequence[str],
        cwd: Path,
        *,
        progress: ProgressSink | None = None,
        cancel: CancellationToken | None = None,
        partial_output: Path | None = None,
    ) -> int:
        """
        Run the archiver to completion.

        Args:
            tool: Handle returned by `locate()`.
            args: Arguments after the executable.
            cwd: Working directory.
            progress: Receives percentages parsed from the tool output, or 0
                then 100 when the tool has no progress output.
            cancel: Polled while the tool runs; cancellation terminates it.
            partial_output: File deleted if the run does not succeed.

        Returns:
            The tool's exit code (0, or 1 for completed-with-warnings).

        Raises:
            OperationCancelledError: If cancelled or the tool reports a user stop.
            ToolExecutionFailedError: If the tool fails, cannot start or hangs.
        """
        returncode, _ = self._execute(
            tool,
            args,
            cwd,
            progress=progress or NullProgressSink(),
            cancel=cancel or CancellationToken(),
            partial_output=partial_output,
        )
        return returncode

    def capture(
        self,
        tool: ToolHandle,
        args: Sequence[str],
        cwd: Path,
        *,
        cancel: CancellationToken | None = None,
    ) -> str:
        """
        Run the archiver and return its complete output, e.g. for a listing.

        Raises:
            OperationCancelledError: If cancelled.
            ToolExecutionFailedError: If the tool fails.
        """
        collected = bytearray()
        self._execute(
            tool,
            args,
            cwd,
            progress=NullProgressSink(),
            cancel=cancel or CancellationToken(),
            partial_output=None,
            collect=collected,
        )
        return bytes(collected).decode("utf-8", "replace")

    def _execute(
        self,
        tool: ToolHandle,
        args: Sequence[str],
        cwd: Path,
        *,
        progress: ProgressSink,
        cancel: CancellationToken,
        partial_output: Path | None,
        collect: bytearray | None = None,
    ) -> tuple[int, str]:
        command = [str(tool.path), *args]
        logger.debug(
            "Running external archiver", command=sanitize_args_for_log(command), cwd=str(cwd)
        )

        try:
            proc = subprocess.Popen(
                command,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except OSError as exc:
            self._remove_partial(partial_output)
            msg = f"Failed to start external archiver: {exc}"
            raise ToolExecutionFailedError(msg, exit_code=None) from exc

        output: queue.Queue[bytes | None] = queue.Queue()
        reader = threading.Thread(target=_pump, args=(proc.stdout, output), daemon=True)
        reader.start()
        diagnostics = bytearray()
        try:
            if not tool.supports_progress:
                progress.on_progress(0)
            self._consume_output(tool, output, diagnostics, collect, progress, cancel)
            returncode = self._wait(proc, cancel)
        except BaseException:
            self._terminate(proc)
            reader.join(timeout=1.0)
            proc.stdout.close()
            self._remove_partial(partial_output)
            raise
        reader.join(timeout=1.0)
        proc.stdout.close()

        text = bytes(diagnostics).decode("utf-8", "replace").replace("\b", "").strip()
        if returncode == EXIT_USER_STOPPED:
            self._remove_partial(partial_output)
            raise OperationCancelledError("External archiver was stopped")
        if returncode not in (EXIT_OK, EXIT_WARNING):
            self._remove_partial(partial_output)
            logger.warning("External archiver failed", exit_code=returncode)
            msg = f"External archiver failed with exit code {returncode}"
            raise ToolExecutionFailedError(msg, exit_code=returncode, output=text)
        if returncode == EXIT_WARNING:
            logger.warning("External archiver reported warnings", output=text[-2000:])
        progress.on_progress(100)
        return returncode, text

    def _consume_output(
        self,
        tool: ToolHandle,
        output: "queue.Queue[bytes | None]",
        diagnostics: bytearray,
        collect: bytearray | None,
        progress: ProgressSink,
        cancel: CancellationToken,
    ) -> None:
        last_activity = time.monotonic()
        # Output starts on a fresh line.
        carry = b"\n"
        while True:
            cancel.raise_if_cancelled()
            try:
                chunk = output.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                idle = time.monotonic() - last_activity
                if tool.supports_progress and idle > self._config.tool_liveness_timeout:
                    logger.warning("External archiver stopped responding", idle_seconds=idle)
                    msg = "External archiver produced no output and was stopped"
                    raise ToolExecutionFailedError(
                        msg, exit_code=None, output=bytes(diagnostics).decode("utf-8", "replace")
                    ) from None
                continue
            if chunk is None:
                return
            last_activity = time.monotonic()
            if collect is not None:
                collect += chunk
            diagnostics += chunk
            if len(diagnostics) > _DIAGNOSTIC_LIMIT:
                del diagnostics[:-_DIAGNOSTIC_LIMIT]
            data = carry + chunk
            for match in _PROGRESS_RE.finditer(data):
                progress.on_progress(min(100, int(match[1])))
            trailing = _PROGRESS_PREFIX_RE.search(data)
            carry = trailing[0] if trailing else b""

    @staticmethod
    def _wait(proc: subprocess.Popen, cancel: CancellationToken) -> int:
        while True:
            cancel.raise_if_cancelled()
            try:
                return proc.wait(timeout=_POLL_INTERVAL)
            except subprocess.TimeoutExpired:
                continue

    def _terminate(self, proc: subprocess.Popen) -> None:
        if proc.poll() is not None:
            return
        proc.terminate()
        try:
            proc.wait(timeout=self._config.tool_terminate_timeout)
        except subprocess.TimeoutExpired:
            logger.warning("External archiver ignored terminate, killing", pid=proc.pid)
            proc.kill()
            proc.wait()

    @staticmethod
    def _remove_partial(path: Path | None) -> None:
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove partial output", path=str(path), error=str(exc))

    def _find_executable(self) -> Path | None:
        for name in self._config.tool_names:
            if (found := shutil.which(name)) is not None:
                return Path(found)
        for candidate in self._config.tool_search_paths:
            path = Path(candidate)
            if path.is_file() and os.access(path, os.X_OK):
                return path
        return None

    def _read_banner(self, path: Path) -> ToolHandle:
        try:
            completed = subprocess.run(
                [str(path)],
                stdin=subprocess.DEVNULL,
                capture_output=True,
                timeout=self._config.tool_terminate_timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            msg = f"7-Zip executable could not be started: {exc}"
            raise ToolUnavailableError(msg, path=str(path)) from exc
        banner = completed.stdout.decode("utf-8", "replace")
        match = _VERSION_RE.search(banner)
        if match is None:
            logger.warning("Unrecognised archiver banner, progress disabled", path=str(path))
            return ToolHandle(path=path)
        return ToolHandle(
            path=path,
            version=f"{match[1]}.{match[2]}",
            supports_progress=int(match[1]) >= _MIN_PROGRESS_MAJOR,
        )
