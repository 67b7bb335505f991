"""
Session controller.

Owns the single active session, validates start commands, runs the selected
strategy on a dedicated worker thread and resolves every session to exactly
one terminal outcome.
"""

import asyncio
import os
import threading
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any

import structlog

from secure_archive.archive.detect import detect_archive_method
from secure_archive.core.progress import (
    CallbackProgressSink,
    GatedProgressSink,
    NullProgressSink,
    ProgressSink,
)
from secure_archive.crypto.secret import SecretPassword
from secure_archive.exceptions import (
    ArchiveEngineError,
    InvalidInputError,
    IoFailureError,
    OperationCancelledError,
    PathNotFoundError,
    SessionBusyError,
)
from secure_archive.models.archive import Direction, EncryptionMethod
from secure_archive.models.session import Session, SessionResult, SessionState
from secure_archive.services.path_expander import PathExpander
from secure_archive.strategies.protocol import EncryptionStrategy

logger = structlog.get_logger(__name__)


class SessionController:
    """
    Runs one encrypt or decrypt session at a time.

    State machine:
        IDLE -> VALIDATING -> RUNNING -> {COMPLETED, CANCELLED, FAILED} -> IDLE

    Starting while a session is validating or running raises
    SessionBusyError and leaves the active session alone. Validation and the
    strategy both run on a single-thread executor, so the event loop is never
    blocked. If the awaiting task is cancelled, the session is cancelled too
    but stays claimed until its worker has returned.

    Security notes:
    - The password is wrapped in a SecretPassword as soon as a start command
      is received and zeroed when the session ends, whatever the outcome.
    """

    def __init__(
        self,
        strategies: Mapping[EncryptionMethod, EncryptionStrategy],
        *,
        expander: PathExpander | None = None,
        progress: ProgressSink | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        """
        Args:
            strategies: Strategy per encryption method.
            expander: Resolves input selections. A default one is created if omitted.
            progress: Receives progress ticks of every session.
            executor: Worker pool; a single-thread pool is created if omitted.
        """
        self._strategies = dict(strategies)
        self._expander = expander or PathExpander()
        self._progress = progress or NullProgressSink()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="secure-archive"
        )
        self._lock = threading.Lock()
        self._state = SessionState.IDLE
        self._session: Session | None = None
        self._worker: Future[Any] | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._state.is_active

    @property
    def current_session(self) -> Session | None:
        return self._session

    async def start_encrypt(
        self,
        paths: Sequence[str | os.PathLike[str]],
        output_path: str | os.PathLike[str] | None,
        password: str,
        method: EncryptionMethod | str,
    ) -> SessionResult:
        """
        Encrypt the selected files and folders into one archive.

        Args:
            paths: Selected files and folders.
            output_path: Archive to create. None means the user dismissed the
                save dialog; the call then resolves as cancelled.
            password: Archive password, must not be empty.
            method: Encryption method.

        Returns:
            SessionResult with status COMPLETED or CANCELLED.

        Raises:
            SessionBusyError: If another session is active.
            InvalidInputError: If the password or selection is empty.
            PathNotFoundError: If an input or the output directory is missing.
            ArchiveEngineError: Any other failure of the strategy.
        """
        self._claim()
        try:
            method = self._parse_method(method)
            if output_path is None:
                logger.info("Encryption dismissed, no output selected", method=method)
                return SessionResult(
                    status=SessionState.CANCELLED,
                    direction=Direction.ENCRYPT,
                    method=method,
                    output_path=None,
                    message="No output location selected",
                )
            session = Session(
                direction=Direction.ENCRYPT,
                method=method,
                password=self._make_password(password),
                target=Path(os.path.abspath(output_path)),
                source_paths=[Path(p) for p in paths],
            )
            return await self._execute(session, self._prepare_encrypt, self._run_encrypt)
        finally:
            self._release()

    async def start_decrypt(
        self,
        archive_path: str | os.PathLike[str],
        output_dir: str | os.PathLike[str],
        password: str,
    ) -> SessionResult:
        """
        Decrypt an archive into an existing directory.

        The method is detected from the archive header. An empty password is
        rejected here as well, before the archive is opened: no supported
        method can produce an archive protected by an empty password.

        Returns:
            SessionResult with status COMPLETED or CANCELLED.

        Raises:
            SessionBusyError: If another session is active.
            InvalidInputError: If the password is empty.
            PathNotFoundError: If the archive or the output directory is missing.
            ArchiveFormatError: If the archive format is not supported.
            WrongPasswordError: If the password is incorrect.
            ArchiveEngineError: Any other failure of the strategy.
        """
        self._claim()
        try:
            session = Session(
                direction=Direction.DECRYPT,
                method=None,
                password=self._make_password(password),
                target=Path(os.path.abspath(output_dir)),
                source_paths=[Path(os.path.abspath(archive_path))],
            )
            return await self._execute(session, self._prepare_decrypt, self._run_decrypt)
        finally:
            self._release()

    def cancel(self) -> None:
        """Request cancellation of the active session. No-op when idle."""
        session = self._session
        if session is None or not self._state.is_active:
            return
        logger.info("Cancellation requested", session_id=session.session_id)
        session.cancel_token.cancel()

    def shutdown(self) -> None:
        """Cancel any active session and stop the worker pool, if owned."""
        self.cancel()
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    # Lifecycle

    def _claim(self) -> None:
        with self._lock:
            if self._state.is_active:
                raise SessionBusyError()
            self._state = SessionState.VALIDATING

    def _release(self) -> None:
        worker = self._worker
        if worker is not None and not worker.done():
            # Runs on the worker thread, or right away if it finished meanwhile.
            worker.add_done_callback(self._release_after_worker)
            return
        with self._lock:
            session, self._session = self._session, None
            self._worker = None
            self._state = SessionState.IDLE
        if session is not None:
            session.password.clear()

    def _release_after_worker(self, worker: Future[Any]) -> None:
        session = self._session
        logger.info(
            "Detached worker finished",
            session_id=session.session_id if session is not None else None,
            cancelled=worker.cancelled(),
        )
        self._release()

    async def _on_worker(self, fn: Callable[..., None], *args: Any) -> None:
        worker = self._executor.submit(fn, *args)
        with self._lock:
            self._worker = worker
        await asyncio.wrap_future(worker)

    def _transition(self, session: Session, state: SessionState) -> None:
        with self._lock:
            self._state = state
            session.state = state
        logger.debug("Session state changed", session_id=session.session_id, state=state)

    async def _execute(
        self,
        session: Session,
        prepare: Callable[[Session], None],
        run: Callable[[Session, ProgressSink], None],
    ) -> SessionResult:
        with self._lock:
            self._session = session
        gate = GatedProgressSink(CallbackProgressSink(lambda p: self._report(session, p)))
        logger.info(
            "Session started",
            session_id=session.session_id,
            direction=session.direction,
            method=session.method,
        )
        try:
            await self._on_worker(prepare, session)
            session.cancel_token.raise_if_cancelled()
            self._transition(session, SessionState.RUNNING)
            await self._on_worker(run, session, gate)
        except OperationCancelledError:
            gate.close()
            return self._cancelled(session)
        except asyncio.CancelledError:
            # The worker cannot be interrupted; _release waits for it.
            gate.close()
            session.cancel_token.cancel()
            logger.info("Awaiting task cancelled", session_id=session.session_id)
            raise
        except (ArchiveEngineError, OSError) as exc:
            gate.close()
            if session.cancel_token.is_cancelled:
                return self._cancelled(session)
            self._transition(session, SessionState.FAILED)
            error = self._as_engine_error(exc)
            logger.warning(
                "Session failed",
                session_id=session.session_id,
                error_type=type(error).__name__,
                error=str(error),
            )
            if error is exc:
                raise
            raise error from exc

        gate.close()
        self._transition(session, SessionState.COMPLETED)
        logger.info("Session completed", session_id=session.session_id, method=session.method)
        if session.direction is Direction.ENCRYPT:
            message = f"Encrypted {sum(1 for f in session.files if not f.is_directory)} file(s)"
        else:
            message = "Archive decrypted"
        return SessionResult(
            status=SessionState.COMPLETED,
            direction=session.direction,
            method=session.method,
            output_path=session.target,
            message=message,
            session_id=session.session_id,
        )

    def _cancelled(self, session: Session) -> SessionResult:
        self._transition(session, SessionState.CANCELLED)
        logger.info("Session cancelled", session_id=session.session_id)
        return SessionResult(
            status=SessionState.CANCELLED,
            direction=session.direction,
            method=session.method,
            output_path=None,
            message="Operation cancelled by user",
            session_id=session.session_id,
        )

    def _report(self, session: Session, percent: int) -> None:
        session.progress = percent
        self._progress.on_progress(percent)

    # Validation (worker thread)

    def _prepare_encrypt(self, session: Session) -> None:
        if not session.source_paths:
            raise InvalidInputError("No files or folders selected")
        target = session.target
        if not target.parent.is_dir():
            msg = f"Output directory does not exist: {target.parent}"
            raise PathNotFoundError(msg, path=str(target.parent))
        if target.is_dir():
            msg = f"Output path is a directory: {target}"
            raise InvalidInputError(msg)

        entries = self._expander.inspect([str(p) for p in session.source_paths])
        files = [f for f in self._expander.expand(entries) if f.absolute_path != target]
        if not files:
            raise InvalidInputError("Nothing to archive")
        session.files = files
        logger.debug(
            "Inputs expanded",
            session_id=session.session_id,
            members=len(files),
            bytes=sum(f.size for f in files),
        )

    def _prepare_decrypt(self, session: Session) -> None:
        archive = session.source_paths[0]
        if not archive.exists():
            msg = f"Archive not found: {archive}"
            raise PathNotFoundError(msg, path=str(archive))
        if not archive.is_file():
            msg = f"Archive is not a regular file: {archive}"
            raise InvalidInputError(msg)
        if not session.target.is_dir():
            msg = f"Output directory does not exist: {session.target}"
            raise PathNotFoundError(msg, path=str(session.target))
        session.method = detect_archive_method(archive)
        logger.debug(
            "Archive method detected", session_id=session.session_id, method=session.method
        )

    # Work (worker thread)

    def _run_encrypt(self, session: Session, progress: ProgressSink) -> None:
        strategy = self._strategy_for(session.method)
        strategy.encrypt(
            session.files, session.password, session.target, progress, session.cancel_token
        )

    def _run_decrypt(self, session: Session, progress: ProgressSink) -> None:
        strategy = self._strategy_for(session.method)
        strategy.decrypt(
            session.source_paths[0],
            session.password,
            session.target,
            progress,
            session.cancel_token,
        )

    def _strategy_for(self, method: EncryptionMethod | None) -> EncryptionStrategy:
        try:
            return self._strategies[method]
        except KeyError:
            msg = f"No strategy registered for method: {method}"
            raise InvalidInputError(msg) from None

    @staticmethod
    def _parse_method(method: EncryptionMethod | str) -> EncryptionMethod:
        try:
            return EncryptionMethod(method)
        except ValueError:
            msg = f"Unknown encryption method: {method}"
            raise InvalidInputError(msg) from None

    @staticmethod
    def _make_password(password: str) -> SecretPassword:
        if not password:
            raise InvalidInputError("Password must not be empty")
        return SecretPassword.from_string(password)

    @staticmethod
    def _as_engine_error(exc: Exception) -> ArchiveEngineError:
        if isinstance(exc, ArchiveEngineError):
            return exc
        path = getattr(exc, "filename", None)
        return IoFailureError(
            f"File system error: {exc.strerror or exc}",
            path=str(path) if path is not None else None,
        )
