"""
Archive engine facade.

This is the main entry point for users of the library. It wires the
strategies, the external tool adapter and the session controller behind a
small async API.
"""

import asyncio
import os
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Self

import structlog

from secure_archive.config import ArchiveEngineConfig
from secure_archive.core.progress import CallbackProgressSink, ProgressSink
from secure_archive.crypto.password import PasswordGenerator
from secure_archive.models.archive import EncryptionMethod, InputEntry
from secure_archive.models.session import SessionResult, SessionState
from secure_archive.services.path_expander import PathExpander
from secure_archive.services.session_controller import SessionController
from secure_archive.strategies import EncryptionStrategy, build_strategies
from secure_archive.tools.external_tool import ExternalToolAdapter

logger = structlog.get_logger(__name__)


class ArchiveEngine:
    """
    Async engine that encrypts files into archives and decrypts them back.

    Example:
        ```python
        from secure_archive import ArchiveEngine, EncryptionMethod

        async with ArchiveEngine(progress=lambda p: print(f"{p}%")) as engine:
            password = engine.generate_password()
            output = engine.suggest_output_path(["report.pdf"], EncryptionMethod.AES256)
            result = await engine.encrypt_files(
                ["report.pdf"], output, password, EncryptionMethod.AES256
            )
            print(result.message)
        ```

    Args:
        config: Engine configuration. Uses defaults if not provided.
        progress: Sink or plain callable receiving progress percentages.
            It is called from the worker thread; wrap it in a LoopProgressSink
            to receive ticks on the event loop.
        tool_adapter: Optional external tool adapter (e.g. for testing).
        strategies: Optional strategy mapping replacing the built-in one.
    """

    def __init__(
        self,
        config: ArchiveEngineConfig | None = None,
        *,
        progress: ProgressSink | Callable[[int], None] | None = None,
        tool_adapter: ExternalToolAdapter | None = None,
        strategies: Mapping[EncryptionMethod, EncryptionStrategy] | None = None,
    ) -> None:
        self._config = config or ArchiveEngineConfig()
        if progress is not None and not isinstance(progress, ProgressSink):
            progress = CallbackProgressSink(progress)
        self._progress = progress
        self._tool_adapter = tool_adapter or ExternalToolAdapter(self._config)
        self._strategies = strategies
        self._expander = PathExpander()
        self._passwords = PasswordGenerator(
            length=self._config.password_length, symbols=self._config.password_symbols
        )

        self._controller: SessionController | None = None
        self._init_lock = asyncio.Lock()

    async def __aenter__(self) -> Self:
        """Enter async context."""
        await self._ensure_initialized()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object
    ) -> None:
        """Exit async context."""
        await self.close()

    async def _ensure_initialized(self) -> SessionController:
        async with self._init_lock:
            if self._controller is None:
                strategies = self._strategies or build_strategies(self._config, self._tool_adapter)
                self._controller = SessionController(
                    strategies, expander=self._expander, progress=self._progress
                )
                logger.debug("Engine initialized", aes_backend=self._config.aes_backend)
            return self._controller

    async def close(self) -> None:
        """Cancel any running session and release the worker thread."""
        async with self._init_lock:
            if self._controller is not None:
                controller, self._controller = self._controller, None
                await asyncio.get_running_loop().run_in_executor(None, controller.shutdown)
                logger.debug("Engine closed")

    @property
    def state(self) -> SessionState:
        """State of the session controller (IDLE before first use)."""
        return self._controller.state if self._controller is not None else SessionState.IDLE

    async def encrypt_files(
        self,
        paths: Sequence[str | os.PathLike[str]],
        output_path: str | os.PathLike[str] | None,
        password: str,
        method: EncryptionMethod | str = EncryptionMethod.AES256,
    ) -> SessionResult:
        """
        Encrypt files and folders into one archive.

        Args:
            paths: Files and folders to include.
            output_path: Archive to create, or None if the user dismissed the
                save dialog (resolves as cancelled).
            password: Archive password.
            method: Encryption method.

        Returns:
            SessionResult, COMPLETED or CANCELLED.

        Raises:
            SessionBusyError: If another session is running.
            InvalidInputError: If the password or selection is empty.
            PathNotFoundError: If an input vanished.
            ToolUnavailableError: If the method needs 7-Zip and none is installed.
            ArchiveEngineError: Any other failure.

        Example:
            ```python
            result = await engine.encrypt_files(
                ["notes.txt", "photos/"], "backup.7z", "s3cret", EncryptionMethod.SEVEN_ZIP
            )
            ```
        """
        controller = await self._ensure_initialized()
        return await controller.start_encrypt(paths, output_path, password, method)

    async def decrypt_file(
        self,
        archive_path: str | os.PathLike[str],
        output_dir: str | os.PathLike[str],
        password: str,
    ) -> SessionResult:
        """
        Decrypt an archive into a directory.

        Args:
            archive_path: Archive produced by any of the supported methods.
            output_dir: Existing directory receiving the extracted files.
            password: Archive password.

        Returns:
            SessionResult, COMPLETED or CANCELLED.

        Raises:
            SessionBusyError: If another session is running.
            WrongPasswordError: If the password is incorrect.
            ArchiveFormatError: If the archive is unsupported, corrupted or unsafe.
            ArchiveEngineError: Any other failure.
        """
        controller = await self._ensure_initialized()
        return await controller.start_decrypt(archive_path, output_dir, password)

    def cancel(self) -> None:
        """Cancel the running session. No-op when idle."""
        if self._controller is not None:
            self._controller.cancel()

    def generate_password(self) -> str:
        """Generate a random password mixing letters, digits and symbols."""
        return self._passwords.generate()

    def inspect_paths(self, paths: Sequence[str]) -> list[InputEntry]:
        """Classify paths as files or directories, without recursing."""
        return self._expander.inspect(paths)

    def suggest_output_path(
        self, paths: Sequence[str | os.PathLike[str]], method: EncryptionMethod | str
    ) -> Path:
        """
        Default archive location for a selection.

        Returns:
            `<stem>_<method><extension>` next to the first input, where stem is
            a file's name without extension or a folder's name. Without any
            input, `archive_<method><extension>` in the current directory.
        """
        method = EncryptionMethod(method)
        if not paths:
            return Path(f"archive_{method.value}{method.extension}")
        first = Path(os.path.abspath(paths[0]))
        stem = first.name if first.is_dir() else first.stem
        return first.parent / f"{stem}_{method.value}{method.extension}"
