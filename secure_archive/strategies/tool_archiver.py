"""
Archiving through the external 7-Zip executable.

Shared by the 7z method and by the external backend of the AES-256 ZIP
method. The tool reads the members from a UTF-8 list file and writes to a
hidden partial file; extraction goes to a staging directory after a listing
pass has validated names, entry count and total size.
"""

import os
import re
import shutil
import tempfile
import uuid
from collections.abc import Iterator, Sequence
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

import structlog

from secure_archive.config import ArchiveEngineConfig
from secure_archive.core.cancellation import CancellationToken
from secure_archive.core.progress import ProgressSink, ProgressTracker, ScaledProgressSink
from secure_archive.crypto.secret import SecretPassword
from secure_archive.exceptions import (
    InvalidInputError,
    ToolExecutionFailedError,
    WrongPasswordError,
)
from secure_archive.models.archive import FileEntry
from secure_archive.strategies.staging import (
    atomic_output,
    check_extraction_limits,
    member_parts,
    remove_tree,
    staging_directory,
)
from secure_archive.tools.external_tool import ExternalToolAdapter, ToolHandle

logger = structlog.get_logger(__name__)

_BLOCK_SEPARATOR = re.compile(r"\n[ \t]*\n")


@dataclass(frozen=True, kw_only=True)
class ListedMember:
    """One entry of a technical (-slt) archive listing."""

    name: str
    size: int
    is_directory: bool


def parse_technical_listing(text: str) -> list[ListedMember]:
    """
    Parse the output of `7z l -slt`.

    The block describing the archive itself precedes the "----------" line
    and is ignored.
    """
    _, sep, body = text.replace("\r\n", "\n").partition("\n----------\n")
    if not sep:
        return []
    members = []
    for block in _BLOCK_SEPARATOR.split(body):
        fields = {}
        for line in block.splitlines():
            key, eq, value = line.partition(" = ")
            if eq:
                fields[key.strip()] = value.strip()
        if "Path" not in fields:
            continue
        try:
            size = int(fields.get("Size") or 0)
        except ValueError:
            size = 0
        members.append(
            ListedMember(
                name=fields["Path"],
                size=size,
                is_directory=fields.get("Folder") == "+"
                or fields.get("Attributes", "").startswith("D"),
            )
        )
    return members


def common_base(files: Sequence[FileEntry]) -> Path | None:
    """
    Directory every member's archive name is relative to, if there is one.

    Returns:
        The shared base directory, or None when the selection spans several
        parent directories.
    """
    bases = set()
    for entry in files:
        parts = PurePosixPath(entry.archive_name).parts
        base = entry.absolute_path
        for _ in parts:
            base = base.parent
        if base.joinpath(*parts) != entry.absolute_path:
            return None
        bases.add(base)
    return bases.pop() if len(bases) == 1 else None


def _is_wrong_password(output: str) -> bool:
    return "wrong password" in output.lower()


class ToolArchiver:
    """
    Produces and extracts encrypted archives with the external tool.

    Example:
        ```python
        archiver = ToolArchiver(adapter, config, archive_type="7z", switches=("-mhe=on",))
        archiver.encrypt(files, password, Path("out.7z"), progress, cancel)
        ```
    """

    def __init__(
        self,
        adapter: ExternalToolAdapter,
        config: ArchiveEngineConfig,
        *,
        archive_type: str,
        switches: Sequence[str] = (),
    ) -> None:
        """
        Args:
            adapter: Locates and runs the executable.
            config: Engine configuration.
            archive_type: Value of the tool's -t switch ("7z" or "zip").
            switches: Extra switches for archive creation.
        """
        self._adapter = adapter
        self._config = config
        self._archive_type = archive_type
        self._switches = tuple(switches)

    def encrypt(
        self,
        files: Sequence[FileEntry],
        password: SecretPassword,
        output_path: Path,
        progress: ProgressSink,
        cancel: CancellationToken,
    ) -> None:
        tool = self._adapter.locate()
        cancel.raise_if_cancelled()
        base = common_base(files)
        with ExitStack() as stack:
            partial = stack.enter_context(atomic_output(output_path))
            scratch = Path(
                stack.enter_context(tempfile.TemporaryDirectory(prefix="secure_archive-"))
            )
            if base is not None:
                cwd = base
                tool_progress = ScaledProgressSink(progress, 0, 99)
            else:
                logger.debug("Inputs span several directories, staging a copy")
                cwd = stack.enter_context(
                    self._staged_inputs(
                        files, output_path, ScaledProgressSink(progress, 0, 50), cancel
                    )
                )
                tool_progress = ScaledProgressSink(progress, 50, 99)

            listfile = scratch / "members.txt"
            listfile.write_text("\n".join(self._list_names(files, cwd)) + "\n", encoding="utf-8")
            args = [
                "a",
                f"-t{self._archive_type}",
                *self._switches,
                f"-mx={self._config.compression_level}",
                f"-p{password.reveal()}",
                "-scsUTF-8",
                "-y",
                *self._modern_switches(tool, creating=True),
                str(partial.absolute()),
                f"@{listfile}",
            ]
            self._call(tool, args, cwd, progress=tool_progress, cancel=cancel, partial=partial)
        progress.on_progress(100)
        logger.info("Archive written by external tool", path=str(output_path), members=len(files))

    def decrypt(
        self,
        archive_path: Path,
        password: SecretPassword,
        output_dir: Path,
        progress: ProgressSink,
        cancel: CancellationToken,
    ) -> None:
        tool = self._adapter.locate()
        secret = f"-p{password.reveal()}"
        listing = self._call(
            tool,
            ["l", "-slt", secret, *self._modern_switches(tool), str(archive_path)],
            archive_path.parent,
            cancel=cancel,
            capture=True,
        )
        members = parse_technical_listing(listing)
        check_extraction_limits(len(members), sum(m.size for m in members), self._config)
        for member in members:
            member_parts(member.name)

        with staging_directory(output_dir) as staging:
            args = [
                "x", "-y", f"-o{staging}", secret, *self._modern_switches(tool), str(archive_path)
            ]
            self._call(
                tool, args, staging, progress=ScaledProgressSink(progress, 0, 99), cancel=cancel
            )
        progress.on_progress(100)
        logger.info(
            "Archive extracted by external tool", path=str(archive_path), members=len(members)
        )

    def _call(
        self,
        tool: ToolHandle,
        args: list[str],
        cwd: Path,
        *,
        cancel: CancellationToken,
        progress: ProgressSink | None = None,
        partial: Path | None = None,
        capture: bool = False,
    ) -> str:
        try:
            if capture:
                return self._adapter.capture(tool, args, cwd, cancel=cancel)
            self._adapter.run(
                tool, args, cwd, progress=progress, cancel=cancel, partial_output=partial
            )
        except ToolExecutionFailedError as exc:
            if _is_wrong_password(exc.output):
                raise WrongPasswordError() from exc
            raise
        return ""

    @staticmethod
    def _modern_switches(tool: ToolHandle, *, creating: bool = False) -> list[str]:
        # Both switches need 7-Zip 15 or later.
        if not tool.supports_progress:
            return []
        return ["-bsp1", "-spd"] if creating else ["-bsp1"]

    @staticmethod
    def _list_names(files: Sequence[FileEntry], cwd: Path) -> list[str]:
        names = []
        for entry in files:
            if "\n" in entry.archive_name or "\r" in entry.archive_name:
                msg = f"File name contains a line break: {entry.archive_name!r}"
                raise InvalidInputError(msg)
            if entry.is_directory:
                # The tool recurses into listed directories; only list empty ones.
                with os.scandir(cwd / entry.archive_name) as it:
                    if next(it, None) is not None:
                        continue
                names.append(entry.archive_name.rstrip("/"))
            else:
                names.append(entry.archive_name)
        return names

    @contextmanager
    def _staged_inputs(
        self,
        files: Sequence[FileEntry],
        output_path: Path,
        progress: ProgressSink,
        cancel: CancellationToken,
    ) -> Iterator[Path]:
        root = output_path.with_name(f".{output_path.name}.{uuid.uuid4().hex[:8]}.inputs")
        root.mkdir()
        try:
            tracker = ProgressTracker(sum(f.size for f in files if not f.is_directory), progress)
            tracker.start()
            for entry in files:
                cancel.raise_if_cancelled()
                target = root.joinpath(*member_parts(entry.archive_name))
                if entry.is_directory:
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with open(entry.absolute_path, "rb") as src, open(target, "wb") as dst:
                    while chunk := src.read(self._config.chunk_size):
                        cancel.raise_if_cancelled()
                        dst.write(chunk)
                        tracker.advance(len(chunk))
                shutil.copystat(entry.absolute_path, target)
            tracker.complete()
            yield root
        finally:
            remove_tree(root)
