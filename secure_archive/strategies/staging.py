"""
Output staging shared by all strategies.

Archives are written to a hidden sibling file and extracted into a hidden
directory; both are committed only once the operation succeeded.
"""

import os
import re
import shutil
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import structlog

from secure_archive.config import ArchiveEngineConfig
from secure_archive.exceptions import ArchiveFormatError, IoFailureError

logger = structlog.get_logger(__name__)

_DRIVE_RE = re.compile(r"^[A-Za-z]:")


def partial_output_path(target: Path) -> Path:
    """Hidden sibling path an archive is written to before it replaces `target`."""
    return target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.partial")


def _remove_file(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not remove partial output", path=str(path), error=str(exc))


def remove_tree(path: Path) -> None:
    """Delete a staging tree, logging instead of raising on failure."""
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove staged output", path=str(path), error=str(exc))


@contextmanager
def atomic_output(target: Path) -> Iterator[Path]:
    """
    Yield a temporary path that replaces `target` when the block succeeds.

    On any exception, including cancellation, the temporary file is deleted
    and `target` is left untouched.

    Example:
        ```python
        with atomic_output(Path("out.zip")) as partial:
            partial.write_bytes(data)
        ```
    """
    partial = partial_output_path(target)
    try:
        yield partial
        os.replace(partial, target)
    except BaseException:
        _remove_file(partial)
        raise
    logger.debug("Output committed", path=str(target))


@contextmanager
def staging_directory(output_dir: Path) -> Iterator[Path]:
    """
    Yield a hidden directory inside `output_dir` to extract into.

    When the block succeeds, the staged tree is merged into `output_dir`
    (existing files of the same name are replaced). On any exception, a
    failed merge included, the staging directory is removed and `output_dir`
    is left as it was.

    Raises:
        IoFailureError: If a staged file would replace a folder, or a staged
            folder a file.
    """
    staging = output_dir / f".secure_archive-{uuid.uuid4().hex[:8]}.staging"
    staging.mkdir()
    try:
        yield staging
        _merge_tree(staging, output_dir)
    finally:
        remove_tree(staging)


def _merge_tree(source: Path, dest: Path) -> None:
    """
    Move the staged tree into `dest`, all or nothing.

    Conflicts are detected before anything moves. If a move still fails, the
    moves already made are undone and replaced files are put back.
    """
    dirs, files = _staged_paths(source)
    _check_conflicts(dest, dirs, files)
    backup = dest / f"{source.name}.backup"
    created: list[Path] = []
    moved: list[tuple[Path, Path | None]] = []
    try:
        for relative in dirs:
            target = dest / relative
            if not target.is_dir():
                target.mkdir()
                created.append(target)
        for relative in files:
            target = dest / relative
            saved = None
            if target.exists() or target.is_symlink():
                saved = backup / relative
                saved.parent.mkdir(parents=True, exist_ok=True)
                os.replace(target, saved)
            moved.append((target, saved))
            os.replace(source / relative, target)
    except OSError:
        if _undo_merge(created, moved):
            remove_tree(backup)
        else:
            logger.error("Output directory only partly restored", backup=str(backup))
        raise
    remove_tree(backup)


def _staged_paths(source: Path) -> tuple[list[Path], list[Path]]:
    dirs: list[Path] = []
    files: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(source):
        dirnames.sort()
        relative = Path(dirpath).relative_to(source)
        for name in dirnames:
            # Links are moved as they are, never descended into.
            if os.path.islink(os.path.join(dirpath, name)):
                files.append(relative / name)
            else:
                dirs.append(relative / name)
        files.extend(relative / name for name in sorted(filenames))
    return dirs, files


def _check_conflicts(dest: Path, dirs: list[Path], files: list[Path]) -> None:
    for relative in dirs:
        target = dest / relative
        if target.is_symlink() or (target.exists() and not target.is_dir()):
            msg = f"Cannot extract folder, a file of the same name exists: {target}"
            raise IoFailureError(msg, path=str(target))
    for relative in files:
        target = dest / relative
        if target.is_dir() and not target.is_symlink():
            msg = f"Cannot extract file, a folder of the same name exists: {target}"
            raise IoFailureError(msg, path=str(target))


def _undo_merge(created: list[Path], moved: list[tuple[Path, Path | None]]) -> bool:
    restored = True
    for target, saved in reversed(moved):
        try:
            if saved is None:
                target.unlink(missing_ok=True)
            else:
                os.replace(saved, target)
        except OSError as exc:
            restored = False
            logger.error("Could not restore output file", path=str(target), error=str(exc))
    for directory in reversed(created):
        try:
            directory.rmdir()
        except OSError as exc:
            logger.warning("Could not remove output folder", path=str(directory), error=str(exc))
    return restored


def check_extraction_limits(entry_count: int, total_size: int, config: ArchiveEngineConfig) -> None:
    """
    Refuse archives that would extract too many entries or bytes.

    Raises:
        ArchiveFormatError: If a configured limit is exceeded.
    """
    if entry_count > config.max_archive_entries:
        msg = f"Archive has too many entries ({entry_count})"
        raise ArchiveFormatError(msg, limit=config.max_archive_entries)
    if total_size > config.max_extracted_size:
        msg = f"Archive would extract too much data ({total_size} bytes)"
        raise ArchiveFormatError(msg, limit=config.max_extracted_size)


def member_parts(name: str) -> tuple[str, ...]:
    """
    Split an archive entry name into safe relative path components.

    Args:
        name: Entry name as stored in the archive.

    Returns:
        Path components, free of "." and empty parts.

    Raises:
        ArchiveFormatError: If the name is absolute, carries a drive letter,
            contains ".." or a NUL byte, or is empty.
    """
    normalized = name.replace("\\", "/")
    if "\0" in normalized:
        raise ArchiveFormatError("Entry name contains a NUL byte", entry=name)
    if normalized.startswith("/") or _DRIVE_RE.match(normalized):
        raise ArchiveFormatError("Absolute entry name refused", entry=name)
    parts = tuple(p for p in normalized.split("/") if p not in ("", "."))
    if ".." in parts:
        raise ArchiveFormatError("Entry name escapes the output directory", entry=name)
    if not parts:
        raise ArchiveFormatError("Empty entry name", entry=name)
    return parts
