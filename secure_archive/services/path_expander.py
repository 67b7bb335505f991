"""
Input path resolution.

Turns the user's selection of files and folders into the flat, ordered list
of archive members the strategies stream.
"""

import os
import stat
from collections.abc import Iterable, Iterator
from pathlib import Path

import structlog

from secure_archive.exceptions import InvalidInputError, PathNotFoundError
from secure_archive.models.archive import FileEntry, InputEntry

logger = structlog.get_logger(__name__)


class PathExpander:
    """
    Resolves user-selected paths into archive members.

    Symbolic links are never followed. Directories expand recursively into
    their regular files plus one record per directory, named relative to the
    selected directory's parent.
    """

    def inspect(self, paths: Iterable[str]) -> list[InputEntry]:
        """
        Classify paths as files or directories without recursing.

        Args:
            paths: Paths as selected by the user.

        Returns:
            One InputEntry per path, in input order. Missing paths are
            reported as non-directories.
        """
        return [InputEntry(path=p, is_directory=os.path.isdir(p)) for p in paths]

    def expand(self, entries: Iterable[InputEntry]) -> list[FileEntry]:
        """
        Expand the selection into archive members.

        Args:
            entries: Top-level selections.

        Returns:
            Members deduplicated by absolute path, a repeated path taking the
            position of its last occurrence.

        Raises:
            PathNotFoundError: If a top-level path no longer exists.
            InvalidInputError: If two different files map to the same archive
                name, or a file system root is selected.
        """
        collected: dict[Path, FileEntry] = {}
        for entry in entries:
            path = Path(os.path.abspath(entry.path))
            for member in self._expand_one(path, entry.path):
                collected.pop(member.absolute_path, None)
                collected[member.absolute_path] = member
        return self._check_names(collected.values())

    def _expand_one(self, path: Path, original: str) -> Iterator[FileEntry]:
        if not os.path.lexists(path):
            msg = f"Path not found: {original}"
            raise PathNotFoundError(msg, path=original)
        st = os.lstat(path)
        if stat.S_ISLNK(st.st_mode):
            logger.warning("Skipping symbolic link", path=str(path))
            return
        if stat.S_ISDIR(st.st_mode):
            if path.parent == path:
                msg = f"Cannot archive a file system root: {original}"
                raise InvalidInputError(msg)
            yield from self._walk(path, path.parent)
        elif stat.S_ISREG(st.st_mode):
            yield FileEntry(absolute_path=path, archive_name=path.name, size=st.st_size)
        else:
            logger.warning("Skipping special file", path=str(path))

    def _walk(self, directory: Path, base: Path) -> Iterator[FileEntry]:
        yield FileEntry(
            absolute_path=directory,
            archive_name=directory.relative_to(base).as_posix() + "/",
            is_directory=True,
        )
        with os.scandir(directory) as it:
            children = sorted(it, key=lambda e: e.name)
        for child in children:
            child_path = Path(child.path)
            if child.is_symlink():
                logger.warning("Skipping symbolic link", path=child.path)
            elif child.is_dir(follow_symlinks=False):
                yield from self._walk(child_path, base)
            elif child.is_file(follow_symlinks=False):
                yield FileEntry(
                    absolute_path=child_path,
                    archive_name=child_path.relative_to(base).as_posix(),
                    size=child.stat(follow_symlinks=False).st_size,
                )
            else:
                logger.warning("Skipping special file", path=child.path)

    @staticmethod
    def _check_names(members: Iterable[FileEntry]) -> list[FileEntry]:
        by_name: dict[str, FileEntry] = {}
        result = []
        for member in members:
            existing = by_name.get(member.archive_name)
            if existing is None:
                by_name[member.archive_name] = member
                result.append(member)
            elif not (member.is_directory and existing.is_directory):
                msg = f"Several inputs map to the same archive entry: {member.archive_name}"
                raise InvalidInputError(
                    msg, first=str(existing.absolute_path), second=str(member.absolute_path)
                )
        return result
