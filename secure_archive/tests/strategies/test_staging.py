import os
from pathlib import Path

import pytest

from secure_archive.config import ArchiveEngineConfig
from secure_archive.exceptions import (
    ArchiveFormatError,
    IoFailureError,
    OperationCancelledError,
)
from secure_archive.strategies.staging import (
    atomic_output,
    check_extraction_limits,
    member_parts,
    partial_output_path,
    staging_directory,
)


def test_partial_path_is_hidden_sibling(tmp_path: Path) -> None:
    partial = partial_output_path(tmp_path / "out.zip")

    assert partial.parent == tmp_path
    assert partial.name.startswith(".out.zip.")
    assert partial.name.endswith(".partial")
    assert partial != partial_output_path(tmp_path / "out.zip")


def test_atomic_output_commits_on_success(tmp_path: Path) -> None:
    target = tmp_path / "out.zip"
    target.write_bytes(b"previous")

    with atomic_output(target) as partial:
        partial.write_bytes(b"new archive")
        assert target.read_bytes() == b"previous"

    assert target.read_bytes() == b"new archive"
    assert list(tmp_path.iterdir()) == [target]


def test_atomic_output_discards_on_failure(tmp_path: Path) -> None:
    target = tmp_path / "out.zip"
    target.write_bytes(b"previous")

    with pytest.raises(OperationCancelledError):
        with atomic_output(target) as partial:
            partial.write_bytes(b"half written")
            raise OperationCancelledError()

    assert target.read_bytes() == b"previous"
    assert list(tmp_path.iterdir()) == [target]


def test_atomic_output_failure_without_partial(tmp_path: Path) -> None:
    with pytest.raises(RuntimeError):
        with atomic_output(tmp_path / "out.zip"):
            raise RuntimeError("boom")

    assert list(tmp_path.iterdir()) == []


def test_staging_directory_merges_into_output(tmp_path: Path) -> None:
    (tmp_path / "keep.txt").write_text("untouched")
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "a.txt").write_text("old")

    with staging_directory(tmp_path) as staging:
        assert staging.parent == tmp_path
        assert staging.name.startswith(".")
        (staging / "docs").mkdir()
        (staging / "docs" / "a.txt").write_text("new")
        (staging / "docs" / "empty").mkdir()
        (staging / "top.txt").write_text("top")

    assert (tmp_path / "keep.txt").read_text() == "untouched"
    assert (tmp_path / "docs" / "a.txt").read_text() == "new"
    assert (tmp_path / "docs" / "empty").is_dir()
    assert (tmp_path / "top.txt").read_text() == "top"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["docs", "keep.txt", "top.txt"]


def test_staging_directory_discarded_on_failure(tmp_path: Path) -> None:
    (tmp_path / "keep.txt").write_text("untouched")

    with pytest.raises(OperationCancelledError):
        with staging_directory(tmp_path) as staging:
            (staging / "keep.txt").write_text("overwritten")
            (staging / "extra.txt").write_text("extra")
            raise OperationCancelledError()

    assert [p.name for p in tmp_path.iterdir()] == ["keep.txt"]
    assert (tmp_path / "keep.txt").read_text() == "untouched"


def test_folder_in_place_of_file_moves_nothing(tmp_path: Path) -> None:
    (tmp_path / "a.txt").mkdir()

    with pytest.raises(IoFailureError, match="folder of the same name") as exc_info:
        with staging_directory(tmp_path) as staging:
            (staging / "a.txt").write_text("a")
            (staging / "z.txt").write_text("z")

    assert exc_info.value.path == str(tmp_path / "a.txt")
    assert [p.name for p in tmp_path.iterdir()] == ["a.txt"]
    assert list((tmp_path / "a.txt").iterdir()) == []


def test_file_in_place_of_folder_moves_nothing(tmp_path: Path) -> None:
    (tmp_path / "docs").write_text("not a folder")

    with pytest.raises(IoFailureError, match="file of the same name"):
        with staging_directory(tmp_path) as staging:
            (staging / "a.txt").write_text("a")
            (staging / "docs").mkdir()
            (staging / "docs" / "b.txt").write_text("b")

    assert [p.name for p in tmp_path.iterdir()] == ["docs"]
    assert (tmp_path / "docs").read_text() == "not a folder"


def test_failed_move_restores_output(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "keep.txt").write_text("untouched")
    (tmp_path / "a.txt").write_text("old a")
    real_replace = os.replace

    def replace(src: str | os.PathLike[str], dst: str | os.PathLike[str]) -> None:
        if Path(src).name == "z.txt":
            raise PermissionError(13, "Permission denied", str(dst))
        real_replace(src, dst)

    monkeypatch.setattr(os, "replace", replace)
    with pytest.raises(PermissionError):
        with staging_directory(tmp_path) as staging:
            (staging / "a.txt").write_text("new a")
            (staging / "docs").mkdir()
            (staging / "docs" / "b.txt").write_text("b")
            (staging / "z.txt").write_text("z")
    monkeypatch.undo()

    assert sorted(p.name for p in tmp_path.iterdir()) == ["a.txt", "keep.txt"]
    assert (tmp_path / "a.txt").read_text() == "old a"
    assert (tmp_path / "keep.txt").read_text() == "untouched"


@pytest.mark.parametrize(
    ("name", "parts"),
    [
        ("a.txt", ("a.txt",)),
        ("docs/a.txt", ("docs", "a.txt")),
        ("docs/", ("docs",)),
        ("./docs//a.txt", ("docs", "a.txt")),
        ("docs\\a.txt", ("docs", "a.txt")),
        ("résumé/ünïcode.txt", ("résumé", "ünïcode.txt")),
    ],
)
def test_member_parts_accepts_relative_names(name: str, parts: tuple[str, ...]) -> None:
    assert member_parts(name) == parts


@pytest.mark.parametrize(
    ("name", "reason"),
    [
        ("/etc/passwd", "Absolute"),
        ("\\windows\\system32", "Absolute"),
        ("C:/boot.ini", "Absolute"),
        ("c:evil.txt", "Absolute"),
        ("../outside.txt", "escapes"),
        ("docs/../../outside.txt", "escapes"),
        ("docs\\..\\..\\outside.txt", "escapes"),
        ("bad\0name", "NUL"),
        ("", "Empty"),
        ("./", "Empty"),
    ],
)
def test_member_parts_refuses_unsafe_names(name: str, reason: str) -> None:
    with pytest.raises(ArchiveFormatError, match=reason) as exc_info:
        member_parts(name)

    assert exc_info.value.context["entry"] == name


def test_extraction_limits() -> None:
    config = ArchiveEngineConfig(max_archive_entries=10, max_extracted_size=1000)

    check_extraction_limits(10, 1000, config)
    with pytest.raises(ArchiveFormatError, match="too many entries"):
        check_extraction_limits(11, 0, config)
    with pytest.raises(ArchiveFormatError, match="too much data"):
        check_extraction_limits(1, 1001, config)
