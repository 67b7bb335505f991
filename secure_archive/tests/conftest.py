from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from secure_archive.config import ArchiveEngineConfig
from secure_archive.tests.utils.recording_sink import RecordingSink
from secure_archive.tools.external_tool import clear_tool_cache


@pytest.fixture
def make_tree(tmp_path: Path) -> Callable[..., Path]:
    """Create files under a root from a {relative path: content} mapping.

    Keys ending with '/' create empty directories.
    """

    def _make(layout: dict[str, bytes | str], root: Path | None = None) -> Path:
        root = root or tmp_path / "src"
        root.mkdir(parents=True, exist_ok=True)
        for name, content in layout.items():
            path = root / name
            if name.endswith("/"):
                path.mkdir(parents=True, exist_ok=True)
                continue
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, str):
                content = content.encode()
            path.write_bytes(content)
        return root

    return _make


@pytest.fixture
def small_chunks_config() -> ArchiveEngineConfig:
    return ArchiveEngineConfig(chunk_size=1024)


@pytest.fixture
def recorder() -> RecordingSink:
    return RecordingSink()


@pytest.fixture(autouse=True)
def _reset_tool_cache() -> Iterator[None]:
    clear_tool_cache()
    yield
    clear_tool_cache()
