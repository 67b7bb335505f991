from collections.abc import Callable
from pathlib import Path
from unittest.mock import Mock

import pytest

from secure_archive.crypto.secret import SecretPassword
from secure_archive.models.archive import FileEntry
from secure_archive.services.path_expander import PathExpander
from secure_archive.tests.strategies.constants import SAMPLE_LISTING
from secure_archive.tools.external_tool import ExternalToolAdapter, ToolHandle


@pytest.fixture
def password() -> SecretPassword:
    return SecretPassword.from_string("Tr0ub4dor&3")


@pytest.fixture
def expand() -> Callable[..., list[FileEntry]]:
    expander = PathExpander()

    def _expand(*paths: Path) -> list[FileEntry]:
        return expander.expand(expander.inspect([str(p) for p in paths]))

    return _expand


@pytest.fixture
def tool_handle() -> ToolHandle:
    return ToolHandle(path=Path("/usr/bin/7z"), version="16.02", supports_progress=True)


@pytest.fixture
def mock_adapter(tool_handle: ToolHandle) -> Mock:
    """Adapter whose `run` behaves like a successful tool invocation.

    Archive creation writes the partial output; extraction writes the members
    of SAMPLE_LISTING into the -o directory.
    """

    def _run(tool, args, cwd, *, progress=None, cancel=None, partial_output=None) -> int:
        if partial_output is not None:
            partial_output.write_bytes(b"7z\xbc\xaf\x27\x1c fake archive")
        for arg in args:
            if arg.startswith("-o"):
                out = Path(arg[2:])
                (out / "b").mkdir()
                (out / "a.txt").write_text("hello")
                (out / "b" / "c.txt").write_text("world")
        if progress is not None:
            progress.on_progress(50)
            progress.on_progress(100)
        return 0

    adapter = Mock(spec=ExternalToolAdapter)
    adapter.locate.return_value = tool_handle
    adapter.run.side_effect = _run
    adapter.capture.return_value = SAMPLE_LISTING
    return adapter
