"""
External archiver integration.
"""

from secure_archive.tools.external_tool import (
    ExternalToolAdapter,
    ToolHandle,
    clear_tool_cache,
    sanitize_args_for_log,
)

__all__ = [
    "ExternalToolAdapter",
    "ToolHandle",
    "clear_tool_cache",
    "sanitize_args_for_log",
]
