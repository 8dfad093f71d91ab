# dayai_mcp_client/tool_names.py
"""Namespacing of remote MCP tool names for downstream model APIs."""

from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple

if TYPE_CHECKING:
    from .oauth_config import ToolInfo

MCP_TOOL_PREFIX = "mcp__"
SEPARATOR = "__"


def format_tool_name(server_id: str, tool_name: str) -> str:
    """Expose tool ``foo`` on server ``bar`` as ``mcp__bar__foo``."""
    if SEPARATOR in server_id:
        raise ValueError(f"Server id may not contain '{SEPARATOR}': {server_id!r}")
    return f"{MCP_TOOL_PREFIX}{server_id}{SEPARATOR}{tool_name}"


def parse_mcp_tool_name(prefixed_name: str) -> Optional[Tuple[str, str]]:
    """
    Split a namespaced tool name into ``(server_id, tool_name)``.

    The tool name is everything after the first separator, so it may itself
    contain ``__``. Returns None for names that are not namespaced MCP tools.
    """
    if not prefixed_name.startswith(MCP_TOOL_PREFIX):
        return None

    server_id, sep, tool_name = prefixed_name[len(MCP_TOOL_PREFIX) :].partition(
        SEPARATOR
    )
    if not sep or not server_id or not tool_name:
        return None
    return server_id, tool_name


def mcp_tools_to_claude_format(tools: Iterable["ToolInfo"]) -> List[Dict[str, Any]]:
    """Convert cached MCP tools into model tool definitions."""
    return [
        {
            "name": tool.qualified_name,
            "description": f"[{tool.server_id}] {tool.description}",
            "input_schema": tool.input_schema,
        }
        for tool in tools
    ]
