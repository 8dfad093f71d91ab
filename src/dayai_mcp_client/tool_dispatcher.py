# dayai_mcp_client/tool_dispatcher.py
"""Route model tool calls to MCP servers or to locally registered handlers."""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from .mcp_session import MCPSessionManager
from .tool_names import mcp_tools_to_claude_format, parse_mcp_tool_name
from .utils import maybe_await

logger = logging.getLogger(__name__)

LocalToolHandler = Callable[
    [Dict[str, Any], Optional[str]], Union[Any, Awaitable[Any]]
]


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str
    name: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Outcome of one tool call, successful or not."""

    tool_call_id: str
    tool_name: str
    success: bool
    result: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, tool_call: ToolCall, result: Any) -> "ToolResult":
        return cls(
            tool_call_id=tool_call.id,
            tool_name=tool_call.name,
            success=True,
            result=result,
        )

    @classmethod
    def failed(cls, tool_call: ToolCall, error: str) -> "ToolResult":
        return cls(
            tool_call_id=tool_call.id,
            tool_name=tool_call.name,
            success=False,
            error=error,
        )


class ToolDispatcher:
    """
    Executes tool calls for a conversation.

    Names of the form ``mcp__{server}__{tool}`` go to the session manager;
    every other name must have been registered with ``register``. Failures
    never raise: they come back as a ``ToolResult`` with ``success=False``.
    """

    def __init__(self, session_manager: Optional[MCPSessionManager] = None):
        self.sessions = session_manager
        self._handlers: Dict[str, LocalToolHandler] = {}
        self._definitions: Dict[str, Dict[str, Any]] = {}

    def register(
        self,
        name: str,
        handler: LocalToolHandler,
        definition: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Register a local tool.

        Args:
            name: Tool name (must not look like an MCP tool name)
            handler: Called with ``(parameters, note_id)``; may be async
            definition: Tool definition advertised to the model
        """
        if parse_mcp_tool_name(name) is not None:
            raise ValueError(f"Local tool name collides with MCP namespace: {name}")
        self._handlers[name] = handler
        if definition is not None:
            self._definitions[name] = definition

    def tool_definitions(self) -> List[Dict[str, Any]]:
        """Local tool definitions followed by those of every connected server."""
        definitions = list(self._definitions.values())
        if self.sessions is not None:
            definitions.extend(mcp_tools_to_claude_format(self.sessions.get_all_tools()))
        return definitions

    async def execute(
        self, tool_call: ToolCall, note_id: Optional[str] = None
    ) -> ToolResult:
        """
        Execute a tool call.

        Args:
            tool_call: The call to execute
            note_id: Id of the note the conversation is about, for local tools

        Returns:
            The tool result
        """
        mcp_tool = parse_mcp_tool_name(tool_call.name)
        if mcp_tool is not None and self.sessions is not None:
            server_id, tool_name = mcp_tool
            logger.debug(f"Calling MCP tool {tool_name} on {server_id}")
            try:
                result = await self.sessions.call_tool(
                    server_id, tool_name, tool_call.parameters
                )
            except Exception as e:
                logger.warning(f"MCP tool {tool_call.name} failed: {e}")
                return ToolResult.failed(tool_call, str(e) or "Unknown error")
            return ToolResult.ok(tool_call, result)

        handler = self._handlers.get(tool_call.name)
        if handler is None:
            return ToolResult.failed(tool_call, f"Unknown tool: {tool_call.name}")

        try:
            result = await maybe_await(handler(tool_call.parameters, note_id))
        except Exception as e:
            logger.warning(f"Tool {tool_call.name} failed: {e}")
            return ToolResult.failed(tool_call, str(e) or "Unknown error")
        return ToolResult.ok(tool_call, result)
