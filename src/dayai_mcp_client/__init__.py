"""Day AI MCP Client - OAuth 2.0 and MCP tool calling for the Day AI platform.

This library connects to the Day AI MCP server on behalf of a user,
implementing:
- Dynamic Client Registration (RFC 7591)
- Authorization Code Flow with PKCE and a loopback redirect
- Proactive and reactive token refresh, and token revocation
- MCP sessions over streamable HTTP with retry on authentication failure
- Namespaced tool dispatch for model-driven applications
- Bearer-authenticated REST and GraphQL requests
"""

from .api_client import DayAIClient, WorkspaceMetadata
from .config import ClientInfo, ServerConfig
from .exceptions import (
    AuthFailureError,
    AuthorizationError,
    CsrfError,
    DayAIAPIError,
    DayAIError,
    FlowCancelledError,
    FlowInProgressError,
    FlowTimeoutError,
    MCPError,
    MCPToolError,
    MCPTransportError,
    NotConnectedError,
    OAuthFlowError,
    RefreshError,
    RefreshFailureReason,
    RegistrationError,
    TokenExchangeError,
)
from .mcp_session import ConnectionState, MCPSessionManager, ServerConnection
from .notes import Note, NoteBook, register_note_tools
from .oauth_config import (
    AuthorizationState,
    ClientRegistration,
    OAuthConfig,
    ServerRecord,
    TokenSet,
    ToolInfo,
)
from .oauth_flow import AuthorizationCodeFlow, FlowState
from .oauth_handler import OAuthHandler
from .pkce import PKCEPair
from .registration import register_client
from .sse import parse_sse_json
from .token_manager import ConnectionStore
from .token_refresher import TokenRefresher
from .tool_dispatcher import ToolCall, ToolDispatcher, ToolResult
from .tool_names import format_tool_name, mcp_tools_to_claude_format, parse_mcp_tool_name

__version__ = "0.1.0"

__all__ = [
    "AuthFailureError",
    "AuthorizationCodeFlow",
    "AuthorizationError",
    "AuthorizationState",
    "ClientInfo",
    "ClientRegistration",
    "ConnectionState",
    "ConnectionStore",
    "CsrfError",
    "DayAIAPIError",
    "DayAIClient",
    "DayAIError",
    "FlowCancelledError",
    "FlowInProgressError",
    "FlowState",
    "FlowTimeoutError",
    "MCPError",
    "MCPSessionManager",
    "MCPToolError",
    "MCPTransportError",
    "Note",
    "NoteBook",
    "NotConnectedError",
    "OAuthConfig",
    "OAuthFlowError",
    "OAuthHandler",
    "PKCEPair",
    "RefreshError",
    "RefreshFailureReason",
    "RegistrationError",
    "ServerConfig",
    "ServerConnection",
    "ServerRecord",
    "TokenExchangeError",
    "TokenRefresher",
    "TokenSet",
    "ToolCall",
    "ToolDispatcher",
    "ToolInfo",
    "ToolResult",
    "WorkspaceMetadata",
    "format_tool_name",
    "mcp_tools_to_claude_format",
    "parse_mcp_tool_name",
    "parse_sse_json",
    "register_client",
    "register_note_tools",
]
