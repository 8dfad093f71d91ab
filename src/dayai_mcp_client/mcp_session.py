# dayai_mcp_client/mcp_session.py
"""MCP session manager: connections, tool calls and token-refresh recovery."""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from .config import ClientInfo
from .exceptions import (
    AuthFailureError,
    MCPToolError,
    NotConnectedError,
    RefreshError,
    RefreshFailureReason,
)
from .mcp_transport import MCPTransport
from .oauth_config import ClientRegistration, TokenSet, ToolInfo
from .token_refresher import TokenRefresher, is_stale
from .utils import DEFAULT_TIMEOUT, best_effort, maybe_await

logger = logging.getLogger(__name__)

AUTH_ERROR_PATTERNS = (
    "401",
    "unauthorized",
    "invalid token",
    "token expired",
    "authentication",
)


class ConnectionState(Enum):
    """Lifecycle of one server connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STALE = "stale"
    REFRESHING = "refreshing"
    FAILED = "failed"


@dataclass
class ServerConnection:
    """A live, authenticated MCP session with one server."""

    server_id: str
    endpoint_url: str
    tokens: TokenSet
    transport: MCPTransport
    tools: List[ToolInfo] = field(default_factory=list)
    refresher: Optional[TokenRefresher] = None
    state: ConnectionState = ConnectionState.CONNECTED
    failure_reason: Optional[RefreshFailureReason] = None
    refresh_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def registration(self) -> Optional[ClientRegistration]:
        return self.refresher.registration if self.refresher else None

    @property
    def can_refresh(self) -> bool:
        return self.refresher is not None and self.tokens.can_refresh


def is_auth_error(error: BaseException) -> bool:
    """
    Decide whether a failed call should trigger a token refresh.

    A structured HTTP status wins when the error carries one; otherwise the
    message is matched against known authentication failure phrases.
    """
    status_code = getattr(error, "status_code", None)
    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
    if status_code is not None:
        return status_code == 401

    message = str(error).lower()
    return any(pattern in message for pattern in AUTH_ERROR_PATTERNS)


def decode_tool_result(result: Dict[str, Any]) -> Any:
    """
    Extract the useful value from a ``tools/call`` result.

    A single text block is JSON-decoded when possible, falling back to the
    raw text. Anything else is returned as the content list.

    Raises:
        MCPToolError: If the tool reported ``isError``
    """
    content = result.get("content") or []

    if result.get("isError"):
        message = "\n".join(
            block.get("text", "") if block.get("type") == "text" else json.dumps(block)
            for block in content
        )
        raise MCPToolError(message or "Tool call failed")

    if len(content) == 1 and content[0].get("type") == "text":
        text = content[0].get("text", "")
        try:
            return json.loads(text)
        except ValueError:
            return text

    return content


class MCPSessionManager:
    """
    Owns the ``server_id -> ServerConnection`` map for one process.

    Construct once and pass by reference. All map mutations happen under a
    single lock; token refresh is serialized per connection.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        *,
        client_info: Optional[ClientInfo] = None,
        clock: Callable[[], float] = time.time,
        on_failure: Optional[Callable[[str], Any]] = None,
    ):
        """
        Initialize session manager.

        Args:
            http_client: Shared HTTP client (created and owned if not provided)
            client_info: Client name/version sent in ``initialize``
            clock: Source of the current Unix time
            on_failure: Called with the server id when a connection needs
                re-authorization (sync or async)
        """
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
        self.client_info = client_info or ClientInfo()
        self.clock = clock
        self.on_failure = on_failure

        self._connections: Dict[str, ServerConnection] = {}
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "MCPSessionManager":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def connect(
        self,
        server_id: str,
        endpoint_url: str,
        tokens: TokenSet,
        *,
        refresher: Optional[TokenRefresher] = None,
    ) -> List[ToolInfo]:
        """
        Connect to an MCP server, replacing any existing connection for it.

        Args:
            server_id: Identifier used for namespacing and lookups
            endpoint_url: MCP endpoint URL
            tokens: Tokens for the bearer header; refreshed in place later
            refresher: Enables proactive and reactive token refresh

        Returns:
            The server's tools
        """
        if "__" in server_id:
            raise ValueError(f"Server id may not contain '__': {server_id!r}")

        async with self._lock:
            existing = self._connections.pop(server_id, None)
            if existing is not None:
                await self._close_connection(existing)

            logger.info(f"Connecting to MCP server {server_id} at {endpoint_url}")
            transport, tools = await self._open(server_id, endpoint_url, tokens)
            self._connections[server_id] = ServerConnection(
                server_id=server_id,
                endpoint_url=endpoint_url,
                tokens=tokens,
                transport=transport,
                tools=tools,
                refresher=refresher,
            )

        logger.info(f"Connected to {server_id}, {len(tools)} tools available")
        return tools

    async def disconnect(self, server_id: str) -> None:
        """Close the connection for ``server_id``; unknown ids are ignored."""
        async with self._lock:
            connection = self._connections.pop(server_id, None)
            if connection is not None:
                await self._close_connection(connection)
                logger.info(f"Disconnected from {server_id}")

    async def disconnect_all(self) -> None:
        for server_id in self.connected_server_ids():
            await self.disconnect(server_id)

    async def aclose(self) -> None:
        """Disconnect every server and release the HTTP client if owned."""
        await self.disconnect_all()
        if self._owns_client:
            await self.http_client.aclose()

    def is_connected(self, server_id: str) -> bool:
        return server_id in self._connections

    def connected_server_ids(self) -> List[str]:
        return list(self._connections)

    def get_connection(self, server_id: str) -> ServerConnection:
        connection = self._connections.get(server_id)
        if connection is None:
            raise NotConnectedError(server_id)
        return connection

    def list_tools(self, server_id: str) -> List[ToolInfo]:
        return list(self.get_connection(server_id).tools)

    def get_all_tools(self) -> List[ToolInfo]:
        tools: List[ToolInfo] = []
        for connection in self._connections.values():
            tools.extend(connection.tools)
        return tools

    async def call_tool(
        self,
        server_id: str,
        tool_name: str,
        arguments: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Call a tool, refreshing the token proactively or after an auth failure.

        An authentication failure triggers exactly one refresh, reconnect and
        retry. A second authentication failure is raised to the caller.

        Raises:
            NotConnectedError: No connection for ``server_id``
            RefreshError: The token could not be refreshed
            AuthFailureError: The call was still unauthorized after refreshing
        """
        async with self._lock:
            connection = self.get_connection(server_id)

        if connection.state is ConnectionState.FAILED:
            raise RefreshError(
                f"Connection to {server_id} requires re-authorization",
                reason=connection.failure_reason or RefreshFailureReason.REJECTED,
            )

        args = arguments or {}

        if self._is_stale(connection):
            await self._proactive_refresh(connection)

        transport = connection.transport
        try:
            return await self._execute_tool_call(transport, tool_name, args)
        except Exception as e:
            if not is_auth_error(e) or not connection.can_refresh:
                raise
            logger.info(
                f"Auth error calling {tool_name} on {server_id}, refreshing token and retrying"
            )
            await self._refresh_and_reconnect(connection, transport.access_token)

        try:
            return await self._execute_tool_call(connection.transport, tool_name, args)
        except Exception as e:
            if is_auth_error(e):
                logger.error(f"Still unauthorized after token refresh for {server_id}")
                raise AuthFailureError(
                    "Authentication failed after token refresh",
                    status_code=getattr(e, "status_code", None),
                    detail=str(e),
                ) from e
            raise

    def _is_stale(self, connection: ServerConnection) -> bool:
        if connection.refresher is not None:
            return connection.refresher.is_stale(connection.tokens)
        return is_stale(connection.tokens, self.clock())

    async def _proactive_refresh(self, connection: ServerConnection) -> None:
        if not connection.can_refresh:
            if connection.tokens.is_expired(self.clock()):
                await self._mark_failed(connection, RefreshFailureReason.NO_REFRESH_TOKEN)
                raise RefreshError(
                    f"Token for {connection.server_id} expired and cannot be refreshed",
                    reason=RefreshFailureReason.NO_REFRESH_TOKEN,
                )
            logger.debug(f"Token for {connection.server_id} is stale but not refreshable")
            return

        connection.state = ConnectionState.STALE
        logger.info(f"Token for {connection.server_id} near expiry, refreshing")
        await self._refresh_and_reconnect(connection, connection.transport.access_token)

    async def _refresh_and_reconnect(
        self, connection: ServerConnection, observed_token: str
    ) -> None:
        """
        Refresh the token and re-establish the session.

        ``observed_token`` is the bearer token of the session the caller used.
        If a newer session was installed while waiting for the lock, another
        caller already refreshed. If the tokens were refreshed but the
        reconnect did not complete, only the reconnect is repeated.
        """
        async with connection.refresh_lock:
            if self._connections.get(connection.server_id) is not connection:
                raise NotConnectedError(connection.server_id)
            if connection.state is ConnectionState.FAILED:
                raise RefreshError(
                    f"Token refresh for {connection.server_id} already failed",
                    reason=connection.failure_reason or RefreshFailureReason.REJECTED,
                )
            if connection.transport.access_token != observed_token:
                logger.debug(f"Token for {connection.server_id} already refreshed")
                return

            if connection.tokens.access_token == observed_token:
                await self._refresh(connection)
            else:
                logger.debug(f"Token for {connection.server_id} refreshed, reconnecting")

            await self._reconnect(connection)

    async def _refresh(self, connection: ServerConnection) -> None:
        if connection.refresher is None:
            raise RefreshError(
                f"No token refresher configured for {connection.server_id}",
                reason=RefreshFailureReason.NO_REFRESH_TOKEN,
            )

        connection.state = ConnectionState.REFRESHING
        try:
            await connection.refresher.refresh(connection.tokens)
        except RefreshError as e:
            logger.error(f"Token refresh failed for {connection.server_id}: {e}")
            if e.requires_reauthorization:
                await self._mark_failed(connection, e.reason)
            else:
                connection.state = ConnectionState.STALE
            raise

    async def _mark_failed(
        self, connection: ServerConnection, reason: RefreshFailureReason
    ) -> None:
        connection.state = ConnectionState.FAILED
        connection.failure_reason = reason
        if self.on_failure is not None:
            async with best_effort(f"Reporting failed connection {connection.server_id}"):
                await maybe_await(self.on_failure(connection.server_id))

    async def _reconnect(self, connection: ServerConnection) -> None:
        connection.state = ConnectionState.CONNECTING
        try:
            transport, tools = await self._open(
                connection.server_id, connection.endpoint_url, connection.tokens
            )
        except Exception:
            connection.state = ConnectionState.STALE
            raise

        async with self._lock:
            if self._connections.get(connection.server_id) is not connection:
                async with best_effort(f"Closing MCP session for {connection.server_id}"):
                    await transport.close()
                logger.info(f"{connection.server_id} was disconnected during token refresh")
                raise NotConnectedError(connection.server_id)

            old_transport = connection.transport
            connection.transport = transport
            connection.tools = tools
            connection.state = ConnectionState.CONNECTED

        async with best_effort(f"Closing previous session for {connection.server_id}"):
            await old_transport.close()
        logger.info(f"Token refreshed and reconnected to {connection.server_id}")

    async def _open(
        self, server_id: str, endpoint_url: str, tokens: TokenSet
    ) -> Tuple[MCPTransport, List[ToolInfo]]:
        transport = MCPTransport(
            endpoint_url,
            tokens.access_token,
            self.http_client,
            client_info=self.client_info,
        )
        try:
            await transport.initialize()
            raw_tools = await transport.list_tools()
        except BaseException:
            async with best_effort(f"Closing MCP transport for {server_id}"):
                await transport.close()
            raise
        return transport, [ToolInfo.from_mcp(server_id, tool) for tool in raw_tools]

    async def _execute_tool_call(
        self, transport: MCPTransport, tool_name: str, arguments: Dict[str, Any]
    ) -> Any:
        result = await transport.call_tool(tool_name, arguments)
        return decode_tool_result(result)

    async def _close_connection(self, connection: ServerConnection) -> None:
        connection.state = ConnectionState.DISCONNECTED
        async with best_effort(f"Closing MCP session for {connection.server_id}"):
            await connection.transport.close()
