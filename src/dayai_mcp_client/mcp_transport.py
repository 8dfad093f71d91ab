# dayai_mcp_client/mcp_transport.py
"""Bearer-authenticated JSON-RPC 2.0 transport for an MCP HTTP endpoint."""

import itertools
import logging
from typing import Any, Dict, List, Optional

import httpx

from .config import MCP_PROTOCOL_VERSION, ClientInfo
from .exceptions import AuthFailureError, MCPError, MCPTransportError
from .sse import parse_sse_json
from .utils import response_detail

logger = logging.getLogger(__name__)

JSONRPC_INTERNAL_ERROR = -32603


class MCPTransport:
    """
    One MCP session over streamable HTTP.

    The access token is fixed for the lifetime of the transport; a token
    refresh is followed by a new transport.
    """

    def __init__(
        self,
        endpoint_url: str,
        access_token: str,
        http_client: httpx.AsyncClient,
        *,
        client_info: Optional[ClientInfo] = None,
        protocol_version: str = MCP_PROTOCOL_VERSION,
    ):
        self.endpoint_url = endpoint_url
        self.http_client = http_client
        self.client_info = client_info or ClientInfo()
        self.protocol_version = protocol_version

        self.session_id: Optional[str] = None
        self.server_info: Optional[Dict[str, Any]] = None
        self.initialized = False
        self.closed = False

        self._access_token = access_token
        self._ids = itertools.count(1)

    @property
    def access_token(self) -> str:
        """Bearer token this session sends; fixed at construction."""
        return self._access_token

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Accept": "application/json, text/event-stream",
        }
        if self.session_id:
            headers["Mcp-Session-Id"] = self.session_id
        if self.initialized:
            headers["MCP-Protocol-Version"] = self.protocol_version
        return headers

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        if self.closed:
            raise MCPTransportError("MCP transport is closed")

        try:
            response = await self.http_client.post(
                self.endpoint_url, json=payload, headers=self._headers()
            )
        except httpx.HTTPError as e:
            raise MCPTransportError("MCP request failed", detail=str(e)) from e

        if response.status_code == 401:
            raise AuthFailureError(
                "HTTP 401: Unauthorized",
                status_code=401,
                detail=response.text.strip() or None,
            )
        if not response.is_success:
            raise MCPTransportError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
                detail=response_detail(response),
            )

        session_id = response.headers.get("mcp-session-id")
        if session_id:
            self.session_id = session_id
        return response

    def _decode(self, response: httpx.Response, request_id: int) -> Dict[str, Any]:
        content_type = response.headers.get("content-type", "")
        try:
            if content_type.startswith("text/event-stream"):
                return parse_sse_json(response.text.splitlines(), request_id)
            return response.json()
        except ValueError as e:
            raise MCPTransportError(
                "MCP endpoint returned an invalid response", detail=str(e)
            ) from e

    async def request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Send a JSON-RPC request and return its ``result``.

        Raises:
            AuthFailureError: The endpoint answered 401
            MCPTransportError: Any other HTTP or decoding failure
            MCPError: The endpoint returned a JSON-RPC error object
        """
        request_id = next(self._ids)
        payload: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            payload["params"] = params

        logger.debug(f"MCP request {request_id}: {method}")
        response = await self._post(payload)
        message = self._decode(response, request_id)

        error = message.get("error")
        if error:
            raise MCPError(
                error.get("code", JSONRPC_INTERNAL_ERROR),
                error.get("message", "Unknown error"),
                error.get("data"),
            )
        return message.get("result", {})

    async def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Send a JSON-RPC notification (no response expected)."""
        payload: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            payload["params"] = params
        await self._post(payload)

    async def initialize(self) -> Dict[str, Any]:
        """Perform the MCP handshake."""
        result = await self.request(
            "initialize",
            {
                "protocolVersion": self.protocol_version,
                "capabilities": {"tools": {}},
                "clientInfo": self.client_info.model_dump(),
            },
        )
        self.server_info = result.get("serverInfo")
        self.protocol_version = result.get("protocolVersion", self.protocol_version)
        self.initialized = True
        await self.notify("notifications/initialized")
        logger.debug(f"MCP session initialized: {self.server_info}")
        return result

    async def list_tools(self) -> List[Dict[str, Any]]:
        """Fetch the complete tool catalogue, following pagination cursors."""
        tools: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            result = await self.request("tools/list", {"cursor": cursor} if cursor else {})
            tools.extend(result.get("tools", []))
            cursor = result.get("nextCursor")
            if not cursor:
                return tools

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request("tools/call", {"name": name, "arguments": arguments})

    async def close(self) -> None:
        """End the MCP session. Network errors propagate to the caller."""
        if self.closed:
            return
        self.closed = True
        if not self.session_id:
            return

        response = await self.http_client.delete(self.endpoint_url, headers=self._headers())
        # 405: server does not support explicit session termination
        if not response.is_success and response.status_code != 405:
            raise MCPTransportError(
                "Closing MCP session failed",
                status_code=response.status_code,
                detail=response_detail(response),
            )
