"""Tests for the MCP JSON-RPC transport."""

import json

import httpx
import pytest

from dayai_mcp_client.config import ClientInfo
from dayai_mcp_client.exceptions import AuthFailureError, MCPError, MCPTransportError
from dayai_mcp_client.mcp_transport import MCPTransport

ENDPOINT = "https://day.test/api/mcp"


def transport_for(handler, token="tok"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MCPTransport(ENDPOINT, token, client, client_info=ClientInfo(name="Test"))


class TestMCPTransport:
    """Test MCPTransport request handling."""

    async def test_initialize_handshake(self, http_client, fake_server):
        """Test initialize sends client info and captures the session id."""
        tokens = fake_server.token_set()
        transport = MCPTransport(ENDPOINT, tokens.access_token, http_client)

        result = await transport.initialize()

        assert result["serverInfo"]["name"] == "day-ai"
        assert transport.session_id == "session-1"
        assert transport.initialized is True
        params = fake_server.initialize_requests[0]
        assert params["protocolVersion"] == "2025-06-18"
        assert params["clientInfo"] == {"name": "Day AI SDK", "version": "0.1.0"}

    async def test_sse_responses(self, http_client, fake_server):
        """Test event-stream responses are decoded."""
        fake_server.use_sse = True
        transport = MCPTransport(ENDPOINT, fake_server.token_set().access_token, http_client)

        await transport.initialize()
        tools = await transport.list_tools()

        assert [t["name"] for t in tools] == ["search_objects", "echo_text", "explode"]

    async def test_headers_after_initialize(self):
        """Test bearer, session id and protocol version headers."""
        seen = []

        def handler(request):
            seen.append(request.headers)
            body = json.loads(request.content)
            if "id" not in body:
                return httpx.Response(202)
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": body["id"], "result": {}},
                headers={"mcp-session-id": "abc"},
            )

        transport = transport_for(handler)
        await transport.initialize()
        await transport.request("ping")

        assert seen[0]["authorization"] == "Bearer tok"
        assert "mcp-session-id" not in seen[0]
        assert "mcp-protocol-version" not in seen[0]
        assert seen[-1]["mcp-session-id"] == "abc"
        assert seen[-1]["mcp-protocol-version"] == "2025-06-18"
        assert "text/event-stream" in seen[-1]["accept"]

    async def test_unauthorized(self):
        """Test HTTP 401 raises AuthFailureError with the status."""
        transport = transport_for(lambda request: httpx.Response(401, text="invalid token"))

        with pytest.raises(AuthFailureError) as exc_info:
            await transport.request("tools/list")

        assert exc_info.value.status_code == 401

    async def test_server_error(self):
        transport = transport_for(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(MCPTransportError) as exc_info:
            await transport.request("tools/list")

        assert exc_info.value.status_code == 500
        assert not isinstance(exc_info.value, AuthFailureError)
        assert "boom" in str(exc_info.value)

    async def test_jsonrpc_error(self):
        def handler(request):
            body = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "jsonrpc": "2.0",
                    "id": body["id"],
                    "error": {"code": -32602, "message": "Invalid params"},
                },
            )

        with pytest.raises(MCPError) as exc_info:
            await transport_for(handler).request("tools/call", {"name": "x"})

        assert exc_info.value.code == -32602
        assert str(exc_info.value) == "JSON-RPC Error -32602: Invalid params"

    async def test_list_tools_pagination(self):
        """Test nextCursor is followed until exhausted."""
        cursors = []

        def handler(request):
            body = json.loads(request.content)
            cursor = body["params"].get("cursor")
            cursors.append(cursor)
            if cursor is None:
                result = {"tools": [{"name": "a"}], "nextCursor": "page2"}
            else:
                result = {"tools": [{"name": "b"}]}
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

        tools = await transport_for(handler).list_tools()

        assert [t["name"] for t in tools] == ["a", "b"]
        assert cursors == [None, "page2"]

    async def test_close_deletes_session(self, http_client, fake_server):
        transport = MCPTransport(ENDPOINT, fake_server.token_set().access_token, http_client)
        await transport.initialize()

        await transport.close()
        await transport.close()

        assert fake_server.sessions_deleted == 1
        with pytest.raises(MCPTransportError, match="closed"):
            await transport.request("tools/list")

    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(MCPTransportError) as exc_info:
            await transport_for(handler).request("tools/list")

        assert exc_info.value.status_code is None

    async def test_close_failure_raised(self, http_client, fake_server):
        """Test a rejected DELETE is reported to the caller."""
        transport = MCPTransport(ENDPOINT, fake_server.token_set().access_token, http_client)
        await transport.initialize()
        fake_server.fail_delete = True

        with pytest.raises(MCPTransportError) as exc_info:
            await transport.close()

        assert exc_info.value.status_code == 500
