"""Shared fixtures: an in-process fake of the Day AI OAuth and MCP endpoints."""

import asyncio
import json
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

import httpx
import pytest

from dayai_mcp_client.config import ServerConfig
from dayai_mcp_client.oauth_config import ClientRegistration, TokenSet

BASE_URL = "https://day.test"

FAKE_TOOLS = [
    {
        "name": "search_objects",
        "title": "Search objects",
        "description": "Search CRM objects",
        "inputSchema": {
            "type": "object",
            "properties": {"query": {"type": "string"}},
        },
    },
    {
        "name": "echo_text",
        "description": "Echo text back",
        "inputSchema": {"type": "object"},
    },
    {
        "name": "explode",
        "description": "Always reports an error",
    },
]


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDayAI:
    """Serves registration, token, revocation, GraphQL and MCP requests."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.expires_in = 3600
        self.rotate_refresh_tokens = False
        self.use_sse = False
        self.revoke_on_refresh = False
        self.delay = 0.0
        self.hold_method: Optional[str] = None
        self.held = asyncio.Event()
        self.release = asyncio.Event()

        self.valid_access_tokens = set()
        self.valid_refresh_tokens = set()
        self._counter = 0

        self.registrations = 0
        self.token_requests: List[Dict[str, str]] = []
        self.refresh_count = 0
        self.reject_refresh = False
        self.revoked: List[Dict[str, str]] = []
        self.fail_revocation = False

        self.tool_call_attempts = 0
        self.reject_tool_calls = 0
        self.sessions_opened = 0
        self.sessions_deleted = 0
        self.fail_delete = False
        self.fail_next_initialize = False
        self.initialize_requests: List[Dict[str, Any]] = []
        self.unauthorized_requests = 0
        self.graphql_requests: List[Dict[str, Any]] = []

    # --- helpers -------------------------------------------------------------

    def issue_tokens(self, with_refresh: bool = True) -> Dict[str, Any]:
        self._counter += 1
        access = f"access-{self._counter}"
        self.valid_access_tokens.add(access)
        payload: Dict[str, Any] = {
            "access_token": access,
            "token_type": "bearer",
            "expires_in": self.expires_in,
        }
        if with_refresh:
            refresh = f"refresh-{self._counter}"
            self.valid_refresh_tokens.add(refresh)
            payload["refresh_token"] = refresh
        return payload

    def token_set(self, expires_in: Optional[float] = None, with_refresh: bool = True) -> TokenSet:
        """Tokens the server accepts, as if obtained from a previous flow."""
        tokens = TokenSet.from_token_response(
            self.issue_tokens(with_refresh), now=self.clock()
        )
        if expires_in is not None:
            tokens.expires_at = self.clock() + expires_in
        return tokens

    def revoke_access(self, access_token: str) -> None:
        self.valid_access_tokens.discard(access_token)

    # --- routing -------------------------------------------------------------

    async def handle_async(self, request: httpx.Request) -> httpx.Response:
        """
        Answer like ``handle`` but yield to the event loop first.

        ``delay`` lets concurrent callers interleave. ``hold_method`` parks the
        next MCP request with that JSON-RPC method until ``release`` is set.
        """
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.hold_method and request.url.path == "/api/mcp" and request.method == "POST":
            if json.loads(request.content).get("method") == self.hold_method:
                self.hold_method = None
                self.held.set()
                await self.release.wait()
        return self.handle(request)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/oauth/register" and request.method == "POST":
            return self._register(request)
        if path == "/api/oauth" and request.method == "POST":
            return self._token(request)
        if path == "/api/oauth/revoke" and request.method == "POST":
            return self._revoke(request)
        if path == "/api/mcp":
            return self._mcp(request)
        if path == "/api/graphql" and request.method == "POST":
            return self._graphql(request)
        return httpx.Response(404, text="not found")

    def _authorized(self, request: httpx.Request) -> bool:
        auth = request.headers.get("authorization", "")
        token = auth[len("Bearer ") :] if auth.startswith("Bearer ") else None
        if token in self.valid_access_tokens:
            return True
        self.unauthorized_requests += 1
        return False

    def _graphql(self, request: httpx.Request) -> httpx.Response:
        if not self._authorized(request):
            return httpx.Response(401, json={"error": "Invalid access token"})
        body = json.loads(request.content)
        self.graphql_requests.append(body)
        if "broken" in body["query"]:
            return httpx.Response(200, json={"errors": [{"message": "Unknown field broken"}]})
        return httpx.Response(200, json={"data": {"echo": body.get("variables")}})

    def _metadata(self, request: httpx.Request) -> httpx.Response:
        if not self._authorized(request):
            return httpx.Response(401, json={"error": "Invalid access token"})
        return httpx.Response(
            200,
            json={"workspaceId": "ws-1", "workspaceName": "Acme Corp", "userId": "user-1"},
        )

    def _register(self, request: httpx.Request) -> httpx.Response:
        self.registrations += 1
        body = json.loads(request.content)
        return httpx.Response(
            201,
            json={
                "client_id": f"client-{self.registrations}",
                "client_id_issued_at": int(self.clock()),
                "redirect_uris": body["redirect_uris"],
            },
        )

    def _token(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        if form.get("grant_type") == "metadata":
            return self._metadata(request)
        self.token_requests.append(form)

        if form.get("grant_type") == "authorization_code":
            if form.get("code") != "good-code" or not form.get("code_verifier"):
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json=self.issue_tokens())

        if form.get("grant_type") == "refresh_token":
            self.refresh_count += 1
            refresh = form.get("refresh_token")
            if self.reject_refresh or refresh not in self.valid_refresh_tokens:
                return httpx.Response(400, json={"error": "invalid_grant"})
            if self.revoke_on_refresh:
                self.valid_access_tokens.clear()
            payload = self.issue_tokens(with_refresh=self.rotate_refresh_tokens)
            if self.rotate_refresh_tokens:
                self.valid_refresh_tokens.discard(refresh)
            return httpx.Response(200, json=payload)

        return httpx.Response(400, json={"error": "unsupported_grant_type"})

    def _revoke(self, request: httpx.Request) -> httpx.Response:
        if self.fail_revocation:
            return httpx.Response(503, text="unavailable")
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        self.revoked.append(form)
        self.valid_access_tokens.discard(form["token"])
        self.valid_refresh_tokens.discard(form["token"])
        return httpx.Response(200)

    def _mcp(self, request: httpx.Request) -> httpx.Response:
        if not self._authorized(request):
            return httpx.Response(401, text="invalid token")

        if request.method == "DELETE":
            if self.fail_delete:
                return httpx.Response(500, text="boom")
            self.sessions_deleted += 1
            return httpx.Response(200)

        message = json.loads(request.content)
        method = message.get("method")

        if method == "notifications/initialized":
            return httpx.Response(202)

        if method == "initialize":
            if self.fail_next_initialize:
                self.fail_next_initialize = False
                return httpx.Response(503, text="unavailable")
            self.sessions_opened += 1
            self.initialize_requests.append(message["params"])
            result = {
                "protocolVersion": message["params"]["protocolVersion"],
                "capabilities": {"tools": {}},
                "serverInfo": {"name": "day-ai", "version": "1.0"},
            }
            return self._reply(
                message["id"], result, {"mcp-session-id": f"session-{self.sessions_opened}"}
            )

        if method == "tools/list":
            return self._reply(message["id"], {"tools": FAKE_TOOLS})

        if method == "tools/call":
            self.tool_call_attempts += 1
            if self.reject_tool_calls > 0:
                self.reject_tool_calls -= 1
                return httpx.Response(401, text="token expired")
            return self._reply(message["id"], self._call(message["params"]))

        return self._reply(
            message["id"], None, error={"code": -32601, "message": "Method not found"}
        )

    def _call(self, params: Dict[str, Any]) -> Dict[str, Any]:
        name = params["name"]
        arguments = params.get("arguments", {})
        if name == "search_objects":
            text = json.dumps({"results": [{"name": arguments.get("query")}]})
            return {"content": [{"type": "text", "text": text}]}
        if name == "echo_text":
            return {"content": [{"type": "text", "text": arguments.get("text", "")}]}
        if name == "explode":
            return {"content": [{"type": "text", "text": "kaboom"}], "isError": True}
        return {"content": [{"type": "text", "text": f"Unknown tool {name}"}], "isError": True}

    def _reply(
        self,
        request_id: int,
        result: Any,
        headers: Optional[Dict[str, str]] = None,
        error: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        body: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id}
        if error is not None:
            body["error"] = error
        else:
            body["result"] = result

        if self.use_sse:
            text = f"event: message\ndata: {json.dumps(body)}\n\n"
            return httpx.Response(
                200,
                text=text,
                headers={"content-type": "text/event-stream", **(headers or {})},
            )
        return httpx.Response(200, json=body, headers=headers)


@pytest.fixture
def clock():
    """Provide a controllable clock."""
    return FakeClock()


@pytest.fixture
def fake_server(clock):
    """Provide the fake Day AI server."""
    return FakeDayAI(clock)


@pytest.fixture
async def http_client(fake_server):
    """Provide an HTTP client routed to the fake server."""
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(fake_server.handle_async)
    ) as client:
        yield client


@pytest.fixture
def server_config():
    """Provide the Day AI configuration pointed at the fake server."""
    return ServerConfig.day_ai(BASE_URL)


@pytest.fixture
def registration():
    """Provide a client registration."""
    return ClientRegistration(client_id="client-1")
