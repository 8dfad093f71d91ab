# dayai_mcp_client/oauth_config.py
"""OAuth configuration and token models."""

import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field

from .pkce import PKCEPair, generate_state
from .tool_names import format_tool_name

# The redirect URI is registered out-of-band, so the port is fixed
DEFAULT_CALLBACK_PORT = 31338
DEFAULT_CALLBACK_PATH = "/callback"
DEFAULT_REDIRECT_URI = (
    f"http://127.0.0.1:{DEFAULT_CALLBACK_PORT}{DEFAULT_CALLBACK_PATH}"
)

FLOW_TIMEOUT_SECONDS = 5 * 60
REFRESH_BUFFER_SECONDS = 5 * 60


class OAuthConfig(BaseModel):
    """OAuth 2.0 endpoints and parameters for one authorization server."""

    authorization_url: str
    token_url: str
    revocation_url: Optional[str] = None

    scopes: List[str] = Field(default_factory=list)
    redirect_uri: str = DEFAULT_REDIRECT_URI

    # Seconds to wait for the browser callback
    flow_timeout: float = FLOW_TIMEOUT_SECONDS

    model_config = {"frozen": False}

    @property
    def callback_host(self) -> str:
        return urlparse(self.redirect_uri).hostname or "127.0.0.1"

    @property
    def callback_port(self) -> int:
        parsed = urlparse(self.redirect_uri)
        if parsed.port:
            return parsed.port
        return 443 if parsed.scheme == "https" else 80

    @property
    def callback_path(self) -> str:
        return urlparse(self.redirect_uri).path or DEFAULT_CALLBACK_PATH


class ClientRegistration(BaseModel):
    """Result of dynamic client registration (RFC 7591)."""

    client_id: str
    client_secret: Optional[str] = None
    client_id_issued_at: Optional[int] = None
    client_secret_expires_at: Optional[int] = None

    model_config = {"frozen": True}


class AuthorizationState(BaseModel):
    """Per-flow PKCE and CSRF material. Never persisted."""

    code_verifier: str
    code_challenge: str
    state: str
    redirect_uri: str
    expires_at: float

    @classmethod
    def create(
        cls,
        redirect_uri: str,
        now: Optional[float] = None,
        ttl: float = FLOW_TIMEOUT_SECONDS,
    ) -> "AuthorizationState":
        """Create fresh authorization state for a new flow."""
        pkce = PKCEPair.generate()
        issued = time.time() if now is None else now
        return cls(
            code_verifier=pkce.verifier,
            code_challenge=pkce.challenge,
            state=generate_state(),
            redirect_uri=redirect_uri,
            expires_at=issued + ttl,
        )

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class TokenSet(BaseModel):
    """Access/refresh token pair owned by one server connection."""

    access_token: str
    token_type: str = "Bearer"
    refresh_token: Optional[str] = None
    expires_at: Optional[float] = None  # Unix timestamp
    scope: Optional[str] = None

    model_config = {"frozen": False}

    @classmethod
    def from_token_response(
        cls, data: Dict[str, Any], now: Optional[float] = None
    ) -> "TokenSet":
        """Build a token set from a token endpoint JSON response."""
        issued = time.time() if now is None else now
        expires_in = data.get("expires_in")
        return cls(
            access_token=data["access_token"],
            token_type=_normalize_token_type(data.get("token_type")),
            refresh_token=data.get("refresh_token"),
            expires_at=issued + float(expires_in) if expires_in is not None else None,
            scope=data.get("scope"),
        )

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Check if the access token is past its expiry (no buffer)."""
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return current >= self.expires_at

    def get_authorization_header(self) -> str:
        """Get the Authorization header value."""
        return f"{_normalize_token_type(self.token_type)} {self.access_token}"


def _normalize_token_type(token_type: Optional[str]) -> str:
    # RFC 6750 capitalization
    if not token_type or token_type.lower() == "bearer":
        return "Bearer"
    return token_type


class ToolInfo(BaseModel):
    """A remote tool advertised by ``tools/list``."""

    server_id: str
    name: str
    title: Optional[str] = None
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @classmethod
    def from_mcp(cls, server_id: str, tool: Dict[str, Any]) -> "ToolInfo":
        return cls(
            server_id=server_id,
            name=tool["name"],
            title=tool.get("title"),
            description=tool.get("description") or "",
            input_schema=tool.get("inputSchema") or {"type": "object"},
        )

    @property
    def qualified_name(self) -> str:
        return format_tool_name(self.server_id, self.name)


class ServerRecord(BaseModel):
    """Persisted view of a server connection (no live transport)."""

    server_id: str
    endpoint_url: str
    registration: Optional[ClientRegistration] = None
    tokens: Optional[TokenSet] = None
    connected: bool = False
