# dayai_mcp_client/config.py
"""Server configuration and environment-driven defaults."""

import os
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from .oauth_config import DEFAULT_REDIRECT_URI, FLOW_TIMEOUT_SECONDS, OAuthConfig

DEFAULT_BASE_URL = "https://day.ai"
DEFAULT_SERVER_ID = "day-ai"
DEFAULT_CLIENT_NAME = "Day AI SDK"
DEFAULT_SCOPES = [
    "native_organization:write",
    "native_contact:write",
    "assistant:*:use",
]

MCP_PROTOCOL_VERSION = "2025-06-18"

ENV_BASE_URL = "DAY_AI_BASE_URL"
ENV_CLIENT_NAME = "DAY_AI_CLIENT_NAME"
ENV_STATE_DIR = "DAY_AI_STATE_DIR"


class ClientInfo(BaseModel):
    """Identifies this client in the MCP ``initialize`` request."""

    name: str = DEFAULT_CLIENT_NAME
    version: str = "0.1.0"


class ServerConfig(BaseModel):
    """Endpoints and scopes of one OAuth-protected MCP server."""

    id: str
    name: str
    base_url: str
    mcp_endpoint: str
    auth_endpoint: str
    token_endpoint: str
    registration_endpoint: str
    revocation_endpoint: Optional[str] = None
    graphql_endpoint: Optional[str] = None
    scopes: List[str] = Field(default_factory=list)
    redirect_uri: str = DEFAULT_REDIRECT_URI

    @classmethod
    def day_ai(cls, base_url: Optional[str] = None) -> "ServerConfig":
        """
        Day AI server configuration.

        Args:
            base_url: Override for the Day AI URL (default: $DAY_AI_BASE_URL
                or https://day.ai)
        """
        base = (base_url or os.environ.get(ENV_BASE_URL) or DEFAULT_BASE_URL).rstrip("/")
        return cls(
            id=DEFAULT_SERVER_ID,
            name="Day.ai",
            base_url=base,
            mcp_endpoint=f"{base}/api/mcp",
            auth_endpoint=f"{base}/integrations/authorize",
            token_endpoint=f"{base}/api/oauth",
            registration_endpoint=f"{base}/api/oauth/register",
            revocation_endpoint=f"{base}/api/oauth/revoke",
            graphql_endpoint=f"{base}/api/graphql",
            scopes=list(DEFAULT_SCOPES),
        )

    def oauth_config(self, flow_timeout: float = FLOW_TIMEOUT_SECONDS) -> OAuthConfig:
        return OAuthConfig(
            authorization_url=self.auth_endpoint,
            token_url=self.token_endpoint,
            revocation_url=self.revocation_endpoint,
            scopes=self.scopes,
            redirect_uri=self.redirect_uri,
            flow_timeout=flow_timeout,
        )


def default_client_name() -> str:
    return os.environ.get(ENV_CLIENT_NAME) or DEFAULT_CLIENT_NAME


def default_state_dir() -> Path:
    """Directory holding persisted server records."""
    configured = os.environ.get(ENV_STATE_DIR)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".dayai_mcp" / "servers"
