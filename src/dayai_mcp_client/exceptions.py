# dayai_mcp_client/exceptions.py
"""Error types raised by the OAuth flow and the MCP session layer."""

from enum import Enum
from typing import Any, Optional


class DayAIError(Exception):
    """Base class for every error raised by this library."""

    def __init__(self, message: str, *, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message


# --- OAuth ------------------------------------------------------------------


class OAuthFlowError(DayAIError):
    """Base exception for OAuth flow errors."""


class RegistrationError(OAuthFlowError):
    """The registration endpoint rejected the dynamic client registration."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message, detail=detail)
        self.status_code = status_code


class AuthorizationError(OAuthFlowError):
    """The user denied consent or the callback carried an ``error`` parameter."""

    def __init__(
        self,
        message: str,
        *,
        error: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message, detail=detail)
        self.error = error


class CsrfError(AuthorizationError):
    """The ``state`` returned on the callback does not match the flow's state."""


class FlowTimeoutError(OAuthFlowError):
    """No valid callback arrived within the flow's timeout window."""


class FlowCancelledError(OAuthFlowError):
    """The flow was aborted by the caller before it completed."""


class FlowInProgressError(OAuthFlowError):
    """Another flow already owns the callback port."""


class FlowStateError(OAuthFlowError):
    """An operation was attempted in a flow state that does not allow it."""


class TokenExchangeError(OAuthFlowError):
    """The token endpoint rejected the authorization-code exchange."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message, detail=detail)
        self.status_code = status_code


class RefreshFailureReason(str, Enum):
    """Why a refresh-grant exchange failed."""

    NO_REFRESH_TOKEN = "no_refresh_token"
    REJECTED = "rejected"
    TRANSPORT = "transport"


class RefreshError(OAuthFlowError):
    """The refresh grant could not be performed.

    ``NO_REFRESH_TOKEN`` and ``REJECTED`` are terminal: the user has to go
    through the authorization flow again.
    """

    def __init__(
        self,
        message: str,
        *,
        reason: RefreshFailureReason,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message, detail=detail)
        self.reason = reason
        self.status_code = status_code

    @property
    def requires_reauthorization(self) -> bool:
        return self.reason in (
            RefreshFailureReason.NO_REFRESH_TOKEN,
            RefreshFailureReason.REJECTED,
        )


# --- MCP --------------------------------------------------------------------


class MCPError(DayAIError):
    """A JSON-RPC error object returned by the MCP endpoint."""

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(f"JSON-RPC Error {code}: {message}")
        self.code = code
        self.rpc_message = message
        self.data = data


class MCPTransportError(DayAIError):
    """The MCP endpoint answered with a non-2xx HTTP status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message, detail=detail)
        self.status_code = status_code


class AuthFailureError(MCPTransportError):
    """The MCP endpoint refused the bearer token."""


class MCPToolError(DayAIError):
    """The remote tool ran but reported ``isError``."""


class NotConnectedError(DayAIError):
    """No live connection exists for the requested server id."""

    def __init__(self, server_id: str):
        super().__init__(f"MCP server {server_id} is not connected")
        self.server_id = server_id


# --- REST API ---------------------------------------------------------------


class DayAIAPIError(DayAIError):
    """A Day AI REST or GraphQL request failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message, detail=detail)
        self.status_code = status_code
