# dayai_mcp_client/token_refresher.py
"""Token staleness checks, refresh grant and revocation."""

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx

from .exceptions import RefreshError, RefreshFailureReason
from .oauth_config import REFRESH_BUFFER_SECONDS, ClientRegistration, TokenSet
from .utils import best_effort, http_client_context, maybe_await, response_detail

logger = logging.getLogger(__name__)

TokenCallback = Callable[[TokenSet], Union[None, Awaitable[None]]]


def is_stale(
    tokens: TokenSet, now: float, buffer: float = REFRESH_BUFFER_SECONDS
) -> bool:
    """
    True when the access token is within ``buffer`` seconds of expiry.

    Tokens without ``expires_at`` are never proactively stale.
    """
    if tokens.expires_at is None:
        return False
    return now + buffer >= tokens.expires_at


def client_auth_fields(registration: ClientRegistration) -> Dict[str, str]:
    """Form fields identifying the client at the token endpoint."""
    fields = {"client_id": registration.client_id}
    if registration.client_secret:
        fields["client_secret"] = registration.client_secret
    return fields


class TokenRefresher:
    """Refreshes and revokes the tokens of one registered client."""

    def __init__(
        self,
        token_endpoint: str,
        registration: ClientRegistration,
        *,
        revocation_endpoint: Optional[str] = None,
        on_refresh: Optional[TokenCallback] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
        refresh_buffer: float = REFRESH_BUFFER_SECONDS,
    ):
        """
        Initialize token refresher.

        Args:
            token_endpoint: OAuth token endpoint URL
            registration: Client registration used for the refresh grant
            revocation_endpoint: Optional RFC 7009 revocation endpoint
            on_refresh: Called with the updated tokens before refresh() returns
            http_client: Optional shared HTTP client
            clock: Source of the current Unix time
            refresh_buffer: Seconds before expiry at which tokens count as stale
        """
        self.token_endpoint = token_endpoint
        self.registration = registration
        self.revocation_endpoint = revocation_endpoint
        self.on_refresh = on_refresh
        self.http_client = http_client
        self.clock = clock
        self.refresh_buffer = refresh_buffer

    def is_stale(self, tokens: TokenSet) -> bool:
        return is_stale(tokens, self.clock(), self.refresh_buffer)

    def is_terminal(self, tokens: TokenSet) -> bool:
        """Expired and impossible to refresh: a new authorization is required."""
        return tokens.is_expired(self.clock()) and not tokens.can_refresh

    async def refresh(self, tokens: TokenSet) -> TokenSet:
        """
        Exchange the refresh token for a new access token.

        The token set is updated in place and returned. The refresh token is
        kept when the server does not rotate it.

        Raises:
            RefreshError: If no refresh token is available or the server
                rejects the refresh grant
        """
        if not tokens.refresh_token:
            raise RefreshError(
                "No refresh token available",
                reason=RefreshFailureReason.NO_REFRESH_TOKEN,
            )

        data = {
            "grant_type": "refresh_token",
            "refresh_token": tokens.refresh_token,
            **client_auth_fields(self.registration),
        }

        async with http_client_context(self.http_client) as client:
            try:
                response = await client.post(self.token_endpoint, data=data)
            except httpx.HTTPError as e:
                raise RefreshError(
                    "Token refresh failed",
                    reason=RefreshFailureReason.TRANSPORT,
                    detail=str(e),
                ) from e

        if not response.is_success:
            raise RefreshError(
                "Token refresh failed",
                reason=RefreshFailureReason.REJECTED,
                status_code=response.status_code,
                detail=response_detail(response),
            )

        try:
            self._apply_refresh_response(tokens, response.json())
        except (KeyError, ValueError) as e:
            raise RefreshError(
                "Token refresh returned an invalid response",
                reason=RefreshFailureReason.REJECTED,
                status_code=response.status_code,
                detail=str(e),
            ) from e
        logger.info("Access token refreshed")

        if self.on_refresh is not None:
            await self._notify(tokens)

        return tokens

    def _apply_refresh_response(self, tokens: TokenSet, payload: Dict[str, Any]) -> None:
        refreshed = TokenSet.from_token_response(payload, now=self.clock())
        tokens.access_token = refreshed.access_token
        if refreshed.expires_at is not None:
            tokens.expires_at = refreshed.expires_at
        if refreshed.refresh_token:
            tokens.refresh_token = refreshed.refresh_token

    async def _notify(self, tokens: TokenSet) -> None:
        try:
            await maybe_await(self.on_refresh(tokens))  # type: ignore[misc]
        except Exception as e:
            logger.error(f"Persisting refreshed tokens failed: {e}")

    async def revoke(self, tokens: TokenSet) -> None:
        """
        Revoke the refresh and access tokens with the server.

        Best effort: failures are logged and never raised.
        """
        if not self.revocation_endpoint:
            logger.debug("No revocation endpoint configured, skipping revocation")
            return

        if tokens.refresh_token:
            async with best_effort("Refresh token revocation"):
                await self._revoke_token(tokens.refresh_token, "refresh_token")

        async with best_effort("Access token revocation"):
            await self._revoke_token(tokens.access_token, "access_token")

    async def _revoke_token(self, token: str, token_type_hint: str) -> None:
        data = {
            "client_id": self.registration.client_id,
            "token": token,
            "token_type_hint": token_type_hint,
        }
        async with http_client_context(self.http_client) as client:
            response = await client.post(self.revocation_endpoint, data=data)  # type: ignore[arg-type]
        response.raise_for_status()
        logger.info(f"Revoked {token_type_hint}")
