# dayai_mcp_client/registration.py
"""Dynamic Client Registration (RFC 7591)."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .exceptions import RegistrationError
from .oauth_config import ClientRegistration
from .utils import http_client_context, response_detail

logger = logging.getLogger(__name__)


def build_registration_request(
    redirect_uri: str,
    client_name: str,
    scopes: Optional[List[str]] = None,
    client_uri: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the JSON body for a public (no client secret) PKCE client."""
    payload: Dict[str, Any] = {
        "client_name": client_name,
        "redirect_uris": [redirect_uri],
        "grant_types": ["authorization_code", "refresh_token"],
        "response_types": ["code"],
        "token_endpoint_auth_method": "none",
    }
    if scopes:
        payload["scope"] = " ".join(scopes)
    if client_uri:
        payload["client_uri"] = client_uri
    return payload


async def register_client(
    registration_endpoint: str,
    redirect_uri: str,
    client_name: str,
    *,
    scopes: Optional[List[str]] = None,
    client_uri: Optional[str] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ClientRegistration:
    """
    Register an OAuth client with the authorization server.

    The caller must persist the result: registering again on every run
    creates a new client identity on the server each time.

    Args:
        registration_endpoint: RFC 7591 registration URL
        redirect_uri: Redirect URI to register (must match the flow exactly)
        client_name: Human readable client name shown on the consent page
        scopes: Optional scopes to request for the client
        client_uri: Optional homepage of the client
        http_client: Optional shared HTTP client

    Returns:
        The new client registration

    Raises:
        RegistrationError: If the server rejects the request or is unreachable
    """
    payload = build_registration_request(redirect_uri, client_name, scopes, client_uri)

    async with http_client_context(http_client) as client:
        try:
            response = await client.post(registration_endpoint, json=payload)
        except httpx.HTTPError as e:
            raise RegistrationError(
                "Client registration failed", detail=str(e)
            ) from e

    if not response.is_success:
        raise RegistrationError(
            "Client registration failed",
            status_code=response.status_code,
            detail=response_detail(response),
        )

    try:
        registration = ClientRegistration.model_validate(response.json())
    except ValueError as e:
        raise RegistrationError(
            "Client registration returned an invalid response", detail=str(e)
        ) from e

    logger.info(f"Registered OAuth client {registration.client_id}")
    return registration
