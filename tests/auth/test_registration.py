"""Tests for dynamic client registration."""

import json

import httpx
import pytest

from dayai_mcp_client.exceptions import RegistrationError
from dayai_mcp_client.registration import build_registration_request, register_client

REDIRECT_URI = "http://127.0.0.1:31338/callback"


class TestBuildRegistrationRequest:
    """Test registration payload construction."""

    def test_public_pkce_client(self):
        """Test the payload describes a public client."""
        payload = build_registration_request(REDIRECT_URI, "Day AI SDK")
        assert payload["client_name"] == "Day AI SDK"
        assert payload["redirect_uris"] == [REDIRECT_URI]
        assert payload["grant_types"] == ["authorization_code", "refresh_token"]
        assert payload["response_types"] == ["code"]
        assert payload["token_endpoint_auth_method"] == "none"
        assert "scope" not in payload

    def test_scopes_joined(self):
        payload = build_registration_request(REDIRECT_URI, "x", scopes=["a", "b:*"])
        assert payload["scope"] == "a b:*"


class TestRegisterClient:
    """Test the registration request."""

    async def test_register_success(self, http_client, fake_server, server_config):
        """Test a 201 response becomes a ClientRegistration."""
        registration = await register_client(
            server_config.registration_endpoint,
            REDIRECT_URI,
            "Day AI SDK",
            http_client=http_client,
        )
        assert registration.client_id == "client-1"
        assert registration.client_secret is None
        assert fake_server.registrations == 1

    async def test_register_rejected(self):
        """Test a non-2xx status raises RegistrationError with status and body."""

        def handler(request):
            return httpx.Response(400, json={"error": "invalid_redirect_uri"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(RegistrationError) as exc_info:
                await register_client(
                    "https://day.test/api/oauth/register",
                    REDIRECT_URI,
                    "Day AI SDK",
                    http_client=client,
                )

        assert exc_info.value.status_code == 400
        assert "invalid_redirect_uri" in exc_info.value.detail

    async def test_register_network_error(self):
        """Test a transport failure raises RegistrationError."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(RegistrationError) as exc_info:
                await register_client(
                    "https://day.test/api/oauth/register",
                    REDIRECT_URI,
                    "Day AI SDK",
                    http_client=client,
                )

        assert exc_info.value.status_code is None

    async def test_register_missing_client_id(self):
        """Test a 2xx body without client_id is rejected."""

        def handler(request):
            assert json.loads(request.content)["client_name"] == "Day AI SDK"
            return httpx.Response(201, json={"client_name": "Day AI SDK"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(RegistrationError, match="invalid response"):
                await register_client(
                    "https://day.test/api/oauth/register",
                    REDIRECT_URI,
                    "Day AI SDK",
                    http_client=client,
                )
