# dayai_mcp_client/api_client.py
"""Bearer-authenticated REST and GraphQL requests against the Day AI API."""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .config import ServerConfig
from .exceptions import DayAIAPIError
from .oauth_config import TokenSet
from .token_refresher import TokenRefresher
from .utils import http_client_context, response_detail

logger = logging.getLogger(__name__)


class WorkspaceMetadata(BaseModel):
    """Workspace and user the access token belongs to."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    workspace_id: Optional[str] = Field(default=None, alias="workspaceId")
    workspace_name: Optional[str] = Field(default=None, alias="workspaceName")
    user_id: Optional[str] = Field(default=None, alias="userId")


class DayAIClient:
    """
    Authenticated access to the Day AI HTTP API outside of MCP.

    Shares the token set of a connection: the access token is refreshed in
    place before it expires, and once more if a request is answered with 401.
    """

    def __init__(
        self,
        server: ServerConfig,
        tokens: TokenSet,
        refresher: Optional[TokenRefresher] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.server = server
        self.tokens = tokens
        self.refresher = refresher
        self.http_client = http_client
        self._refresh_lock = asyncio.Lock()

    @property
    def can_refresh(self) -> bool:
        return self.refresher is not None and self.tokens.can_refresh

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.server.base_url}{path}"

    async def _refresh(self, observed_token: str) -> None:
        async with self._refresh_lock:
            if self.tokens.access_token != observed_token:
                return
            await self.refresher.refresh(self.tokens)  # type: ignore[union-attr]

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Make an authenticated request and return the decoded body.

        Args:
            method: HTTP method
            path: Path below the base URL, or an absolute URL
            json: JSON body
            data: Form body

        Returns:
            The JSON body, or the raw text when the body is not JSON

        Raises:
            DayAIAPIError: Transport failure or non-2xx response
            RefreshError: The token could not be refreshed
        """
        if self.can_refresh and self.refresher.is_stale(self.tokens):  # type: ignore[union-attr]
            logger.info("Access token near expiry, refreshing")
            await self._refresh(self.tokens.access_token)

        response = await self._send(method, path, json=json, data=data)
        if response.status_code == 401 and self.can_refresh:
            logger.info(f"{method} {path} unauthorized, refreshing token and retrying")
            await self._refresh(self._sent_token(response))
            response = await self._send(method, path, json=json, data=data)

        try:
            body: Any = response.json()
        except ValueError:
            body = response.text

        if not response.is_success:
            error = body.get("error") if isinstance(body, dict) else None
            raise DayAIAPIError(
                error if isinstance(error, str) else f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
                detail=response_detail(response),
            )
        return body

    @staticmethod
    def _sent_token(response: httpx.Response) -> str:
        header = response.request.headers.get("authorization", "")
        return header.partition(" ")[2]

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        headers = {
            "Authorization": self.tokens.get_authorization_header(),
            "Accept": "application/json",
        }
        async with http_client_context(self.http_client) as client:
            try:
                return await client.request(
                    method, self._url(path), json=json, data=data, headers=headers
                )
            except httpx.HTTPError as e:
                raise DayAIAPIError(f"{method} {path} failed", detail=str(e)) from e

    async def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Any:
        """
        Run a GraphQL query or mutation.

        Returns:
            The ``data`` member of the response

        Raises:
            DayAIAPIError: The request failed or the response carries ``errors``
        """
        endpoint = self.server.graphql_endpoint or "/api/graphql"
        body = await self.request("POST", endpoint, json={"query": query, "variables": variables})
        if not isinstance(body, dict):
            raise DayAIAPIError("GraphQL endpoint returned an invalid response")

        errors = body.get("errors")
        if errors:
            messages = [e.get("message", str(e)) if isinstance(e, dict) else str(e) for e in errors]
            raise DayAIAPIError("GraphQL request failed", detail="; ".join(messages))
        return body.get("data")

    async def get_workspace_metadata(self) -> WorkspaceMetadata:
        """Look up the workspace and user behind the access token."""
        body = await self.request(
            "POST", self.server.token_endpoint, data={"grant_type": "metadata"}
        )
        if not isinstance(body, dict):
            raise DayAIAPIError("Workspace metadata response is not a JSON object")
        return WorkspaceMetadata.model_validate(body)

    async def test_connection(self) -> WorkspaceMetadata:
        """Check that the stored credentials work, returning the workspace."""
        logger.info(f"Testing connection to {self.server.base_url}")
        metadata = await self.get_workspace_metadata()
        logger.info(f"Connected to workspace {metadata.workspace_name} ({metadata.workspace_id})")
        return metadata
