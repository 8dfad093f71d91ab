# dayai_mcp_client/oauth_handler.py
"""Connect, disconnect and reconnect OAuth-protected MCP servers."""

import logging
import time
import webbrowser
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx

from .api_client import DayAIClient
from .config import ClientInfo, ServerConfig, default_client_name
from .exceptions import RefreshError
from .mcp_session import MCPSessionManager
from .oauth_config import ClientRegistration, ServerRecord, TokenSet, ToolInfo
from .oauth_flow import AuthorizationCodeFlow
from .registration import register_client
from .token_manager import ConnectionStore
from .token_refresher import TokenRefresher

logger = logging.getLogger(__name__)


class OAuthHandler:
    """Handles the connection lifecycle of OAuth-protected MCP servers."""

    def __init__(
        self,
        store: Optional[ConnectionStore] = None,
        session_manager: Optional[MCPSessionManager] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        open_browser: Callable[[str], Any] = webbrowser.open,
        clock: Callable[[], float] = time.time,
        client_name: Optional[str] = None,
    ):
        """
        Initialize OAuth handler.

        Args:
            store: Connection store (creates default if not provided)
            session_manager: Shared session manager (created and owned if not provided)
            http_client: HTTP client for registration, token and revocation calls
            open_browser: Opens the authorization URL
            clock: Source of the current Unix time
            client_name: Name used for registration and MCP client info
                (default: $DAY_AI_CLIENT_NAME or "Day AI SDK")
        """
        self.store = store or ConnectionStore()
        self.client_name = client_name or default_client_name()
        self.http_client = http_client
        self.clock = clock
        self._open_browser = open_browser

        self._owns_sessions = session_manager is None
        self.sessions = session_manager or MCPSessionManager(
            http_client, client_info=ClientInfo(name=self.client_name), clock=clock
        )
        if self.sessions.on_failure is None:
            self.sessions.on_failure = self.mark_disconnected
        self._active_flow: Optional[AuthorizationCodeFlow] = None

    async def __aenter__(self) -> "OAuthHandler":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_sessions:
            await self.sessions.aclose()

    def _load_or_new_record(self, server: ServerConfig) -> ServerRecord:
        record = self.store.load_record(server.id)
        if record is None:
            return ServerRecord(server_id=server.id, endpoint_url=server.mcp_endpoint)
        record.endpoint_url = server.mcp_endpoint
        return record

    async def ensure_registration(self, server: ServerConfig) -> ClientRegistration:
        """
        Return the stored client registration, registering once if there is none.

        Args:
            server: Server configuration

        Returns:
            Client registration for the server
        """
        record = self._load_or_new_record(server)
        if record.registration is not None:
            logger.info(f"Using stored client registration for {server.id}")
            return record.registration

        registration = await register_client(
            server.registration_endpoint,
            server.redirect_uri,
            self.client_name,
            scopes=server.scopes,
            http_client=self.http_client,
        )
        record.registration = registration
        self.store.save_record(record)
        return registration

    async def authorize(self, server: ServerConfig) -> TokenSet:
        """
        Run the browser authorization flow and persist the issued tokens.

        Returns:
            Newly issued tokens
        """
        registration = await self.ensure_registration(server)

        logger.info(f"🔐 Authentication required for {server.id}")
        flow = AuthorizationCodeFlow(
            server.oauth_config(),
            registration,
            http_client=self.http_client,
            open_browser=self._open_browser,
            clock=self.clock,
        )
        self._active_flow = flow
        try:
            tokens = await flow.run()
        finally:
            self._active_flow = None

        record = self._load_or_new_record(server)
        record.registration = registration
        record.tokens = tokens
        self.store.save_record(record)
        logger.info(f"✅ Successfully authenticated {server.id}")
        return tokens

    def cancel_authorization(self) -> bool:
        """Cancel the authorization flow in progress, if any."""
        if self._active_flow is None:
            return False
        return self._active_flow.cancel()

    def create_refresher(
        self, server: ServerConfig, registration: ClientRegistration
    ) -> TokenRefresher:
        """Token refresher that writes rotated tokens to the store."""

        def persist(tokens: TokenSet) -> None:
            self.store.save_tokens(server.id, tokens)

        return TokenRefresher(
            server.token_endpoint,
            registration,
            revocation_endpoint=server.revocation_endpoint,
            on_refresh=persist,
            http_client=self.http_client,
            clock=self.clock,
        )

    def create_api_client(self, server: ServerConfig) -> DayAIClient:
        """
        REST and GraphQL client using the stored credentials for a server.

        Shares the token set of a live session when one exists, so a refresh
        by either side is seen by both.

        Raises:
            ValueError: No stored registration and tokens for the server
        """
        record = self.store.load_record(server.id)
        if record is None or record.registration is None or record.tokens is None:
            raise ValueError(f"No stored credentials for {server.id}")

        tokens = record.tokens
        if self.sessions.is_connected(server.id):
            tokens = self.sessions.get_connection(server.id).tokens
        return DayAIClient(
            server,
            tokens,
            self.create_refresher(server, record.registration),
            http_client=self.http_client,
        )

    async def connect_server(self, server: ServerConfig) -> List[ToolInfo]:
        """
        Authorize with the server and open an MCP session.

        Returns:
            The server's tools
        """
        await self.authorize(server)
        return await self._connect_record(server, self._load_or_new_record(server))

    async def ensure_connected(self, server: ServerConfig) -> List[ToolInfo]:
        """
        Return the tools of a live session, reusing stored tokens if possible.

        Falls back to the full authorization flow when no usable tokens exist.
        """
        if self.sessions.is_connected(server.id):
            return self.sessions.list_tools(server.id)

        record = self.store.load_record(server.id)
        if (
            record is not None
            and record.registration is not None
            and record.tokens is not None
            and (record.tokens.can_refresh or not record.tokens.is_expired(self.clock()))
        ):
            try:
                return await self._connect_record(server, record)
            except RefreshError as e:
                if not e.requires_reauthorization:
                    raise
                logger.info(f"Stored tokens for {server.id} rejected, re-authorizing")

        return await self.connect_server(server)

    async def _connect_record(
        self, server: ServerConfig, record: ServerRecord
    ) -> List[ToolInfo]:
        if record.registration is None or record.tokens is None:
            raise ValueError(f"No stored credentials for {server.id}")

        refresher = self.create_refresher(server, record.registration)
        if refresher.is_stale(record.tokens) and record.tokens.can_refresh:
            await refresher.refresh(record.tokens)

        tools = await self.sessions.connect(
            server.id, server.mcp_endpoint, record.tokens, refresher=refresher
        )

        record = self._load_or_new_record(server)
        record.connected = True
        self.store.save_record(record)
        return tools

    async def disconnect_server(self, server: ServerConfig) -> None:
        """
        Revoke tokens (best effort), close the session and forget the tokens.

        The client registration is kept for the next connection.
        """
        record = self._load_or_new_record(server)

        if record.tokens is not None and record.registration is not None:
            refresher = self.create_refresher(server, record.registration)
            await refresher.revoke(record.tokens)

        await self.sessions.disconnect(server.id)

        record.connected = False
        record.tokens = None
        self.store.save_record(record)
        logger.info(f"Logged out from {server.id}")

    def mark_disconnected(self, server_id: str) -> None:
        """Clear the stored connected flag; tokens and registration are kept."""
        record = self.store.load_record(server_id)
        if record is None:
            return
        record.connected = False
        self.store.save_record(record)

    async def reconnect_servers(self, servers: Iterable[ServerConfig]) -> Dict[str, bool]:
        """
        Restore sessions for every server stored as connected.

        Servers whose tokens expired without a refresh token, or whose refresh
        or connect fails, are marked disconnected.

        Returns:
            Mapping of server id to whether a session is now open
        """
        results: Dict[str, bool] = {}

        for server in servers:
            record = self.store.load_record(server.id)
            if record is None or not record.connected:
                continue

            if (
                record.tokens is None
                or record.registration is None
                or (record.tokens.is_expired(self.clock()) and not record.tokens.can_refresh)
            ):
                logger.info(f"Stored session for {server.id} cannot be resumed")
                self.mark_disconnected(server.id)
                results[server.id] = False
                continue

            try:
                await self._connect_record(server, record)
                results[server.id] = True
            except Exception as e:
                logger.warning(f"Reconnecting {server.id} failed: {e}")
                self.mark_disconnected(server.id)
                results[server.id] = False

        return results
