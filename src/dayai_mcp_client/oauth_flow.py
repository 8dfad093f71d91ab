# dayai_mcp_client/oauth_flow.py
"""OAuth 2.0 authorization code flow with PKCE and a local callback listener."""

import asyncio
import html
import logging
import secrets
import threading
import time
import webbrowser
from dataclasses import dataclass
from enum import Enum
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Optional, Set
from urllib.parse import parse_qs, urlencode, urlparse

import httpx

from .exceptions import (
    AuthorizationError,
    CsrfError,
    FlowCancelledError,
    FlowInProgressError,
    FlowStateError,
    FlowTimeoutError,
    OAuthFlowError,
    TokenExchangeError,
)
from .oauth_config import AuthorizationState, ClientRegistration, OAuthConfig, TokenSet
from .pkce import CODE_CHALLENGE_METHOD
from .token_refresher import client_auth_fields
from .utils import http_client_context, response_detail

logger = logging.getLogger(__name__)

# Ports with a flow currently waiting for its callback
_claimed_ports: Set[int] = set()
_claimed_ports_lock = threading.Lock()


class FlowState(Enum):
    """Authorization code flow states."""

    IDLE = "idle"
    AWAITING_REDIRECT = "awaiting_redirect"
    EXCHANGING_CODE = "exchanging_code"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class CallbackOutcome:
    """What the listener answers to one request, and how it settles the flow."""

    status: int
    page: str
    code: Optional[str] = None
    error: Optional[OAuthFlowError] = None
    settles: bool = True


_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <title>Day AI - {title}</title>
    <style>
      body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
             background: #16213e; color: #e4e4e7; display: flex; min-height: 100vh;
             justify-content: center; align-items: center; margin: 0; }}
      .container {{ text-align: center; padding: 3rem; max-width: 400px;
                    background: rgba(30, 30, 46, 0.8); border-radius: 16px; }}
      h1 {{ color: {color}; font-size: 1.5rem; }}
      p {{ color: #a1a1aa; }}
      .hint {{ font-size: 0.8rem; color: #71717a; }}
    </style>
  </head>
  <body>
    <div class="container">
      <h1>{title}</h1>
      <p>{message}</p>
      <p class="hint">{hint}</p>
    </div>
  </body>
</html>
"""


def render_page(success: bool, message: str) -> str:
    """Render the terminal page shown in the browser after the redirect."""
    if success:
        return _PAGE_TEMPLATE.format(
            title="Connected to Day AI",
            color="#22c55e",
            message=html.escape(message),
            hint="You can close this tab and return to the app.",
        )
    return _PAGE_TEMPLATE.format(
        title="Authorization Failed",
        color="#ef4444",
        message=html.escape(message),
        hint="You can close this tab and try again.",
    )


def build_authorization_url(
    config: OAuthConfig, client_id: str, auth_state: AuthorizationState
) -> str:
    """Build the browser URL for the authorization endpoint."""
    params = {
        "client_id": client_id,
        "redirect_uri": auth_state.redirect_uri,
        "response_type": "code",
        "scope": " ".join(config.scopes),
        "state": auth_state.state,
        "code_challenge": auth_state.code_challenge,
        "code_challenge_method": CODE_CHALLENGE_METHOD,
    }
    return f"{config.authorization_url}?{urlencode(params)}"


async def exchange_code_for_tokens(
    token_endpoint: str,
    code: str,
    registration: ClientRegistration,
    redirect_uri: str,
    code_verifier: str,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    now: Optional[float] = None,
) -> TokenSet:
    """
    Exchange an authorization code for tokens.

    Raises:
        TokenExchangeError: If the token endpoint rejects the exchange
    """
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "code_verifier": code_verifier,
        **client_auth_fields(registration),
    }

    async with http_client_context(http_client) as client:
        try:
            response = await client.post(token_endpoint, data=data)
        except httpx.HTTPError as e:
            raise TokenExchangeError("Token exchange failed", detail=str(e)) from e

    if not response.is_success:
        raise TokenExchangeError(
            "Token exchange failed",
            status_code=response.status_code,
            detail=response_detail(response),
        )

    try:
        return TokenSet.from_token_response(response.json(), now=now)
    except (KeyError, ValueError) as e:
        raise TokenExchangeError(
            "Token exchange returned an invalid response", detail=str(e)
        ) from e


class AuthorizationCodeFlow:
    """
    Drives one authorization code flow.

    The flow binds the fixed callback port, sends the user to the authorize
    URL, waits for the redirect and exchanges the code. Timeout, cancellation,
    errors and success all leave through a single teardown that closes the
    listener exactly once.
    """

    def __init__(
        self,
        config: OAuthConfig,
        registration: ClientRegistration,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        open_browser: Callable[[str], Any] = webbrowser.open,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.registration = registration
        self.http_client = http_client
        self.clock = clock
        self._open_browser = open_browser

        self.state = FlowState.IDLE
        self.auth_state: Optional[AuthorizationState] = None
        self.authorization_url: Optional[str] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._result: Optional["asyncio.Future[str]"] = None
        self._server: Optional[HTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._callback_lock = threading.Lock()
        self._callback_received = False
        self._cancel_requested = False
        self._port_claimed = False
        self._torn_down = False

    async def run(self) -> TokenSet:
        """
        Run the flow to completion.

        Returns:
            Tokens issued for the authorization code

        Raises:
            FlowInProgressError: Another flow owns the callback port
            AuthorizationError: The callback carried an error or no code
            CsrfError: The callback state did not match
            FlowTimeoutError: No callback arrived in time
            FlowCancelledError: cancel() was called
            TokenExchangeError: The code exchange failed
        """
        if self.state is not FlowState.IDLE:
            raise FlowStateError(f"Flow cannot be started from state {self.state.value}")

        self._loop = asyncio.get_running_loop()
        self._result = self._loop.create_future()
        self.auth_state = AuthorizationState.create(
            self.config.redirect_uri, now=self.clock(), ttl=self.config.flow_timeout
        )

        try:
            self._claim_port()
            self._start_listener()
            self.state = FlowState.AWAITING_REDIRECT

            self.authorization_url = build_authorization_url(
                self.config, self.registration.client_id, self.auth_state
            )
            logger.info("Opening browser for authorization")
            if not self._open_browser(self.authorization_url):
                logger.warning(
                    f"Could not open a browser, visit this URL to authorize: "
                    f"{self.authorization_url}"
                )

            code = await self._wait_for_code()
        except BaseException:
            self.state = FlowState.FAILED
            raise
        finally:
            await asyncio.to_thread(self._teardown)

        self.state = FlowState.EXCHANGING_CODE
        try:
            tokens = await exchange_code_for_tokens(
                self.config.token_url,
                code,
                self.registration,
                self.auth_state.redirect_uri,
                self.auth_state.code_verifier,
                http_client=self.http_client,
                now=self.clock(),
            )
        except BaseException:
            self.state = FlowState.FAILED
            raise

        self.state = FlowState.COMPLETED
        logger.info("Authorization code flow completed")
        return tokens

    def cancel(self) -> bool:
        """
        Abort a flow that is still waiting for its callback.

        Returns:
            True if the pending flow was rejected, False if there was nothing
            to cancel (not started, already settled or finished)
        """
        if self.state is not FlowState.AWAITING_REDIRECT or self._loop is None:
            return False
        if self._result is None or self._result.done():
            return False
        with self._callback_lock:
            if self._callback_received or self._cancel_requested:
                return False
            self._cancel_requested = True

        error = FlowCancelledError("Authorization flow was cancelled")
        self._loop.call_soon_threadsafe(self._settle, None, error)
        return True

    def handle_callback(self, path: str) -> CallbackOutcome:
        """
        Validate a request that reached the callback listener.

        Only the first request on the callback path settles the flow. The
        state check happens before any exchange is attempted.
        """
        parsed = urlparse(path)
        if parsed.path != self.config.callback_path:
            return CallbackOutcome(404, "Not found", settles=False)

        with self._callback_lock:
            if self._callback_received or self._cancel_requested or self.auth_state is None:
                return CallbackOutcome(
                    409,
                    render_page(False, "This authorization request is no longer active."),
                    settles=False,
                )
            self._callback_received = True

        params = parse_qs(parsed.query)

        def param(name: str) -> Optional[str]:
            values = params.get(name)
            return values[0] if values else None

        code = param("code")
        returned_state = param("state")
        error = param("error")
        error_description = param("error_description")

        if error:
            message = error_description or error
            return CallbackOutcome(
                200,
                render_page(False, message),
                error=AuthorizationError(
                    "Authorization failed", error=error, detail=message
                ),
            )

        if not code:
            return CallbackOutcome(
                200,
                render_page(False, "No authorization code received"),
                error=AuthorizationError("No authorization code received"),
            )

        if returned_state is None or not secrets.compare_digest(
            returned_state, self.auth_state.state
        ):
            logger.warning("Rejected OAuth callback with mismatched state")
            return CallbackOutcome(
                200,
                render_page(False, "State mismatch - possible security issue"),
                error=CsrfError("State mismatch - possible CSRF attack"),
            )

        if self.auth_state.is_expired(self.clock()):
            return CallbackOutcome(
                200,
                render_page(False, "This authorization request has expired."),
                error=FlowTimeoutError("Authorization request expired before the callback"),
            )

        return CallbackOutcome(
            200,
            render_page(
                True, "Authorization was successful. You can now use Day AI tools."
            ),
            code=code,
        )

    async def _wait_for_code(self) -> str:
        assert self._result is not None and self.auth_state is not None
        remaining = max(0.0, self.auth_state.expires_at - self.clock())
        try:
            return await asyncio.wait_for(self._result, timeout=remaining)
        except asyncio.TimeoutError:
            raise FlowTimeoutError(
                f"OAuth flow timed out after {self.config.flow_timeout:g} seconds"
            ) from None

    def _settle(self, code: Optional[str], error: Optional[Exception]) -> None:
        if self._result is None or self._result.done():
            return
        if error is not None:
            self._result.set_exception(error)
        else:
            self._result.set_result(code)  # type: ignore[arg-type]

    def _deliver(self, outcome: CallbackOutcome) -> None:
        """Hand a callback outcome from the listener thread to the event loop."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._settle, outcome.code, outcome.error)

    def _claim_port(self) -> None:
        port = self.config.callback_port
        with _claimed_ports_lock:
            if port in _claimed_ports:
                raise FlowInProgressError(
                    f"An authorization flow is already waiting on port {port}"
                )
            _claimed_ports.add(port)
        self._port_claimed = True

    def _release_port(self) -> None:
        if not self._port_claimed:
            return
        with _claimed_ports_lock:
            _claimed_ports.discard(self.config.callback_port)
        self._port_claimed = False

    def _start_listener(self) -> None:
        address = (self.config.callback_host, self.config.callback_port)
        try:
            server = HTTPServer(address, self._create_callback_handler())
        except OSError as e:
            raise FlowInProgressError(
                f"Callback port {self.config.callback_port} is already in use",
                detail=str(e),
            ) from e

        self._server = server
        self._thread = threading.Thread(
            target=server.serve_forever,
            kwargs={"poll_interval": 0.1},
            name="oauth-callback",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Callback server listening on {self.config.redirect_uri}")

    def _teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True

        server, self._server = self._server, None
        if server is not None:
            server.shutdown()
            server.server_close()
            logger.debug("Callback server closed")
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None
        self._release_port()

    def _create_callback_handler(self) -> type:
        """Create the request handler class bound to this flow."""
        flow = self

        class CallbackHandler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:  # noqa: N802
                outcome = flow.handle_callback(self.path)
                body = outcome.page.encode("utf-8")
                self.send_response(outcome.status)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)
                if outcome.settles:
                    flow._deliver(outcome)

            def log_message(self, format: str, *args: Any) -> None:
                logger.debug("Callback server: " + format % args)

        return CallbackHandler
