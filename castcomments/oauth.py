"""
OAuth2 authorization-code flow through a local callback listener.
"""

import asyncio
import logging
import webbrowser
from enum import Enum
from typing import Awaitable, Callable, Optional
from urllib.parse import urlencode

from aiohttp import web

from castcomments.api.exceptions import OAuthError
from castcomments.api.http import BASE_URL, exchange_code
from castcomments.api.models import Credentials
from castcomments.config import load_credentials, read_secret_file
from castcomments.models import Config

logger = logging.getLogger(__name__)

CONFIRMATION_TEXT = (
    "Thank you, the token has successfully retrieved.\n"
    "You can now close the browser."
)

CodeExchanger = Callable[[str], Awaitable[str]]


class CallbackState(str, Enum):
    """Lifecycle of the callback listener. There is no transition back."""

    LISTENING = "LISTENING"
    CALLBACK_RECEIVED = "CALLBACK_RECEIVED"
    TOKEN_EXCHANGED = "TOKEN_EXCHANGED"
    SHUTTING_DOWN = "SHUTTING_DOWN"
    STOPPED = "STOPPED"


def build_authorization_url(client_id: str, base_url: str = BASE_URL) -> str:
    """Build the URL the user opens to authorize the application."""
    query = urlencode({"client_id": client_id, "response_type": "code"})
    return f"{base_url.rstrip('/')}/oauth2/authorize?{query}"


class OAuthCallbackServer:
    """
    Short-lived HTTP listener that receives the authorization redirect.

    Exactly one callback is handled per instance. The token is handed over
    through a future, so it can only ever be set once.
    Must be constructed inside a running event loop.
    """

    def __init__(
        self,
        credentials: Credentials,
        host: str = "127.0.0.1",
        port: int = 8000,
        redirect_uri: str = "http://localhost:8000/",
        base_url: str = BASE_URL,
        timeout: float = 30.0,
        exchanger: Optional[CodeExchanger] = None,
    ):
        """
        Initialize the callback server.

        Args:
            credentials: Application client id and secret
            host: Loopback address to bind
            port: Port to bind
            redirect_uri: Redirect URI registered for the application
            base_url: API base URL for the token endpoint
            timeout: Token request timeout in seconds
            exchanger: Coroutine turning a code into a token (defaults to the token endpoint)
        """
        self._credentials = credentials
        self._host = host
        self._port = port
        self._redirect_uri = redirect_uri
        self._base_url = base_url
        self._timeout = timeout
        self._exchanger = exchanger or self._exchange_code

        self._state = CallbackState.LISTENING
        self._token: asyncio.Future = asyncio.get_running_loop().create_future()
        self._runner: Optional[web.AppRunner] = None

        self.app = web.Application()
        self.app.router.add_get("/", self.handle_callback)

    @property
    def state(self) -> CallbackState:
        return self._state

    @property
    def token(self) -> Optional[str]:
        """The access token, once exchanged."""
        if self._token.done() and not self._token.cancelled() and not self._token.exception():
            return self._token.result()
        return None

    async def _exchange_code(self, code: str) -> str:
        return await exchange_code(
            code,
            self._credentials,
            redirect_uri=self._redirect_uri,
            base_url=self._base_url,
            timeout=self._timeout,
        )

    async def handle_callback(self, request: web.Request) -> web.Response:
        """Handle the redirect carrying the authorization code."""
        code = request.query.get("code")
        if not code:
            return web.Response(status=400, text="Missing code parameter.")

        if self._state is not CallbackState.LISTENING:
            logger.warning(f"Ignoring extra callback (state={self._state.value})")
            return web.Response(status=409, text="The token has already been retrieved.")

        self._state = CallbackState.CALLBACK_RECEIVED
        logger.info("Received authorization code, exchanging it for a token")

        try:
            token = await self._exchanger(code)
        except OAuthError as e:
            logger.error(f"Token exchange failed: {e}")
            response = await self._send(request, 500, "Failed to retrieve the token.")
            self._token.set_exception(e)
            return response

        self._state = CallbackState.TOKEN_EXCHANGED
        response = await self._send(request, 200, CONFIRMATION_TEXT)
        self._token.set_result(token)
        return response

    @staticmethod
    async def _send(request: web.Request, status: int, text: str) -> web.Response:
        # Flushed before the waiter is signalled, since it tears the listener down
        response = web.Response(status=status, text=text)
        await response.prepare(request)
        await response.write_eof()
        return response

    async def start(self) -> None:
        """
        Bind the listener. Call before sending the user to the authorization URL.

        Raises:
            OAuthError: If the listener cannot bind
        """
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        try:
            await site.start()
        except OSError as e:
            await self._runner.cleanup()
            self._state = CallbackState.STOPPED
            raise OAuthError(f"Cannot listen on {self._host}:{self._port}: {e}")
        logger.info(f"Waiting for the OAuth callback on http://{self._host}:{self._port}/")

    async def wait(self) -> str:
        """
        Wait until a callback delivers the token, then shut the listener down.

        Returns:
            The access token

        Raises:
            OAuthError: If the code exchange failed
        """
        try:
            return await self._token
        finally:
            self._state = CallbackState.SHUTTING_DOWN
            if self._runner is not None:
                await self._runner.cleanup()
                self._runner = None
            self._state = CallbackState.STOPPED
            logger.debug("Callback listener stopped")

    async def wait_for_token(self) -> str:
        """Bind the listener and wait for the token."""
        await self.start()
        return await self.wait()


async def run_oauth_flow(config: Config) -> str:
    """
    Run the interactive authorization-code flow.

    Returns:
        The access token

    Raises:
        ConfigurationError: If the credentials cannot be read
        OAuthError: If the code exchange failed
    """
    credentials = load_credentials(config)
    server = OAuthCallbackServer(
        credentials,
        host=config.callback_host,
        port=config.callback_port,
        redirect_uri=config.redirect_uri,
        base_url=config.base_url,
        timeout=config.request_timeout_sec,
    )

    url = build_authorization_url(credentials.client_id, config.base_url)
    logger.info("Web browser will open to log you in, follow the instructions there")
    logger.info(f"Authorization URL: {url}")

    await server.start()
    if config.open_browser and not webbrowser.open(url):
        logger.warning("Could not open a web browser, open the URL above manually")

    token = await server.wait()
    logger.info("Retrieved access token")
    return token


async def acquire_token(config: Config) -> str:
    """Read the token file if configured, otherwise run the OAuth flow."""
    if config.token_file:
        logger.info(f"Reading access token from {config.token_file}")
        return read_secret_file(config.token_file)

    return await run_oauth_flow(config)
