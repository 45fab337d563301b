"""
HTTP API for resolving live broadcasts, fetching comments and exchanging OAuth codes.
"""

import asyncio
import json
import logging
from typing import Any, Optional, Type, TypeVar
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError

from castcomments.api.exceptions import OAuthError, ProtocolError, TransportError
from castcomments.api.models import (
    ApiModel,
    Comment,
    CommentsResponse,
    Credentials,
    CurrentLiveResponse,
    ErrorResponse,
    TokenResponse,
)

logger = logging.getLogger(__name__)

BASE_URL = "https://apiv2.twitcasting.tv"
API_VERSION = "2.0"
NOT_FOUND = 404

M = TypeVar("M", bound=ApiModel)


def _unwrap(payload: Any, key: str, schema: Type[M], context: str) -> Optional[M]:
    """
    Validate a response body against its success schema or the error schema.

    Args:
        payload: Decoded JSON body
        key: Top-level key that marks a success payload
        schema: Model for the success payload
        context: What was being requested, for error messages

    Returns:
        The parsed success model, or None for a 404 domain error

    Raises:
        ProtocolError: On any other error code or an unrecognized payload
    """
    if not isinstance(payload, dict):
        raise ProtocolError(f"Got a corrupted json while {context}: {payload!r}")

    if key in payload:
        try:
            return schema.model_validate(payload)
        except ValidationError as e:
            raise ProtocolError(f"Got a corrupted json while {context}: {e}")

    if "error" in payload:
        try:
            error = ErrorResponse.model_validate(payload).error
        except ValidationError:
            raise ProtocolError(f"Got a corrupted json while {context}: {payload!r}")

        if error.code == NOT_FOUND:
            return None

        raise ProtocolError(
            f"Unexpected error while {context}: {error.code} {error.message}",
            code=error.code,
        )

    raise ProtocolError(f"Got a corrupted json while {context}: {payload!r}")


class TwitcastingClient:
    """
    Authenticated client for the TwitCasting API.

    Every request carries the API version header and the bearer token.
    """

    def __init__(
        self,
        access_token: str,
        base_url: str = BASE_URL,
        timeout: float = 30.0,
    ):
        self._access_token = access_token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def headers(self) -> dict[str, str]:
        return {
            "X-Api-Version": API_VERSION,
            "Authorization": f"Bearer {self._access_token}",
        }

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "TwitcastingClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _get_json(self, path: str, params: Optional[dict[str, str]] = None) -> Any:
        """
        GET a resource and decode its JSON body.

        The body is decoded whatever the HTTP status is, since domain errors
        are reported inside it.

        Raises:
            TransportError: On network failure, timeout or a non-JSON body
        """
        url = f"{self._base_url}{path}"
        session = self._get_session()

        try:
            async with session.get(url, params=params) as response:
                logger.debug(f"GET {url} -> HTTP {response.status}")
                body = await response.text()

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"Network error while requesting {path}: {e}")
        except UnicodeDecodeError as e:
            raise TransportError(f"Got an undecodable response from {path}: {e}")

        if not body.strip():
            raise TransportError(f"Got an empty response from {path} (HTTP {response.status})")

        try:
            return json.loads(body)
        except ValueError as e:
            raise TransportError(f"Got a non-json response from {path}: {e}")

    async def resolve_active_broadcast(self, user: str) -> Optional[str]:
        """
        Get the id of the user's current live broadcast.

        Args:
            user: The broadcaster's user id or screen id

        Returns:
            The broadcast (movie) id, or None if the user is not live

        Raises:
            ProtocolError: On an unexpected error code or payload
            TransportError: On network failure
        """
        payload = await self._get_json(f"/users/{quote(user, safe='')}/current_live")
        live = _unwrap(payload, "movie", CurrentLiveResponse, "getting movie id")

        if live is None:
            logger.debug(f"User {user} is not live")
            return None

        return live.movie.id

    async def fetch_comments(
        self,
        movie_id: str,
        cursor: Optional[str] = None,
    ) -> tuple[Optional[list[Comment]], Optional[str]]:
        """
        Fetch comments newer than the cursor.

        Args:
            movie_id: The broadcast id
            cursor: Id of the newest comment already seen, or None for the latest page

        Returns:
            (comments oldest-first, new cursor). Comments are None when the
            broadcast was not found; the cursor is then returned unchanged.

        Raises:
            ProtocolError: On an unexpected error code or payload
            TransportError: On network failure
        """
        params = {"slice_id": cursor} if cursor is not None else None
        payload = await self._get_json(
            f"/movies/{quote(movie_id, safe='')}/comments", params=params
        )
        page = _unwrap(payload, "comments", CommentsResponse, "getting comments")

        if page is None:
            return None, cursor

        # The API returns newest first; the cursor must be the newest raw id
        new_cursor = page.comments[0].id if page.comments else cursor
        return list(reversed(page.comments)), new_cursor


async def exchange_code(
    code: str,
    credentials: Credentials,
    redirect_uri: str,
    base_url: str = BASE_URL,
    timeout: float = 30.0,
) -> str:
    """
    Exchange an authorization code for an access token.

    Args:
        code: The code delivered to the redirect URI
        credentials: Application client id and secret
        redirect_uri: The same redirect URI used for authorization
        base_url: API base URL
        timeout: Request timeout in seconds

    Returns:
        The access token

    Raises:
        OAuthError: If the exchange failed or no access token was returned
    """
    url = f"{base_url.rstrip('/')}/oauth2/access_token"
    data = {
        "code": code,
        "grant_type": "authorization_code",
        "client_id": credentials.client_id,
        "client_secret": credentials.client_secret,
        "redirect_uri": redirect_uri,
    }

    try:
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout)
        ) as session:
            async with session.post(url, data=data) as response:
                payload = await response.json(content_type=None)

    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise OAuthError(f"OAuth2 failed: {e}")
    except ValueError as e:
        raise OAuthError(f"Got non-json response from token endpoint: {e}")

    if not isinstance(payload, dict) or "access_token" not in payload:
        raise OAuthError(f"Unexpected response: {payload!r}")

    try:
        token = TokenResponse.model_validate(payload)
    except ValidationError as e:
        raise OAuthError(f"Unexpected response: {e}")

    logger.info("Successfully obtained access token")
    return token.access_token
