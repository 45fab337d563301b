"""Tests for the TwitCasting HTTP client against an in-process fake API."""

from unittest.mock import AsyncMock

import pytest
from aiohttp import web
from aiohttp import test_utils

from castcomments.api.exceptions import OAuthError, ProtocolError, TransportError
from castcomments.api.http import TwitcastingClient, exchange_code
from castcomments.api.models import Credentials
from castcomments.poller import CommentPoller

NOT_FOUND = {"error": {"code": 404, "message": "Not Found"}}


def make_api(routes: dict, seen: list) -> web.Application:
    """Build a fake API answering each (method, path) with a fixed (status, body)."""

    async def handler(request: web.Request) -> web.Response:
        data = await request.post() if request.method == "POST" else {}
        seen.append(
            {
                "path": request.path,
                "query": dict(request.query),
                "headers": request.headers.copy(),
                "form": dict(data),
            }
        )
        status, body = routes[(request.method, request.path)]
        if isinstance(body, str):
            return web.Response(status=status, text=body)
        return web.json_response(body, status=status)

    app = web.Application()
    for method, path in routes:
        app.router.add_route(method, path, handler)
    return app


def base_url(server: test_utils.TestServer) -> str:
    return str(server.make_url("/")).rstrip("/")


@pytest.mark.asyncio
async def test_resolve_active_broadcast_live():
    """Test resolving the movie id of a live user."""
    seen = []
    app = make_api(
        {("GET", "/users/equall2/current_live"): (200, {"movie": {"id": "189037369", "is_live": True}})},
        seen,
    )

    async with test_utils.TestServer(app) as server:
        async with TwitcastingClient("tok", base_url=base_url(server)) as client:
            movie_id = await client.resolve_active_broadcast("equall2")

    assert movie_id == "189037369"
    assert seen[0]["headers"]["X-Api-Version"] == "2.0"
    assert seen[0]["headers"]["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_resolve_active_broadcast_not_live():
    """Test the not-live scenario: a 404 domain error yields None."""
    app = make_api({("GET", "/users/equall2/current_live"): (404, NOT_FOUND)}, [])

    async with test_utils.TestServer(app) as server:
        async with TwitcastingClient("tok", base_url=base_url(server)) as client:
            assert await client.resolve_active_broadcast("equall2") is None


@pytest.mark.asyncio
async def test_resolve_active_broadcast_unexpected_error_code():
    """Test that non-404 error codes are protocol errors."""
    app = make_api(
        {("GET", "/users/equall2/current_live"): (401, {"error": {"code": 1000, "message": "Invalid token"}})},
        [],
    )

    async with test_utils.TestServer(app) as server:
        async with TwitcastingClient("tok", base_url=base_url(server)) as client:
            with pytest.raises(ProtocolError) as exc_info:
                await client.resolve_active_broadcast("equall2")

    assert exc_info.value.code == 1000


@pytest.mark.asyncio
async def test_resolve_active_broadcast_corrupted_payload():
    """Test that a payload matching no schema is a protocol error."""
    app = make_api({("GET", "/users/equall2/current_live"): (200, {"unexpected": True})}, [])

    async with test_utils.TestServer(app) as server:
        async with TwitcastingClient("tok", base_url=base_url(server)) as client:
            with pytest.raises(ProtocolError) as exc_info:
                await client.resolve_active_broadcast("equall2")

    assert exc_info.value.code is None


@pytest.mark.asyncio
async def test_resolve_active_broadcast_movie_without_id():
    app = make_api({("GET", "/users/equall2/current_live"): (200, {"movie": {"title": "no id"}})}, [])

    async with test_utils.TestServer(app) as server:
        async with TwitcastingClient("tok", base_url=base_url(server)) as client:
            with pytest.raises(ProtocolError):
                await client.resolve_active_broadcast("equall2")


@pytest.mark.asyncio
async def test_non_json_body_is_transport_error():
    app = make_api({("GET", "/users/equall2/current_live"): (502, "<html>Bad Gateway</html>")}, [])

    async with test_utils.TestServer(app) as server:
        async with TwitcastingClient("tok", base_url=base_url(server)) as client:
            with pytest.raises(TransportError):
                await client.resolve_active_broadcast("equall2")


@pytest.mark.asyncio
async def test_empty_body_is_transport_error():
    """Test that an empty gateway error is fatal rather than a bad payload."""
    app = make_api({("GET", "/users/equall2/current_live"): (502, "")}, [])

    async with test_utils.TestServer(app) as server:
        async with TwitcastingClient("tok", base_url=base_url(server)) as client:
            with pytest.raises(TransportError):
                await client.resolve_active_broadcast("equall2")


@pytest.mark.asyncio
async def test_empty_body_stops_the_poller():
    app = make_api({("GET", "/users/equall2/current_live"): (502, "  \n")}, [])

    async with test_utils.TestServer(app) as server:
        async with TwitcastingClient("tok", base_url=base_url(server)) as client:
            poller = CommentPoller(client, "equall2", emit=lambda c: None)
            with pytest.raises(TransportError):
                await poller.poll_once()


@pytest.mark.asyncio
async def test_path_segments_are_escaped():
    """Test that user and movie ids cannot alter the request path."""
    client = TwitcastingClient("tok")
    client._get_json = AsyncMock(side_effect=[NOT_FOUND, NOT_FOUND])

    await client.resolve_active_broadcast("c:someone/../x")
    await client.fetch_comments("12 34?", "9")

    paths = [call.args[0] for call in client._get_json.await_args_list]
    assert paths == [
        "/users/c%3Asomeone%2F..%2Fx/current_live",
        "/movies/12%2034%3F/comments",
    ]


@pytest.mark.asyncio
async def test_fetch_comments_orders_oldest_first():
    """Test the comments scenario: newest-first page without a cursor."""
    seen = []
    page = {
        "movie_id": "189037369",
        "all_count": 2,
        "comments": [{"id": "10", "message": "hi"}, {"id": "9", "message": "yo"}],
    }
    app = make_api({("GET", "/movies/189037369/comments"): (200, page)}, seen)

    async with test_utils.TestServer(app) as server:
        async with TwitcastingClient("tok", base_url=base_url(server)) as client:
            comments, cursor = await client.fetch_comments("189037369", None)

    assert [c.message for c in comments] == ["yo", "hi"]
    assert cursor == "10"
    assert "slice_id" not in seen[0]["query"]


@pytest.mark.asyncio
async def test_fetch_comments_cursor_is_newest_raw_id():
    """Test ordering round-trip: [c3, c2, c1] emits [c1, c2, c3] with cursor c3."""
    page = {
        "comments": [
            {"id": "c3", "message": "third"},
            {"id": "c2", "message": "second"},
            {"id": "c1", "message": "first"},
        ]
    }
    app = make_api({("GET", "/movies/1/comments"): (200, page)}, [])

    async with test_utils.TestServer(app) as server:
        async with TwitcastingClient("tok", base_url=base_url(server)) as client:
            comments, cursor = await client.fetch_comments("1", "c0")

    assert [c.id for c in comments] == ["c1", "c2", "c3"]
    assert cursor == "c3"


@pytest.mark.asyncio
async def test_fetch_comments_sends_cursor():
    seen = []
    app = make_api({("GET", "/movies/1/comments"): (200, {"comments": []})}, seen)

    async with test_utils.TestServer(app) as server:
        async with TwitcastingClient("tok", base_url=base_url(server)) as client:
            comments, cursor = await client.fetch_comments("1", "42")

    assert seen[0]["query"] == {"slice_id": "42"}
    assert comments == []
    assert cursor == "42"


@pytest.mark.asyncio
async def test_fetch_comments_empty_page_without_cursor():
    app = make_api({("GET", "/movies/1/comments"): (200, {"comments": []})}, [])

    async with test_utils.TestServer(app) as server:
        async with TwitcastingClient("tok", base_url=base_url(server)) as client:
            comments, cursor = await client.fetch_comments("1", None)

    assert comments == []
    assert cursor is None


@pytest.mark.asyncio
async def test_fetch_comments_broadcast_not_found():
    """Test that a 404 keeps the cursor and yields no comments."""
    app = make_api({("GET", "/movies/1/comments"): (404, NOT_FOUND)}, [])

    async with test_utils.TestServer(app) as server:
        async with TwitcastingClient("tok", base_url=base_url(server)) as client:
            comments, cursor = await client.fetch_comments("1", "42")

    assert comments is None
    assert cursor == "42"


@pytest.mark.asyncio
async def test_fetch_comments_malformed_comment():
    app = make_api({("GET", "/movies/1/comments"): (200, {"comments": [{"id": "1"}]})}, [])

    async with test_utils.TestServer(app) as server:
        async with TwitcastingClient("tok", base_url=base_url(server)) as client:
            with pytest.raises(ProtocolError):
                await client.fetch_comments("1", None)


@pytest.mark.asyncio
async def test_exchange_code_posts_form():
    """Test the token exchange request and response."""
    seen = []
    app = make_api(
        {("POST", "/oauth2/access_token"): (200, {"token_type": "bearer", "expires_in": 15552000, "access_token": "new-token"})},
        seen,
    )
    credentials = Credentials(client_id="abc123", client_secret="s3cret")

    async with test_utils.TestServer(app) as server:
        token = await exchange_code(
            "the-code",
            credentials,
            redirect_uri="http://localhost:8000/",
            base_url=base_url(server),
        )

    assert token == "new-token"
    assert seen[0]["form"] == {
        "code": "the-code",
        "grant_type": "authorization_code",
        "client_id": "abc123",
        "client_secret": "s3cret",
        "redirect_uri": "http://localhost:8000/",
    }
    assert "Authorization" not in seen[0]["headers"]


@pytest.mark.asyncio
async def test_exchange_code_without_access_token():
    app = make_api(
        {("POST", "/oauth2/access_token"): (400, {"error": {"code": 400, "message": "Bad Request"}})},
        [],
    )
    credentials = Credentials(client_id="abc123", client_secret="s3cret")

    async with test_utils.TestServer(app) as server:
        with pytest.raises(OAuthError):
            await exchange_code(
                "the-code",
                credentials,
                redirect_uri="http://localhost:8000/",
                base_url=base_url(server),
            )


@pytest.mark.asyncio
async def test_exchange_code_non_json():
    app = make_api({("POST", "/oauth2/access_token"): (500, "oops")}, [])
    credentials = Credentials(client_id="abc123", client_secret="s3cret")

    async with test_utils.TestServer(app) as server:
        with pytest.raises(OAuthError):
            await exchange_code(
                "the-code",
                credentials,
                redirect_uri="http://localhost:8000/",
                base_url=base_url(server),
            )
