"""Tests for AmazonSession's HTTP transport against a local aiohttp server."""

import asyncio

import pytest
from aiohttp import test_utils, web

from tracker.exceptions import UpstreamFetchError, UpstreamParseError
from tracker.models import SessionStatus
from tracker.tracking.amazon_session import USER_AGENT, AmazonSession

GARBLED = b"\xff\xfe\xfa<html><body>order page</body></html>"


async def echo_headers(request: web.Request) -> web.Response:
    text = f"{request.headers.get('User-Agent', '')}|{request.headers.get('Accept-Language', '')}"
    return web.Response(text=text, content_type="text/html")


async def unavailable(request: web.Request) -> web.Response:
    return web.Response(status=503, text="Service Unavailable", content_type="text/html")


async def slow(request: web.Request) -> web.Response:
    await asyncio.sleep(0.5)
    return web.Response(text="late", content_type="text/html")


async def garbled(request: web.Request) -> web.Response:
    return web.Response(body=GARBLED, content_type="text/html", charset="utf-8")


def make_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/headers", echo_headers)
    app.router.add_get("/unavailable", unavailable)
    app.router.add_get("/slow", slow)
    app.router.add_get("/garbled", garbled)
    app.router.add_get("/ap/signin", garbled)
    return app


def make_session(base_url: str, timeout: float = 5) -> AmazonSession:
    return AmazonSession(
        username="alice@example.com",
        password="hunter2",
        base_url=base_url,
        timeout=timeout,
    )


class TestAmazonTransport:
    """Tests for request classification in AmazonSession._request."""

    @pytest.mark.asyncio
    async def test_browser_headers_and_timeout(self):
        async with test_utils.TestServer(make_app()) as server:
            session = make_session(str(server.make_url("")), timeout=7)
            try:
                body = await session._request("GET", str(server.make_url("/headers")))
                assert session._http.timeout.total == 7
            finally:
                await session.close()

        assert body == f"{USER_AGENT}|en-US,en;q=0.5"

    @pytest.mark.asyncio
    async def test_error_status_is_fetch_error(self):
        async with test_utils.TestServer(make_app()) as server:
            url = str(server.make_url("/unavailable"))
            session = make_session(str(server.make_url("")))
            try:
                with pytest.raises(UpstreamFetchError) as exc_info:
                    await session._request("GET", url)
            finally:
                await session.close()

        assert exc_info.value.status == 503
        assert exc_info.value.url == url
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_unreachable_host_is_fetch_error(self):
        async with test_utils.TestServer(make_app()) as server:
            base_url = str(server.make_url(""))
        # Server is gone; the port refuses connections
        session = make_session(base_url)
        try:
            with pytest.raises(UpstreamFetchError, match="Could not reach Amazon") as exc_info:
                await session._request("GET", f"{base_url}/headers")
        finally:
            await session.close()

        assert exc_info.value.retryable is True
        assert exc_info.value.status is None

    @pytest.mark.asyncio
    async def test_timeout_is_fetch_error(self):
        async with test_utils.TestServer(make_app()) as server:
            session = make_session(str(server.make_url("")), timeout=0.05)
            try:
                with pytest.raises(UpstreamFetchError) as exc_info:
                    await session._request("GET", str(server.make_url("/slow")))
            finally:
                await session.close()

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_undecodable_body_is_replaced(self):
        async with test_utils.TestServer(make_app()) as server:
            session = make_session(str(server.make_url("")))
            try:
                body = await session._request("GET", str(server.make_url("/garbled")))
            finally:
                await session.close()

        assert "\ufffd" in body
        assert "order page" in body

    @pytest.mark.asyncio
    async def test_undecodable_signin_page_leaves_session_retryable(self):
        async with test_utils.TestServer(make_app()) as server:
            session = make_session(str(server.make_url("")))
            try:
                with pytest.raises(UpstreamParseError):
                    await session.ensure_active()
            finally:
                await session.close()

        assert session.status == SessionStatus.NO_SESSION
        assert session.failure is None
