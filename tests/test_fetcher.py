"""
Tests for media fetching with retries and proxy fallback.

Run with: pytest tests/test_fetcher.py -v
"""

import asyncio

import httpx

from storyexport.core.fetcher import DirectFetch, MediaFetcher, ProxyFetch, build_strategies
from storyexport.core.models import MediaKind

from tests.conftest import header_map, mock_client

PROXY = "https://proxy.test/api/fetch-media"


def fetch_once(handler, url, kind, **kwargs):
    """Run one fetch with zero backoff and return (data, fetcher)."""
    max_attempts = kwargs.pop("max_attempts", 3)
    proxy_url = kwargs.pop("proxy_url", None)

    async def scenario():
        async with mock_client(handler) as client:
            fetcher = MediaFetcher(
                client,
                build_strategies(max_attempts, 0, proxy_url),
                **kwargs,
            )
            return await fetcher.fetch(url, kind), fetcher

    return asyncio.run(scenario())


class TestBuildStrategies:
    def test_linear_backoff_then_proxy(self):
        strategies = build_strategies(3, 1.0, PROXY)
        assert [type(s) for s in strategies] == [DirectFetch, DirectFetch, DirectFetch, ProxyFetch]
        assert [s.delay for s in strategies] == [0.0, 1.0, 2.0, 0.0]

    def test_no_proxy_stage_without_url(self):
        strategies = build_strategies(2, 0.5, None)
        assert all(isinstance(s, DirectFetch) for s in strategies)
        assert len(strategies) == 2


class TestMediaFetcher:
    """Tests for the fetch chain."""

    def test_success_first_try(self, media_server):
        data, fetcher = fetch_once(media_server, "https://cdn.test/a.png", MediaKind.IMAGE)
        assert data == b"payload:/a.png"
        assert fetcher.failures == []
        assert len(media_server.requests) == 1

    def test_retries_until_success(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, content=b"ok")

        data, fetcher = fetch_once(handler, "https://cdn.test/a.png", MediaKind.IMAGE)
        assert data == b"ok"
        assert len(calls) == 3
        assert fetcher.failures == []

    def test_proxy_fallback_after_direct_attempts(self):
        seen = []

        def handler(request):
            seen.append(request.url.host)
            if request.url.host == "proxy.test":
                assert request.url.params["url"] == "https://cdn.test/a.mp4?sig=1"
                return httpx.Response(200, content=b"via-proxy")
            return httpx.Response(403)

        data, fetcher = fetch_once(
            handler, "https://cdn.test/a.mp4?sig=1", MediaKind.VIDEO, proxy_url=PROXY,
        )
        assert data == b"via-proxy"
        assert seen == ["cdn.test", "cdn.test", "cdn.test", "proxy.test"]
        assert fetcher.failures == []

    def test_exhaustion_records_failure(self):
        def handler(request):
            return httpx.Response(500, text="nope")

        data, fetcher = fetch_once(
            handler, "https://cdn.test/a.png", MediaKind.IMAGE, proxy_url=PROXY,
        )
        assert data is None
        (failure,) = fetcher.failures
        assert failure.asset_type == "image"
        assert failure.url == "https://cdn.test/a.png"
        assert "direct: HTTP 500" in failure.reason
        assert "proxy: Proxy failed (500)" in failure.reason

    def test_transport_error_is_a_failed_attempt(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        data, fetcher = fetch_once(handler, "https://cdn.test/a.mp3", MediaKind.AUDIO, max_attempts=2)
        assert data is None
        assert fetcher.failures[0].asset_type == "audio"
        assert fetcher.failures[0].reason.count("refused") == 2

    def test_timeout_per_kind(self):
        async def slow(request):
            await asyncio.sleep(1)
            return httpx.Response(200, content=b"late")

        data, fetcher = fetch_once(
            slow, "https://cdn.test/a.png", MediaKind.IMAGE, max_attempts=1, image_timeout=0.05,
        )
        assert data is None
        assert "timed out" in fetcher.failures[0].reason

    def test_video_downloads_are_cached(self, media_server):
        async def scenario():
            async with mock_client(media_server) as client:
                fetcher = MediaFetcher(client, build_strategies(1, 0, None))
                first = await fetcher.fetch("https://cdn.test/a.mp4", MediaKind.VIDEO)
                second = await fetcher.fetch("https://cdn.test/a.mp4", MediaKind.VIDEO)
                return first, second

        first, second = asyncio.run(scenario())
        assert first == second == b"payload:/a.mp4"
        assert len(media_server.requests) == 1

    def test_images_are_not_cached(self, media_server):
        async def scenario():
            async with mock_client(media_server) as client:
                fetcher = MediaFetcher(client, build_strategies(1, 0, None))
                await fetcher.fetch("https://cdn.test/a.png", MediaKind.IMAGE)
                await fetcher.fetch("https://cdn.test/a.png", MediaKind.IMAGE)

        asyncio.run(scenario())
        assert len(media_server.requests) == 2

    def test_failed_fetch_not_cached(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200 if len(calls) > 1 else 404, content=b"v")

        async def scenario():
            async with mock_client(handler) as client:
                fetcher = MediaFetcher(client, build_strategies(1, 0, None))
                first = await fetcher.fetch("https://cdn.test/a.mp4", MediaKind.VIDEO)
                second = await fetcher.fetch("https://cdn.test/a.mp4", MediaKind.VIDEO)
                return first, second, fetcher

        first, second, fetcher = asyncio.run(scenario())
        assert first is None
        assert second == b"v"
        assert len(fetcher.failures) == 1

    def test_r2_requests_bypass_cache(self, media_server):
        fetch_once(media_server, "https://pub-abc.r2.dev/a.png", MediaKind.IMAGE)
        assert header_map(media_server.requests[0]).get("cache-control") == "no-cache"

    def test_lookalike_host_not_treated_as_r2(self, media_server):
        fetch_once(media_server, "https://evilr2.dev/a.png", MediaKind.IMAGE)
        assert "cache-control" not in header_map(media_server.requests[0])

    def test_bare_r2_domain_bypasses_cache(self, media_server):
        fetch_once(media_server, "https://r2.dev/a.png", MediaKind.IMAGE)
        assert header_map(media_server.requests[0]).get("cache-control") == "no-cache"

    def test_other_hosts_keep_default_headers(self, media_server):
        fetch_once(media_server, "https://cdn.test/a.png", MediaKind.IMAGE)
        assert "cache-control" not in header_map(media_server.requests[0])

    def test_oversized_response_fails(self):
        def handler(request):
            return httpx.Response(200, content=b"x" * 64)

        async def scenario():
            async with mock_client(handler) as client:
                fetcher = MediaFetcher(client, [DirectFetch(max_bytes=16)])
                return await fetcher.fetch("https://cdn.test/big.png", MediaKind.IMAGE), fetcher

        data, fetcher = asyncio.run(scenario())
        assert data is None
        assert "exceeds 16 bytes" in fetcher.failures[0].reason
