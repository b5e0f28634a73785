"""
Media fetching with retries, per-kind timeouts and a proxy fallback.

`MediaFetcher.fetch` never raises for a failed download: it returns None and
appends a `FailureRecord`, so one bad asset cannot abort a batch.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

import httpx

from storyexport.config import (
    FETCH_MAX_ATTEMPTS,
    FETCH_PROXY_URL,
    FETCH_RETRY_BACKOFF_SECONDS,
    FETCH_TIMEOUT_IMAGE_SECONDS,
    FETCH_TIMEOUT_MEDIA_SECONDS,
    MAX_ASSET_BYTES,
    NO_CACHE_HOST_SUFFIXES,
)
from storyexport.core.models import FailureRecord, MediaKind
from storyexport.core.urls import host_of

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """A single fetch attempt failed."""
    pass


def _request_headers(url: str) -> Dict[str, str]:
    host = host_of(url)
    for suffix in NO_CACHE_HOST_SUFFIXES:
        domain = suffix.lstrip(".")
        if host == domain or host.endswith("." + domain):
            return {"Cache-Control": "no-cache"}
    return {}


async def _read_limited(response: httpx.Response, max_bytes: int) -> bytes:
    chunks: List[bytes] = []
    size = 0
    async for chunk in response.aiter_bytes():
        size += len(chunk)
        if size > max_bytes:
            raise FetchError(f"Response exceeds {max_bytes} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


class FetchStrategy:
    """One step in the ordered fetch chain."""

    name = "strategy"

    def __init__(self, delay: float = 0.0, max_bytes: int = MAX_ASSET_BYTES):
        self.delay = delay
        self.max_bytes = max_bytes

    async def fetch(self, client: httpx.AsyncClient, url: str) -> bytes:
        raise NotImplementedError


class DirectFetch(FetchStrategy):
    """GET the asset from its own URL."""

    name = "direct"

    async def fetch(self, client: httpx.AsyncClient, url: str) -> bytes:
        async with client.stream(
            "GET", url, headers=_request_headers(url), follow_redirects=True
        ) as response:
            if not response.is_success:
                raise FetchError(f"HTTP {response.status_code}: {response.reason_phrase}")
            return await _read_limited(response, self.max_bytes)


class ProxyFetch(FetchStrategy):
    """Stream the asset through the server-side fetch proxy."""

    name = "proxy"

    def __init__(self, proxy_url: str, delay: float = 0.0, max_bytes: int = MAX_ASSET_BYTES):
        super().__init__(delay=delay, max_bytes=max_bytes)
        self.proxy_url = proxy_url

    async def fetch(self, client: httpx.AsyncClient, url: str) -> bytes:
        async with client.stream("GET", self.proxy_url, params={"url": url}) as response:
            if not response.is_success:
                detail = (await response.aread()).decode("utf-8", errors="replace")[:200]
                raise FetchError(f"Proxy failed ({response.status_code}): {detail}")
            return await _read_limited(response, self.max_bytes)


def build_strategies(
    max_attempts: int = FETCH_MAX_ATTEMPTS,
    backoff: float = FETCH_RETRY_BACKOFF_SECONDS,
    proxy_url: Optional[str] = FETCH_PROXY_URL,
) -> List[FetchStrategy]:
    """
    Direct attempts with linear backoff (0, 1x, 2x ...), then one proxy attempt.
    """
    strategies: List[FetchStrategy] = [
        DirectFetch(delay=backoff * attempt) for attempt in range(max(1, max_attempts))
    ]
    if proxy_url:
        strategies.append(ProxyFetch(proxy_url))
    return strategies


class MediaFetcher:
    """
    Fetches assets for one export run.

    Successful video and audio downloads are memoized by URL for the
    lifetime of the fetcher. Create one fetcher per export.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        strategies: Optional[Sequence[FetchStrategy]] = None,
        failures: Optional[List[FailureRecord]] = None,
        image_timeout: float = FETCH_TIMEOUT_IMAGE_SECONDS,
        media_timeout: float = FETCH_TIMEOUT_MEDIA_SECONDS,
    ):
        self._client = client
        self._strategies = list(strategies) if strategies is not None else build_strategies()
        self._cache: Dict[str, bytes] = {}
        self.failures: List[FailureRecord] = failures if failures is not None else []
        self.image_timeout = image_timeout
        self.media_timeout = media_timeout

    def timeout_for(self, kind: MediaKind) -> float:
        return self.image_timeout if kind == MediaKind.IMAGE else self.media_timeout

    async def fetch(self, url: str, kind: MediaKind) -> Optional[bytes]:
        """
        Fetch one asset.

        Args:
            url: Asset URL exactly as referenced
            kind: Media kind, selects the timeout and cache policy

        Returns:
            The asset bytes, or None after every strategy failed
        """
        memoize = kind != MediaKind.IMAGE
        if memoize and url in self._cache:
            logger.debug(f"Cache hit for {url}")
            return self._cache[url]

        timeout = self.timeout_for(kind)
        total = len(self._strategies)
        errors: List[str] = []

        for index, strategy in enumerate(self._strategies, start=1):
            if strategy.delay > 0:
                await asyncio.sleep(strategy.delay)
            try:
                data = await asyncio.wait_for(strategy.fetch(self._client, url), timeout=timeout)
            except asyncio.TimeoutError:
                error = f"timed out after {timeout:g}s"
            except Exception as e:
                error = str(e) or type(e).__name__
            else:
                if memoize:
                    data = self._cache.setdefault(url, data)
                return data

            errors.append(f"{strategy.name}: {error}")
            logger.warning(f"{kind.value} attempt {index}/{total} ({strategy.name}) failed for {url}: {error}")

        reason = "; ".join(errors) if errors else "no fetch strategy configured"
        logger.error(f"Giving up on {kind.value} after {total} attempts: {url}")
        self.failures.append(FailureRecord(asset_type=kind.value, url=url, reason=reason))
        return None
