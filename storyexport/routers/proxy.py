from typing import AsyncIterator

import httpx
from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from storyexport.config import FETCH_TIMEOUT_MEDIA_SECONDS, MAX_ASSET_BYTES, logger
from storyexport.core.validation import MAX_URL_LENGTH, ValidationError, validate_media_url

router = APIRouter(prefix="/api", tags=["Proxy"])


@router.get("/fetch-media")
async def fetch_media(
    url: str = Query(..., min_length=1, max_length=MAX_URL_LENGTH),
) -> StreamingResponse:
    """Stream a remote media file back to the caller (export fallback path)."""
    try:
        url = validate_media_url(url)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

    client = httpx.AsyncClient(timeout=FETCH_TIMEOUT_MEDIA_SECONDS, follow_redirects=True)
    try:
        response = await client.send(client.build_request("GET", url), stream=True)
    except httpx.HTTPError as e:
        await client.aclose()
        logger.warning("Proxy fetch failed for %s: %s", url, e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"fetch failed: {e}")

    if not response.is_success:
        detail = (await response.aread()).decode("utf-8", errors="replace")[:200]
        await response.aclose()
        await client.aclose()
        raise HTTPException(status_code=response.status_code, detail=detail or response.reason_phrase)

    content_length = response.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > MAX_ASSET_BYTES:
        await response.aclose()
        await client.aclose()
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="Asset too large")

    async def body() -> AsyncIterator[bytes]:
        sent = 0
        try:
            async for chunk in response.aiter_bytes():
                sent += len(chunk)
                if sent > MAX_ASSET_BYTES:
                    logger.warning("Proxy stream for %s exceeded %d bytes, aborting", url, MAX_ASSET_BYTES)
                    raise RuntimeError("Asset too large")
                yield chunk
        finally:
            await response.aclose()
            await client.aclose()

    return StreamingResponse(
        body(),
        media_type=response.headers.get("content-type", "application/octet-stream"),
        headers={"Cache-Control": "public, max-age=3600"},
    )
