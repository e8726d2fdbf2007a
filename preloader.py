"""
Image preloading for extracted URLs.

Every URL gets an ImageRequest handle, built synchronously before any I/O; a URL
that cannot be requested fails the whole call with ImageLoadError. The requests
are then issued concurrently over one aiohttp session and joined. Failures after
a request is issued (bad status, connection errors, timeouts) only settle that
request: preloading is cache warming, not validation.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, MutableMapping, Optional

import aiohttp
from yarl import URL

import config
from exceptions import ImageLoadError

logger = logging.getLogger(__name__)

_HTTP_SCHEMES = ("http", "https")


class ImageRequest:
    """Load handle for one image URL, resolved against the document location like Image.src."""

    def __init__(self, url: str, location: Optional[str] = None):
        self.url = url
        try:
            target = URL(url.strip())
            if location and not target.scheme:
                target = URL(location).join(target)
        except (TypeError, ValueError) as e:
            raise ImageLoadError(f"Cannot load image {url!r}: {e}") from e

        # data: URIs carry their own bytes; nothing to fetch.
        self.inline = target.scheme == "data"
        if not self.inline and (target.scheme not in _HTTP_SCHEMES or not target.host):
            raise ImageLoadError(f"Cannot load image {url!r}: not an absolute http(s) URL")
        self.target = target

    def __repr__(self) -> str:
        return f"ImageRequest({str(self.target)!r})"


async def _fetch_image(
    session: aiohttp.ClientSession,
    request: ImageRequest,
    timeout: Optional[float] = None,
) -> Optional[bytes]:
    """GET the image body. Returns None on any post-initiation failure."""
    kwargs = {} if timeout is None else {"timeout": aiohttp.ClientTimeout(total=timeout)}
    try:
        async with session.get(request.target, **kwargs) as resp:
            if resp.status != 200:
                logger.debug("Image preload for %s answered with status %s.", request.url, resp.status)
                return None
            return await resp.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.debug("Image preload failed for %s: '%s'.", request.url, e)
        return None


async def load_images(
    urls: Iterable[str],
    *,
    location: Optional[str] = None,
    session: Optional[aiohttp.ClientSession] = None,
    cache: Optional[MutableMapping[str, bytes]] = None,
    max_concurrent: Optional[int] = None,
    timeout: Optional[float] = None,
) -> int:
    """
    Preload every URL concurrently and return once all requests have settled.

    max_concurrent and timeout default to unbounded fan-out and no timeout.
    Fetched bodies are stored in `cache` (keyed by resolved URL) when one is given.
    Returns the number of settled requests.
    """
    # All handles first: a bad URL rejects the call before anything is issued.
    requests = [ImageRequest(url, location) for url in urls]
    if not requests:
        return 0

    sem = asyncio.Semaphore(max_concurrent) if max_concurrent else None

    async def load(session: aiohttp.ClientSession, request: ImageRequest) -> None:
        if request.inline:
            return
        if sem is None:
            body = await _fetch_image(session, request, timeout)
        else:
            async with sem:
                body = await _fetch_image(session, request, timeout)
        if body is not None and cache is not None:
            cache[str(request.target)] = body

    async def run(session: aiohttp.ClientSession) -> None:
        await asyncio.gather(*[load(session, request) for request in requests])

    if session is not None:
        await run(session)
    else:
        async with aiohttp.ClientSession(
            headers={"User-Agent": config.USER_AGENT},
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as own_session:
            await run(own_session)

    logger.debug("Preloaded %d image(s).", len(requests))
    return len(requests)
