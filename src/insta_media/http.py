"""Shared async HTTP helpers for talking to Instagram and its CDN.

Every helper validates its target with ``is_allowed_host`` before sending and
re-validates ``response.url`` after redirects: a trusted host may redirect
anywhere. The client built by ``build_client`` additionally rejects every
request hop (redirects included) to a host outside the allowlist.

Helpers never raise on network trouble; a failed or timed-out request maps to
None (or 0 for sizes) at the call site. httpx timeouts bound each socket
operation, so every call is also wrapped in ``request_deadline`` to bound the
request as a whole.
"""

import asyncio
import logging

import httpx

from .cdn import is_allowed_host
from .errors import DisallowedHostError
from .models import Dimensions
from .sniff import SNIFF_BYTES, sniff_dimensions

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)

# What a helper maps to "no result". InvalidURL is not an HTTPError.
REQUEST_FAILURES = (httpx.HTTPError, httpx.InvalidURL, TimeoutError)


async def _enforce_allowlist(request: httpx.Request) -> None:
    if not is_allowed_host(str(request.url)):
        raise DisallowedHostError(
            f"Refusing request to non-allowlisted host: {request.url.host}",
            request=request,
        )


def build_client(
    timeout: float = DEFAULT_TIMEOUT,
    user_agent: str = DEFAULT_USER_AGENT,
) -> httpx.AsyncClient:
    """Create the request-scoped client used for one post resolution."""
    return httpx.AsyncClient(
        headers={"User-Agent": user_agent},
        timeout=timeout,
        follow_redirects=True,
        event_hooks={"request": [_enforce_allowlist]},
    )


def request_deadline(client: httpx.AsyncClient):
    """Overall deadline for one request, equal to the client's read timeout."""
    return asyncio.timeout(client.timeout.read or DEFAULT_TIMEOUT)


def _is_image(response: httpx.Response) -> bool:
    return response.headers.get("content-type", "").startswith("image/")


def _final_url(response: httpx.Response) -> str | None:
    final = str(response.url)
    if not is_allowed_host(final):
        logger.warning("Redirect left the allowlist: %s", final)
        return None
    return final


async def probe_image_url(client: httpx.AsyncClient, url: str) -> str | None:
    """Check that ``url`` serves an image and return its post-redirect URL.

    HEAD first, then a one-byte ranged GET whose body is never read.
    """
    if not is_allowed_host(url):
        return None

    try:
        async with request_deadline(client):
            response = await client.head(url)
        if response.is_success and _is_image(response):
            return _final_url(response)
    except REQUEST_FAILURES as e:
        logger.debug("HEAD probe failed for %s: %r", url, e)

    try:
        async with request_deadline(client):
            async with client.stream(
                "GET", url, headers={"Range": "bytes=0-0"}
            ) as response:
                if response.is_success and _is_image(response):
                    return _final_url(response)
    except REQUEST_FAILURES as e:
        logger.debug("GET probe failed for %s: %r", url, e)

    return None


async def fetch_image_dimensions(
    client: httpx.AsyncClient, url: str
) -> Dimensions | None:
    """Fetch only the head of an image and sniff its dimensions."""
    if not is_allowed_host(url):
        return None
    try:
        async with request_deadline(client):
            async with client.stream(
                "GET", url, headers={"Range": f"bytes=0-{SNIFF_BYTES - 1}"}
            ) as response:
                if not response.is_success or _final_url(response) is None:
                    return None
                head = b""
                async for chunk in response.aiter_bytes():
                    head += chunk
                    if len(head) >= SNIFF_BYTES:
                        break
    except REQUEST_FAILURES as e:
        logger.debug("Dimension fetch failed for %s: %r", url, e)
        return None
    return sniff_dimensions(head[:SNIFF_BYTES])


async def resolve_legacy_image_url(
    client: httpx.AsyncClient, url: str
) -> str | None:
    """Follow a legacy instagram.com/.../media/ URL to its CDN location."""
    if not is_allowed_host(url):
        return None
    try:
        async with request_deadline(client):
            async with client.stream("GET", url) as response:
                if not response.is_success or not _is_image(response):
                    return None
                return _final_url(response)
    except REQUEST_FAILURES as e:
        logger.debug("Legacy URL resolution failed for %s: %r", url, e)
        return None


async def fetch_file_size(client: httpx.AsyncClient, url: str) -> int:
    """Content-Length from a HEAD request, or 0 when unavailable."""
    if not is_allowed_host(url):
        return 0
    try:
        async with request_deadline(client):
            response = await client.head(url)
    except REQUEST_FAILURES as e:
        logger.debug("Size lookup failed for %s: %r", url, e)
        return 0
    if not response.is_success or _final_url(response) is None:
        return 0
    try:
        return int(response.headers.get("content-length", 0))
    except ValueError:
        return 0
