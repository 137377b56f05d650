"""Enrich extracted media items with verified URLs, dimensions and sizes.

Items are enriched concurrently; each task owns exactly one item, so the
in-place mutation needs no locking.
"""

import asyncio
import logging
from urllib.parse import urlparse

import httpx

from .cdn import dimensions_from_size_token
from .http import (
    fetch_file_size,
    fetch_image_dimensions,
    resolve_legacy_image_url,
)
from .models import Dimensions, MediaItem, MediaType
from .upgrade import upgrade_image_url

logger = logging.getLogger(__name__)


async def enrich_media_items(client: httpx.AsyncClient, items: list[MediaItem]) -> None:
    """Upgrade, measure and size every item in place."""
    await asyncio.gather(*(_enrich_item(client, item) for item in items))


async def _enrich_item(client: httpx.AsyncClient, item: MediaItem) -> None:
    if item.type == MediaType.IMAGE:
        await _promote_image(client, item)

    if not item.width or not item.height:
        inferred = dimensions_from_size_token(item.url)
        if inferred and inferred.width and inferred.height:
            item.width, item.height = inferred.width, inferred.height

    item.filesize = await fetch_file_size(client, item.url)


async def _promote_image(client: httpx.AsyncClient, item: MediaItem) -> None:
    current = item.url
    if is_legacy_media_url(current):
        resolved = await resolve_legacy_image_url(client, current)
        if resolved:
            current = resolved

    known = (
        Dimensions(item.width, item.height) if item.width and item.height else None
    )
    upgraded = await upgrade_image_url(client, current, known)
    if upgraded:
        item.url = upgraded.url
        item.width, item.height = upgraded.width, upgraded.height
    else:
        item.url = current
        # API-reported sizes can be stale; trust the served header instead
        measured = await fetch_image_dimensions(client, current)
        if measured:
            item.width, item.height = measured.width, measured.height
    item.thumbnail = item.url


def is_legacy_media_url(url: str) -> bool:
    """instagram.com/p/<code>/media/ style URLs that redirect to the CDN."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    host = (parsed.hostname or "").lower()
    is_instagram = host == "instagram.com" or host.endswith(".instagram.com")
    return is_instagram and "/media/" in parsed.path
