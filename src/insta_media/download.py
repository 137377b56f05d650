"""Save resolved media items to disk.

Item URLs come from untrusted upstream payloads, so each one is checked with
``is_allowed_host`` before it is requested and again after redirects, before
any byte is written. Files are streamed to a ``.part`` sibling and renamed once
complete.

Filenames follow the pattern the web service used for attachments:

    <username>_<timestamp or shortcode>.<ext>        single item
    <username>_<timestamp or shortcode>_<n>.<ext>    carousel
"""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

import httpx

from .cdn import is_allowed_host
from .errors import DownloadError
from .http import REQUEST_FAILURES
from .models import ExtractedMedia, MediaType

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
UNSAFE_CHARS_RE = re.compile(r"[^a-zA-Z0-9_-]+")


def safe_segment(value: str, fallback: str = "instagram") -> str:
    cleaned = UNSAFE_CHARS_RE.sub("_", value.replace(".", "_"))
    return cleaned or fallback


def file_extension(url: str, media_type: MediaType) -> str:
    """Extension from the URL path, else jpg/mp4 by media type."""
    try:
        name = PurePosixPath(urlparse(url).path).name
    except ValueError:
        name = ""
    if "." in name:
        ext = name.rsplit(".", 1)[1]
        if 0 < len(ext) <= 5 and ext.isalnum():
            return ext.lower()
    return "mp4" if media_type == MediaType.VIDEO else "jpg"


def _timestamp_label(post_timestamp: int) -> str:
    posted = datetime.fromtimestamp(post_timestamp / 1000, tz=timezone.utc)
    return posted.strftime("%Y-%m-%dT%H%M%S.000Z")


def build_filenames(extracted: ExtractedMedia) -> list[str]:
    meta = extracted.meta
    username = safe_segment(meta.username or "instagram")
    if meta.post_timestamp:
        label = _timestamp_label(meta.post_timestamp)
    else:
        label = safe_segment(meta.shortcode or "post", fallback="post")

    items = extracted.items
    names = []
    for index, item in enumerate(items, start=1):
        ext = file_extension(item.url, item.type)
        if len(items) == 1:
            names.append(f"{username}_{label}.{ext}")
        else:
            names.append(f"{username}_{label}_{index}.{ext}")
    return names


async def download_file(client: httpx.AsyncClient, url: str, dest: Path) -> int:
    """Stream ``url`` into ``dest`` and return the number of bytes written.

    Raises:
        DownloadError: the URL (or its redirect target) is not allowlisted,
            the server answered with an error, or the transfer failed.
    """
    if not is_allowed_host(url):
        raise DownloadError(f"Refusing to download from non-allowlisted URL: {url}")

    partial = dest.with_name(dest.name + ".part")
    written = 0
    try:
        async with client.stream("GET", url) as response:
            if not response.is_success:
                raise DownloadError(
                    f"Failed to fetch media (HTTP {response.status_code})."
                )
            if not is_allowed_host(str(response.url)):
                raise DownloadError(
                    f"Refusing to download from non-allowlisted URL: {response.url}"
                )
            with open(partial, "wb") as f:
                async for chunk in response.aiter_bytes(CHUNK_SIZE):
                    f.write(chunk)
                    written += len(chunk)
    except REQUEST_FAILURES as e:
        partial.unlink(missing_ok=True)
        raise DownloadError(f"Failed to fetch media: {e!r}") from e

    partial.replace(dest)
    logger.info("Saved %s (%d bytes)", dest, written)
    return written


async def download_media(
    client: httpx.AsyncClient, extracted: ExtractedMedia, directory: Path
) -> list[Path]:
    """Download every item of ``extracted`` into ``directory``, in order."""
    if not extracted.items:
        raise DownloadError("No media available for download.")

    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for item, name in zip(extracted.items, build_filenames(extracted)):
        dest = directory / name
        await download_file(client, item.url, dest)
        paths.append(dest)
    return paths
