"""Instagram CDN URL utilities: host allowlist, efg tag decoding, size tokens.

Security-sensitive URL logic lives here so that every network call in the
pipeline (and any boundary code streaming files to users) goes through the
same checks.

CDN image URLs carry two interesting query parameters:

    stp=dst-jpg_e35_p1080x1080_tt6   size-constraint token among "_" tokens
    efg=eyJ2ZW5jb2RlX3RhZyI6Ii4uLiJ9  base64 JSON with a "vencode_tag" field

The vencode tag reveals the stored resolution, e.g. "xpids.1440x1800.sdr.C3"
for images or "vts_vod_urlgen.C3.720.dash_baseline" for videos.
"""

import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass
from urllib.parse import parse_qs, urlparse

import httpx

from .models import Dimensions

logger = logging.getLogger(__name__)

PRIMARY_DOMAIN = "instagram.com"
CDN_DOMAIN_SUFFIXES = (".instagram.com", ".cdninstagram.com", ".fbcdn.net")

SIZE_PARAM = "stp"
TAG_PARAM = "efg"
TAG_FIELD = "vencode_tag"

SIZE_TOKEN_RE = re.compile(r"^([ps])(\d+)x(\d+)$")
SIZE_TOKEN_SEARCH_RE = re.compile(r"([ps])(\d+)x(\d+)")
IMAGE_TAG_RE = re.compile(r"\.(\d{3,4})x(\d{3,4})\.")
VIDEO_TAG_RE = re.compile(r"C\d\.(\d{3,4})\.")


def is_allowed_host(url: str) -> bool:
    """Return True only for instagram.com and the known CDN subdomains.

    Never raises: anything that does not parse is rejected.
    """
    try:
        parsed = urlparse(url)
        host = parsed.hostname
    except (TypeError, ValueError, AttributeError):
        return False
    if parsed.scheme not in ("http", "https") or not host:
        return False
    host = host.lower()
    if host != PRIMARY_DOMAIN and not host.endswith(CDN_DOMAIN_SUFFIXES):
        return False
    # urllib tolerates URLs httpx refuses to send (a non-numeric port, say)
    try:
        httpx.URL(url)
    except httpx.InvalidURL:
        return False
    return True


def _query_param(url: str, name: str) -> str | None:
    try:
        values = parse_qs(urlparse(url).query).get(name)
    except (TypeError, ValueError, AttributeError):
        return None
    return values[0] if values else None


def decode_size_tag(url: str) -> str | None:
    """Decode the efg parameter of a CDN URL and return its vencode tag.

    Returns None on any failure: missing parameter, bad base64, bad JSON,
    missing or non-string field.
    """
    raw = _query_param(url, TAG_PARAM)
    if not raw:
        return None
    # parse_qs turns "+" into a space; accept the url-safe alphabet too
    normalized = raw.strip().replace(" ", "+").replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    try:
        payload = json.loads(base64.b64decode(normalized).decode("utf-8"))
    except (binascii.Error, ValueError, UnicodeDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    tag = payload.get(TAG_FIELD)
    return tag if isinstance(tag, str) else None


def image_dimensions_from_tag(url: str) -> Dimensions | None:
    """Stored image size from a tag like "xpids.1440x1800.sdr.C3"."""
    tag = decode_size_tag(url)
    if not tag:
        return None
    match = IMAGE_TAG_RE.search(tag)
    if not match:
        return None
    return Dimensions(int(match.group(1)), int(match.group(2)))


def video_dimensions_from_tag(url: str, aspect: Dimensions | None) -> Dimensions | None:
    """Video size from a tag's width code, scaled by a reference aspect ratio.

    Video tags only carry a width ("...C3.720..."), so the height comes from
    ``aspect`` (typically the best image candidate of the same node).
    """
    if not aspect or not aspect.width or not aspect.height:
        return None
    tag = decode_size_tag(url)
    if not tag:
        return None
    match = VIDEO_TAG_RE.search(tag)
    if not match:
        return None
    width = int(match.group(1))
    height = round(width * aspect.height / aspect.width)
    if not width or not height:
        return None
    return Dimensions(width, height)


@dataclass(frozen=True)
class SizeToken:
    """Location and value of the size constraint inside an stp parameter."""

    tokens: tuple[str, ...]
    index: int
    prefix: str  # "p" fits within the box, "s" scales exactly
    width: int
    height: int


def parse_size_token(url: str) -> SizeToken | None:
    stp = _query_param(url, SIZE_PARAM)
    if not stp:
        return None
    tokens = tuple(stp.split("_"))
    for index, token in enumerate(tokens):
        match = SIZE_TOKEN_RE.match(token)
        if match:
            width, height = int(match.group(2)), int(match.group(3))
            if not width or not height:
                return None
            return SizeToken(tokens, index, match.group(1), width, height)
    return None


def dimensions_from_size_token(url: str) -> Dimensions | None:
    """Best-effort dimensions read straight from the URL's stp token."""
    stp = _query_param(url, SIZE_PARAM)
    if not stp:
        return None
    match = SIZE_TOKEN_SEARCH_RE.search(stp)
    if not match:
        return None
    return Dimensions(int(match.group(2)), int(match.group(3)))
