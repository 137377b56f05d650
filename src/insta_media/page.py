"""Pull embedded JSON and social-preview metadata out of Instagram HTML.

Post and embed pages carry their data inside inline scripts, in one of:

    window._sharedData = {...};
    window.__additionalDataLoaded('/p/<code>/', {...});
    s.handle({...})      # server JS; some values are themselves JSON strings

Regex cannot match nested JSON, so ``extract_balanced_json`` walks the text
tracking depth and string state.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from .models import MediaItem, MediaType

logger = logging.getLogger(__name__)

SHARED_DATA_MARKER = "window._sharedData ="
ADDITIONAL_DATA_MARKER = "__additionalDataLoaded"
SERVER_JS_MARKER = "s.handle("

# Only string values that look like media payloads are worth parsing
NESTED_JSON_HINTS = ("shortcode_media", "gql_data")

POST_DATE_RE = re.compile(r"on\s+([A-Za-z]+)\s+(\d{1,2}),\s+(\d{4})", re.IGNORECASE)
MONTHS = [
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
]


def extract_balanced_json(source: str, start: int) -> str | None:
    """Return the JSON object/array text starting at ``source[start]``.

    Scans forward to the matching close delimiter, ignoring delimiters inside
    quoted strings (escape sequences honored). None if unbalanced.
    """
    if start < 0 or start >= len(source) or source[start] not in "{[":
        return None
    open_char = source[start]
    close_char = "]" if open_char == "[" else "}"
    depth = 0
    in_string = False
    escaped = False

    for i in range(start, len(source)):
        char = source[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == open_char:
            depth += 1
        elif char == close_char:
            depth -= 1
            if depth == 0:
                return source[start : i + 1]
    return None


def safe_json_loads(text: str) -> Any | None:
    try:
        return json.loads(text)
    except ValueError:
        return None


def _json_after(content: str, marker: str) -> Any | None:
    index = content.find(marker)
    if index == -1:
        return None
    text = extract_balanced_json(content, content.find("{", index))
    return safe_json_loads(text) if text else None


def extract_embedded_json_strings(payload: Any) -> list[Any]:
    """Parse string values inside ``payload`` that are themselves JSON blobs."""
    results = []
    stack = [payload]
    while stack:
        node = stack.pop()
        if isinstance(node, str):
            trimmed = node.strip()
            if trimmed.startswith("{") and any(h in trimmed for h in NESTED_JSON_HINTS):
                parsed = safe_json_loads(trimmed)
                if parsed is not None:
                    results.append(parsed)
        elif isinstance(node, list):
            stack.extend(node)
        elif isinstance(node, dict):
            stack.extend(node.values())
    return results


def parse_post_date(text: str) -> int | None:
    """Epoch ms (UTC midnight) from text like "... on January 5, 2024"."""
    if not text:
        return None
    match = POST_DATE_RE.search(text.replace("\u00a0", " "))
    if not match:
        return None
    month_name, day, year = match.groups()
    try:
        month = MONTHS.index(month_name.lower()) + 1
        posted = datetime(int(year), month, int(day), tzinfo=timezone.utc)
    except ValueError:
        return None
    return int(posted.timestamp() * 1000)


def username_from_og_url(value: str) -> str | None:
    """Handle from an og:url of the form https://www.instagram.com/<user>/p/<code>/."""
    if not value:
        return None
    try:
        parts = [p for p in urlparse(value).path.split("/") if p]
    except ValueError:
        return None
    if len(parts) >= 2 and parts[1] == "p":
        return parts[0]
    return None


def _decode_entities(value: str) -> str:
    # Attribute values are sometimes double-escaped
    return value.replace("&amp;", "&")


@dataclass
class MetaInfo:
    username: str | None = None
    post_timestamp: int | None = None


class PostPage:
    """A fetched post or embed page, parsed once."""

    def __init__(self, html: str):
        self.html = html
        self._soup = BeautifulSoup(html, "lxml")

    def _meta(self, *, prop: str | None = None, name: str | None = None) -> str:
        attrs = {"property": prop} if prop else {"name": name}
        tag = self._soup.find("meta", attrs=attrs)
        content = tag.get("content") if tag else None
        return _decode_entities(content) if isinstance(content, str) else ""

    @property
    def page_timestamp(self) -> int | None:
        return parse_post_date(self.html)

    def json_blobs(self) -> list[Any]:
        """Every JSON payload embedded in inline scripts, in document order."""
        results: list[Any] = []
        for script in self._soup.find_all("script"):
            content = script.string
            if not content:
                continue
            for marker in (SHARED_DATA_MARKER, ADDITIONAL_DATA_MARKER):
                parsed = _json_after(content, marker)
                if parsed is not None:
                    results.append(parsed)
            parsed = _json_after(content, SERVER_JS_MARKER)
            if parsed is not None:
                results.append(parsed)
                results.extend(extract_embedded_json_strings(parsed))
        logger.debug("Found %d embedded JSON blobs", len(results))
        return results

    def meta_info(self) -> MetaInfo:
        og_url = self._meta(prop="og:url")
        description = self._meta(name="description") or self._meta(prop="og:description")
        return MetaInfo(
            username=username_from_og_url(og_url),
            post_timestamp=parse_post_date(description) or self.page_timestamp,
        )

    def meta_media(self) -> list[MediaItem]:
        """Single item from og:video / og:image tags (video wins)."""
        image = self._meta(prop="og:image")
        video = self._meta(prop="og:video:secure_url") or self._meta(prop="og:video")
        if video:
            return [MediaItem(type=MediaType.VIDEO, url=video, thumbnail=image or video)]
        if image:
            return [MediaItem(type=MediaType.IMAGE, url=image, thumbnail=image)]
        return []
