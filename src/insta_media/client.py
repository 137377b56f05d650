"""Resolve an Instagram post URL into downloadable media.

Instagram exposes no stable public API for posts, so several independent
strategies are tried strictly in order, stopping at the first that yields
media:

    1. json-endpoint  <post>?__a=1&__d=dis parsed as JSON
    2. post-page      <post> HTML, JSON embedded in inline scripts
    3. embed-page     <post>embed/ HTML, parsed the same way
    4. meta-tags      og:image / og:video tags from the strategy 2 HTML

A strategy that finds nothing (bad status, unexpected shape, network error)
is a miss and the next one runs. A 401/403 on a page fetch means Instagram
is blocking us; that is raised immediately and no later strategy runs.
"""

import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from urllib.parse import urlparse

import httpx

from . import download
from .errors import (
    InvalidPostUrlError,
    NoMediaFoundError,
    UpstreamBlockedError,
    UpstreamTransportError,
)
from .http import (
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    REQUEST_FAILURES,
    build_client,
    request_deadline,
    resolve_legacy_image_url,
)
from .media import enrich_media_items
from .models import ExtractedMedia, MediaItem, MediaType, PostMeta
from .page import PostPage
from .parser import (
    extract_items,
    find_post_timestamp,
    find_username,
    locate_media_node,
)

logger = logging.getLogger(__name__)

POST_PATH_RE = re.compile(r"/(p|reel|tv)/([A-Za-z0-9_-]+)")
JSON_ENDPOINT_QUERY = "?__a=1&__d=dis"
BLOCKED_STATUSES = (401, 403)


@dataclass(frozen=True)
class PostUrl:
    url: str  # canonical https://www.instagram.com/<kind>/<shortcode>/
    shortcode: str
    kind: str  # "p", "reel" or "tv"

    @property
    def json_url(self) -> str:
        return f"{self.url}{JSON_ENDPOINT_QUERY}"

    @property
    def embed_url(self) -> str:
        return f"{self.url}embed/"

    @property
    def legacy_media_url(self) -> str:
        return f"{self.url}media/?size=l"


def normalize_post_url(raw: str) -> PostUrl:
    """Validate a caller-supplied post URL and canonicalize it.

    Raises InvalidPostUrlError before any network I/O happens.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidPostUrlError("Post URL is required.")
    try:
        parsed = urlparse(raw.strip())
        host = (parsed.hostname or "").lower()
    except ValueError:
        raise InvalidPostUrlError("Invalid post URL.") from None
    if parsed.scheme not in ("http", "https") or not host:
        raise InvalidPostUrlError("Invalid post URL.")
    if host != "instagram.com" and not host.endswith(".instagram.com"):
        raise InvalidPostUrlError("Post URL must be from instagram.com.")

    match = POST_PATH_RE.search(parsed.path)
    if not match:
        raise InvalidPostUrlError(
            "Post URL must include /p/, /reel/, or /tv/ and a shortcode."
        )
    kind, shortcode = match.groups()
    return PostUrl(
        url=f"https://www.instagram.com/{kind}/{shortcode}/",
        shortcode=shortcode,
        kind=kind,
    )


@dataclass
class StrategyOutcome:
    """What one strategy produced. No items means a miss."""

    items: list[MediaItem] = field(default_factory=list)
    username: str | None = None
    post_timestamp: int | None = None
    transport_failed: bool = False


Strategy = Callable[[], Awaitable[StrategyOutcome]]


class ResolverState(Enum):
    NOT_STARTED = "not_started"
    TRYING_STRATEGY = "trying_strategy"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    BLOCKED = "blocked"


class StrategyCascade:
    """Run strategies sequentially until one yields at least one item."""

    def __init__(self, strategies: list[tuple[str, Strategy]]):
        self.strategies = strategies
        self.state = ResolverState.NOT_STARTED
        self.current: int | None = None
        self.attempted: list[str] = []

    async def run(self) -> StrategyOutcome:
        transport_failures = 0

        for index, (name, strategy) in enumerate(self.strategies):
            self.state = ResolverState.TRYING_STRATEGY
            self.current = index
            self.attempted.append(name)
            logger.info(
                "Trying strategy %d/%d: %s", index + 1, len(self.strategies), name
            )
            try:
                outcome = await strategy()
            except UpstreamBlockedError:
                self.state = ResolverState.BLOCKED
                raise

            if outcome.items:
                self.state = ResolverState.SUCCEEDED
                logger.info("Strategy %s found %d item(s)", name, len(outcome.items))
                return outcome
            if outcome.transport_failed:
                transport_failures += 1
            logger.info("Strategy %s found no media", name)

        self.state = ResolverState.EXHAUSTED
        if self.strategies and transport_failures == len(self.strategies):
            raise UpstreamTransportError(
                "Could not reach Instagram. Check your connection and try again."
            )
        raise NoMediaFoundError("No media found for that post.")


class PostResolution:
    """Strategies for one post, sharing the fetched post page between them."""

    def __init__(self, client: httpx.AsyncClient, post: PostUrl):
        self._client = client
        self.post = post
        self.page: PostPage | None = None
        self._page_unreachable = False

    def strategies(self) -> list[tuple[str, Strategy]]:
        return [
            ("json-endpoint", self.from_json_endpoint),
            ("post-page", self.from_post_page),
            ("embed-page", self.from_embed_page),
            ("meta-tags", self.from_meta_tags),
        ]

    async def _fetch_page(self, url: str) -> PostPage | None:
        async with request_deadline(self._client):
            response = await self._client.get(url)
        if response.status_code in BLOCKED_STATUSES:
            logger.warning("Instagram returned %d for %s", response.status_code, url)
            raise UpstreamBlockedError(
                "Instagram temporarily blocked this request. Try again later.",
                response.status_code,
            )
        if not response.is_success:
            logger.info("Got HTTP %d for %s", response.status_code, url)
            return None
        return PostPage(response.text)

    async def from_json_endpoint(self) -> StrategyOutcome:
        try:
            async with request_deadline(self._client):
                response = await self._client.get(self.post.json_url)
        except REQUEST_FAILURES as e:
            logger.info("JSON endpoint unreachable: %r", e)
            return StrategyOutcome(transport_failed=True)
        if not response.is_success:
            logger.debug("JSON endpoint returned HTTP %d", response.status_code)
            return StrategyOutcome()
        try:
            data = response.json()
        except ValueError:
            logger.debug("JSON endpoint returned a non-JSON body")
            return StrategyOutcome()

        node = locate_media_node(data)
        if node is None:
            return StrategyOutcome()
        return StrategyOutcome(
            items=extract_items(node),
            username=find_username(node),
            post_timestamp=find_post_timestamp(node),
        )

    async def from_post_page(self) -> StrategyOutcome:
        try:
            self.page = await self._fetch_page(self.post.url)
        except REQUEST_FAILURES as e:
            logger.info("Post page unreachable: %r", e)
            self._page_unreachable = True
            return StrategyOutcome(transport_failed=True)
        if self.page is None:
            return StrategyOutcome()
        return self._from_embedded_json(self.page, self.page.page_timestamp)

    async def from_embed_page(self) -> StrategyOutcome:
        try:
            embed = await self._fetch_page(self.post.embed_url)
        except REQUEST_FAILURES as e:
            logger.info("Embed page unreachable: %r", e)
            return StrategyOutcome(transport_failed=True)
        if embed is None:
            return StrategyOutcome()
        fallback = self.page.page_timestamp if self.page else None
        return self._from_embedded_json(embed, fallback)

    async def from_meta_tags(self) -> StrategyOutcome:
        if self.page is None:
            return StrategyOutcome(transport_failed=self._page_unreachable)

        items = self.page.meta_media()
        if len(items) == 1 and items[0].type == MediaType.IMAGE:
            canonical = await resolve_legacy_image_url(
                self._client, self.post.legacy_media_url
            )
            if canonical:
                items[0].url = canonical
                items[0].thumbnail = canonical

        info = self.page.meta_info()
        return StrategyOutcome(
            items=items,
            username=info.username,
            post_timestamp=info.post_timestamp or self.page.page_timestamp,
        )

    def _from_embedded_json(
        self, page: PostPage, fallback_timestamp: int | None
    ) -> StrategyOutcome:
        info = page.meta_info()
        for blob in page.json_blobs():
            node = locate_media_node(blob)
            if node is None:
                continue
            items = extract_items(node)
            if not items:
                continue
            return StrategyOutcome(
                items=items,
                username=find_username(node) or info.username,
                post_timestamp=(
                    find_post_timestamp(node)
                    or info.post_timestamp
                    or fallback_timestamp
                ),
            )
        return StrategyOutcome()


class InstagramClient:
    """Async client resolving public Instagram posts into media items."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
        enrich: bool = True,
    ):
        self._client = build_client(timeout=timeout, user_agent=user_agent)
        self._enrich = enrich

    async def fetch_post_media(self, post_url: str) -> ExtractedMedia:
        """Resolve ``post_url`` into enriched media items plus metadata.

        Raises:
            InvalidPostUrlError: the URL is not an Instagram post URL.
            UpstreamBlockedError: Instagram answered 401/403.
            UpstreamTransportError: every strategy failed to connect.
            NoMediaFoundError: every strategy ran without finding media.
        """
        post = normalize_post_url(post_url)
        resolution = PostResolution(self._client, post)
        outcome = await StrategyCascade(resolution.strategies()).run()

        if self._enrich:
            await enrich_media_items(self._client, outcome.items)

        return ExtractedMedia(
            items=outcome.items,
            meta=PostMeta(
                username=outcome.username,
                shortcode=post.shortcode,
                post_timestamp=outcome.post_timestamp,
            ),
        )

    async def download_media(
        self, extracted: ExtractedMedia, directory: Path
    ) -> list[Path]:
        """Save every item of a resolved post into ``directory``."""
        return await download.download_media(self._client, extracted, directory)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()


async def fetch_post_media(
    post_url: str,
    timeout: float = DEFAULT_TIMEOUT,
    user_agent: str = DEFAULT_USER_AGENT,
    enrich: bool = True,
) -> ExtractedMedia:
    """One-shot resolution with a fresh, request-scoped HTTP client."""
    normalize_post_url(post_url)
    async with InstagramClient(timeout=timeout, user_agent=user_agent, enrich=enrich) as client:
        return await client.fetch_post_media(post_url)


async def download_post_media(
    post_url: str,
    directory: Path,
    timeout: float = DEFAULT_TIMEOUT,
    user_agent: str = DEFAULT_USER_AGENT,
    enrich: bool = True,
) -> list[Path]:
    """Resolve ``post_url`` and save its media into ``directory``."""
    normalize_post_url(post_url)
    async with InstagramClient(timeout=timeout, user_agent=user_agent, enrich=enrich) as client:
        extracted = await client.fetch_post_media(post_url)
        return await client.download_media(extracted, directory)
