"""Normalize Instagram's many response shapes into MediaItem objects.

Depending on the endpoint and the week, the media node for a post may be
found under any of several paths:

    graphql.shortcode_media                  (?__a=1 legacy)
    data.shortcode_media                     (GraphQL query)
    gql_data.shortcode_media                 (embed page)
    context.media                            (embed page, older)
    items[0]                                 (?__a=1&__d=dis, mobile API)
    props.pageProps.data.shortcode_media     (Next.js page)
    props.pageProps.graphql.shortcode_media  (Next.js page, older)
    data.xdt_shortcode_media                 (current web GraphQL)

Each path is a small total function; ``locate_media_node`` returns the first
hit. Nodes differ in how they mark videos, carousels and resolution
candidates, so ``extract_items`` checks every known variant.
"""

import logging
from collections.abc import Callable
from typing import Any

from .cdn import video_dimensions_from_tag
from .models import Dimensions, MediaItem, MediaType

logger = logging.getLogger(__name__)


def _dig(blob: Any, *keys: str) -> dict | None:
    """Walk nested dict keys; return the final value only if it is a dict."""
    current = blob
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current if isinstance(current, dict) and current else None


def _first_item(blob: Any) -> dict | None:
    if not isinstance(blob, dict):
        return None
    items = blob.get("items")
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return None


MEDIA_NODE_PATHS: list[tuple[str, Callable[[Any], dict | None]]] = [
    ("graphql.shortcode_media", lambda b: _dig(b, "graphql", "shortcode_media")),
    ("data.shortcode_media", lambda b: _dig(b, "data", "shortcode_media")),
    ("gql_data.shortcode_media", lambda b: _dig(b, "gql_data", "shortcode_media")),
    ("context.media", lambda b: _dig(b, "context", "media")),
    ("items[0]", _first_item),
    (
        "props.pageProps.data.shortcode_media",
        lambda b: _dig(b, "props", "pageProps", "data", "shortcode_media"),
    ),
    (
        "props.pageProps.graphql.shortcode_media",
        lambda b: _dig(b, "props", "pageProps", "graphql", "shortcode_media"),
    ),
    ("data.xdt_shortcode_media", lambda b: _dig(b, "data", "xdt_shortcode_media")),
]


def locate_media_node(blob: Any) -> dict | None:
    """Return the media node from the first matching known path."""
    for name, probe in MEDIA_NODE_PATHS:
        node = probe(blob)
        if node is not None:
            logger.debug("Media node found at %s", name)
            return node
    return None


def _coalesce(*values: Any) -> Any:
    """First value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


def _int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return 0


class _Resource:
    """A resolution candidate with the field names normalized."""

    __slots__ = ("src", "width", "height")

    def __init__(self, src: str, width: int, height: int):
        self.src = src
        self.width = width
        self.height = height

    @property
    def area(self) -> int:
        return self.width * self.height

    def dimensions(self) -> Dimensions | None:
        if self.width and self.height:
            return Dimensions(self.width, self.height)
        return None


def normalize_candidates(candidates: Any) -> list[_Resource]:
    """Map {src|url, width|config_width, height|config_height} to one shape."""
    if not isinstance(candidates, list):
        return []
    resources = []
    for c in candidates:
        if not isinstance(c, dict):
            continue
        src = _coalesce(c.get("src"), c.get("url")) or ""
        if not src or not isinstance(src, str):
            continue
        resources.append(
            _Resource(
                src=src,
                width=_int(_coalesce(c.get("width"), c.get("config_width"))),
                height=_int(_coalesce(c.get("height"), c.get("config_height"))),
            )
        )
    return resources


def _pick_largest(resources: list[_Resource]) -> _Resource | None:
    # max/min keep the first of equal areas
    return max(resources, key=lambda r: r.area) if resources else None


def _pick_smallest(resources: list[_Resource]) -> _Resource | None:
    return min(resources, key=lambda r: r.area) if resources else None


def _carousel_children(node: dict) -> list | None:
    sidecar = node.get("edge_sidecar_to_children")
    if isinstance(sidecar, dict) and isinstance(sidecar.get("edges"), list):
        return [
            edge.get("node") for edge in sidecar["edges"] if isinstance(edge, dict)
        ]
    if isinstance(node.get("carousel_media"), list):
        return node["carousel_media"]
    return None


def is_video_node(node: dict) -> bool:
    return (
        bool(node.get("is_video"))
        or node.get("__typename") in ("GraphVideo", "XDTGraphVideo")
        or node.get("media_type") == 2
    )


def extract_items(node: Any) -> list[MediaItem]:
    """Flatten a media node (single or carousel) into MediaItems.

    An empty list means no usable asset was found; it is not an error.
    """
    if not isinstance(node, dict):
        return []

    children = _carousel_children(node)
    if children is not None:
        items: list[MediaItem] = []
        for child in children:
            items.extend(extract_items(child))
        return items

    versions = _dig(node, "image_versions2") or {}
    image_resources = normalize_candidates(
        _coalesce(
            node.get("display_resources"),
            node.get("display_candidates"),
            versions.get("candidates"),
        )
    )
    best_image = _pick_largest(image_resources)
    smallest = _pick_smallest(image_resources)
    thumbnail = (
        _coalesce(
            smallest.src if smallest else None,
            node.get("thumbnail_src"),
            node.get("display_url"),
            best_image.src if best_image else None,
        )
        or ""
    )
    declared = node.get("dimensions") if isinstance(node.get("dimensions"), dict) else {}
    declared_dims = Dimensions(_int(declared.get("width")), _int(declared.get("height")))

    if is_video_node(node):
        return _extract_video(node, best_image, thumbnail, declared_dims)

    url = (best_image.src if best_image else None) or node.get("display_url") or ""
    if not url:
        return []
    return [
        MediaItem(
            type=MediaType.IMAGE,
            url=url,
            thumbnail=thumbnail,
            width=(best_image.width if best_image else 0) or declared_dims.width,
            height=(best_image.height if best_image else 0) or declared_dims.height,
        )
    ]


def _extract_video(
    node: dict,
    best_image: _Resource | None,
    thumbnail: str,
    declared: Dimensions,
) -> list[MediaItem]:
    video_resources = normalize_candidates(
        _coalesce(node.get("video_resources"), node.get("video_versions"))
    )
    best_video = _pick_largest(video_resources)
    url = (best_video.src if best_video else None) or node.get("video_url") or ""
    if not url:
        return []

    width = height = 0
    if best_video and best_video.dimensions():
        width, height = best_video.width, best_video.height
    else:
        # No explicit video size: scale the tag's width code by the image's aspect
        aspect = (best_image.dimensions() if best_image else None) or (
            declared if declared.width and declared.height else None
        )
        inferred = video_dimensions_from_tag(url, aspect)
        if inferred:
            width, height = inferred.width, inferred.height
        elif aspect:
            width, height = aspect.width, aspect.height

    return [
        MediaItem(
            type=MediaType.VIDEO,
            url=url,
            thumbnail=thumbnail,
            width=width,
            height=height,
        )
    ]


def find_username(node: Any) -> str | None:
    for key in ("owner", "user"):
        owner = _dig(node, key)
        if owner and isinstance(owner.get("username"), str):
            return owner["username"]
    return None


def find_post_timestamp(node: Any) -> int | None:
    """Post time in epoch milliseconds; second-resolution values are promoted."""
    if not isinstance(node, dict):
        return None
    ts = _coalesce(node.get("taken_at_timestamp"), node.get("taken_at"), node.get("date"))
    if isinstance(ts, bool) or not isinstance(ts, (int, float)):
        return None
    return int(ts * 1000) if ts < 1e12 else int(ts)
