"""Data models for extracted post media.

All objects are request-scoped: they are built by the parser, mutated in place
by the enricher and never persisted (CDN URLs are short-lived signed tokens).
"""

from dataclasses import dataclass, field
from enum import Enum


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


@dataclass(frozen=True)
class Dimensions:
    width: int
    height: int


@dataclass
class MediaItem:
    type: MediaType
    url: str  # best known download URL, updated in place by the enricher
    thumbnail: str  # small preview URL
    width: int = 0  # 0 = unknown
    height: int = 0  # 0 = unknown
    filesize: int = 0  # bytes, 0 = unknown

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "url": self.url,
            "thumbnail": self.thumbnail,
            "width": self.width,
            "height": self.height,
            "filesize": self.filesize,
        }


@dataclass
class PostMeta:
    type: str = "post"
    username: str | None = None
    shortcode: str | None = None
    post_timestamp: int | None = None  # epoch milliseconds


@dataclass
class ExtractedMedia:
    items: list[MediaItem] = field(default_factory=list)
    meta: PostMeta = field(default_factory=PostMeta)

    def to_dict(self) -> dict:
        """JSON envelope in the shape the web API served."""
        meta: dict = {"type": self.meta.type}
        if self.meta.username is not None:
            meta["username"] = self.meta.username
        if self.meta.shortcode is not None:
            meta["shortcode"] = self.meta.shortcode
        if self.meta.post_timestamp is not None:
            meta["postTimestamp"] = self.meta.post_timestamp
        return {
            "status": "ok",
            "items": [item.to_dict() for item in self.items],
            "error": None,
            "meta": meta,
        }
