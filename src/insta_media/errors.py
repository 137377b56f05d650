"""Exceptions raised by the extraction pipeline.

Shape misses (a strategy found nothing usable) are never raised; they are
plain empty results. Only the conditions below reach the caller.
"""

import httpx


class InstaMediaError(RuntimeError):
    """Base class for every error surfaced to callers."""


class InvalidPostUrlError(InstaMediaError, ValueError):
    """The supplied URL is not a recognizable Instagram post URL."""


class UpstreamBlockedError(InstaMediaError):
    """Instagram explicitly rejected the request (401/403)."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class UpstreamTransportError(InstaMediaError):
    """Every strategy failed before getting a response from Instagram."""


class NoMediaFoundError(InstaMediaError):
    """All strategies ran and none produced a media item."""


class DownloadError(InstaMediaError):
    """A resolved media file could not be saved."""


class DisallowedHostError(httpx.RequestError):
    """An outbound request targeted a host outside the CDN allowlist."""
