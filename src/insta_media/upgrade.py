"""Upgrade a size-constrained CDN image URL to a verified larger variant.

Instagram serves images through URLs whose ``stp`` parameter pins a size
("p1080x1080" fits within the box, "s1080x1080" scales exactly). Rewriting
that token often yields a larger stored rendition. Candidates are probed in
order of trust and a rewrite is only accepted when the fetched image header
proves it is wider than the original:

    1. size reported by the efg vencode tag
    2. size reported by the API for the upload
    3. known platform tiers, both prefixes, original aspect ratio
    4. no size token at all (let the CDN choose)

Stripping the token goes last because the CDN may answer it with an
intermediate rendition that would otherwise short-circuit better candidates.
"""

import logging
from dataclasses import dataclass

import httpx

from .cdn import (
    SIZE_PARAM,
    SizeToken,
    image_dimensions_from_tag,
    is_allowed_host,
    parse_size_token,
)
from .http import fetch_image_dimensions, probe_image_url
from .models import Dimensions

logger = logging.getLogger(__name__)

# Widths Instagram stores renditions at, largest first
RESOLUTION_TIERS = (1440, 1200, 1080)
SIZE_PREFIXES = ("s", "p")


@dataclass(frozen=True)
class Candidate:
    """A proposed rewrite of the size token."""

    width: int = 0
    height: int = 0
    prefix: str = ""
    strip: bool = False


STRIP_CONSTRAINT = Candidate(strip=True)


@dataclass(frozen=True)
class UpgradeResult:
    url: str
    width: int
    height: int


def build_candidates(
    url: str, token: SizeToken, known: Dimensions | None = None
) -> list[Candidate]:
    """Ordered rewrite candidates for ``url``, most trustworthy first."""
    candidates: list[Candidate] = []

    tag_dims = image_dimensions_from_tag(url)
    if tag_dims and tag_dims.width > token.width:
        candidates.append(Candidate(tag_dims.width, tag_dims.height, token.prefix))

    if known and known.width > token.width and known.height:
        candidates.append(Candidate(known.width, known.height, token.prefix))

    aspect = token.height / token.width
    for tier in RESOLUTION_TIERS:
        if tier <= token.width:
            continue
        tier_height = round(tier * aspect)
        for prefix in SIZE_PREFIXES:
            candidates.append(Candidate(tier, tier_height, prefix))

    candidates.append(STRIP_CONSTRAINT)
    return candidates


def build_candidate_url(url: str, token: SizeToken, candidate: Candidate) -> str:
    tokens = list(token.tokens)
    if candidate.strip:
        del tokens[token.index]
    else:
        tokens[token.index] = f"{candidate.prefix}{candidate.width}x{candidate.height}"

    parsed = httpx.URL(url)
    if tokens:
        return str(parsed.copy_set_param(SIZE_PARAM, "_".join(tokens)))
    return str(parsed.copy_remove_param(SIZE_PARAM))


async def upgrade_image_url(
    client: httpx.AsyncClient,
    url: str,
    known: Dimensions | None = None,
) -> UpgradeResult | None:
    """Find a verified higher-resolution variant of ``url``.

    Returns None when the URL has no size token or no candidate verifies as
    strictly wider than the original; the caller keeps the original URL.
    """
    if not is_allowed_host(url):
        return None
    token = parse_size_token(url)
    if token is None:
        return None

    tried: set[str] = {url}  # pre-redirect candidate URLs
    resolved: set[str] = set()  # post-redirect URLs already sniffed

    for candidate in build_candidates(url, token, known):
        candidate_url = build_candidate_url(url, token, candidate)
        if candidate_url in tried:
            continue
        tried.add(candidate_url)

        final_url = await probe_image_url(client, candidate_url)
        if final_url is None:
            continue
        if final_url in resolved:
            logger.debug("Candidate %s redirected to an already checked URL", candidate)
            continue
        resolved.add(final_url)

        dims = await fetch_image_dimensions(client, final_url)
        if dims and dims.width > token.width:
            logger.debug(
                "Upgraded %dx%d -> %dx%d via %s",
                token.width,
                token.height,
                dims.width,
                dims.height,
                candidate,
            )
            return UpgradeResult(final_url, dims.width, dims.height)

    return None
