"""Shared test fixtures."""

import base64
import json
import struct
from urllib.parse import quote

import httpx
import pytest

CDN_HOST = "scontent.cdninstagram.com"


def _png(width: int, height: int) -> bytes:
    ihdr = struct.pack(">II", width, height) + b"\x08\x02\x00\x00\x00"
    return (
        b"\x89PNG\r\n\x1a\n"
        + struct.pack(">I", 13)
        + b"IHDR"
        + ihdr
        + b"\x00\x00\x00\x00"
        + b"\x00" * 32
    )


def _jpeg(width: int, height: int) -> bytes:
    app0 = b"\xff\xe0" + struct.pack(">H", 16) + b"JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
    sof0 = (
        b"\xff\xc0"
        + struct.pack(">HBHH", 17, 8, height, width)
        + b"\x03\x01\x22\x00\x02\x11\x01\x03\x11\x01"
    )
    return b"\xff\xd8" + app0 + sof0 + b"\xff\xda" + b"\x00" * 64


def _efg(tag: str) -> str:
    payload = json.dumps({"vencode_tag": tag}).encode()
    return quote(base64.b64encode(payload).decode(), safe="")


def _cdn_url(stp: str | None = "dst-jpg_e35_p640x640_tt6", tag: str | None = None) -> str:
    params = []
    if stp is not None:
        params.append(f"stp={stp}")
    if tag is not None:
        params.append(f"efg={_efg(tag)}")
    params.append("_nc_cat=1")
    return f"https://{CDN_HOST}/v/t51.2885-15/123_n.jpg?" + "&".join(params)


@pytest.fixture
def png_bytes():
    return _png


@pytest.fixture
def jpeg_bytes():
    return _jpeg


@pytest.fixture
def efg():
    return _efg


@pytest.fixture
def cdn_url():
    """Build a CDN image URL with the given stp value and optional vencode tag."""
    return _cdn_url


class FakeCdn:
    """respx side effect serving JPEG renditions keyed by the stp parameter."""

    def __init__(self):
        self.renditions: dict[str, tuple[int, int]] = {}
        self.redirects: dict[str, str] = {}  # stp -> stp or absolute URL
        self.default: tuple[int, int] | None = None
        self.content_length = "12345"
        self.head_stps: list[str] = []
        self.sniffed: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        stp = request.url.params.get("stp", "")
        if request.method == "HEAD":
            self.head_stps.append(stp)

        target = self.redirects.get(stp)
        if target is not None:
            if not target.startswith("http"):
                target = str(request.url.copy_set_param("stp", target))
            return httpx.Response(302, headers={"location": target})

        dims = self.renditions.get(stp, self.default)
        if dims is None:
            return httpx.Response(404)

        headers = {"content-type": "image/jpeg", "content-length": self.content_length}
        if request.method == "HEAD":
            return httpx.Response(200, headers=headers)
        if request.headers.get("range") == "bytes=0-4095":
            self.sniffed.append(str(request.url))
        return httpx.Response(
            206, content=_jpeg(*dims), headers={"content-type": "image/jpeg"}
        )


@pytest.fixture
def fake_cdn() -> FakeCdn:
    return FakeCdn()


def _image_node(url: str, width: int = 1080, height: int = 1080, **extra) -> dict:
    node = {
        "__typename": "GraphImage",
        "is_video": False,
        "display_url": url,
        "dimensions": {"width": width, "height": height},
        "display_resources": [
            {"src": url.replace("p640x640", "p320x320"), "config_width": 320, "config_height": 320},
            {"src": url, "config_width": width, "config_height": height},
        ],
    }
    node.update(extra)
    return node


def _video_node(video_url: str, image_url: str, **extra) -> dict:
    node = {
        "__typename": "GraphVideo",
        "is_video": True,
        "video_url": video_url,
        "display_url": image_url,
        "dimensions": {"width": 720, "height": 1280},
        "display_resources": [
            {"src": image_url, "config_width": 720, "config_height": 1280},
        ],
    }
    node.update(extra)
    return node


@pytest.fixture
def image_node():
    return _image_node


@pytest.fixture
def video_node():
    return _video_node


@pytest.fixture
def single_image_media() -> dict:
    """A non-carousel media node with owner and timestamp."""
    return _image_node(
        _cdn_url("dst-jpg_e35_p1080x1080_tt6"),
        owner={"username": "testuser"},
        taken_at_timestamp=1707589800,
        shortcode="ABC123",
    )


@pytest.fixture
def carousel_media() -> dict:
    """A sidecar with 5 children: image, video, image, video, image."""
    children = [
        _image_node(_cdn_url("dst-jpg_e35_p1080x1080_tt6") + "&c=1"),
        _video_node(f"https://{CDN_HOST}/v/t50/clip1.mp4", _cdn_url() + "&c=2"),
        _image_node(_cdn_url("dst-jpg_e35_p1080x1080_tt6") + "&c=3"),
        _video_node(f"https://{CDN_HOST}/v/t50/clip2.mp4", _cdn_url() + "&c=4"),
        _image_node(_cdn_url("dst-jpg_e35_p1080x1080_tt6") + "&c=5"),
    ]
    return {
        "__typename": "GraphSidecar",
        "owner": {"username": "carouseluser"},
        "taken_at_timestamp": 1707589800,
        "display_url": _cdn_url(),
        "edge_sidecar_to_children": {"edges": [{"node": c} for c in children]},
    }
