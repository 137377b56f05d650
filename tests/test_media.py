"""Tests for concurrent media item enrichment."""

import httpx
import pytest
import respx

from insta_media.http import build_client
from insta_media.media import enrich_media_items, is_legacy_media_url
from insta_media.models import MediaItem, MediaType

CDN_HOST = "scontent.cdninstagram.com"


class TestIsLegacyMediaUrl:
    def test_legacy_paths(self):
        assert is_legacy_media_url("https://www.instagram.com/p/ABC123/media/?size=l")
        assert is_legacy_media_url("https://instagram.com/p/ABC123/media/")

    def test_cdn_urls_are_not_legacy(self, cdn_url):
        assert not is_legacy_media_url(cdn_url())
        assert not is_legacy_media_url("https://www.instagram.com/p/ABC123/")
        assert not is_legacy_media_url("https://evil.example/media/x.jpg")


class TestEnrichMediaItems:
    @pytest.mark.asyncio
    @respx.mock
    async def test_image_is_upgraded_and_sized(self, cdn_url, fake_cdn):
        fake_cdn.renditions = {
            "dst-jpg_e35_p640x640_tt6": (640, 640),
            "dst-jpg_e35_s1440x1440_tt6": (1440, 1440),
        }
        respx.route(host=CDN_HOST).mock(side_effect=fake_cdn)
        item = MediaItem(
            type=MediaType.IMAGE,
            url=cdn_url("dst-jpg_e35_p640x640_tt6"),
            thumbnail="https://scontent.cdninstagram.com/thumb.jpg",
            width=640,
            height=640,
        )

        async with build_client() as client:
            await enrich_media_items(client, [item])

        assert httpx.URL(item.url).params["stp"] == "dst-jpg_e35_s1440x1440_tt6"
        assert (item.width, item.height) == (1440, 1440)
        assert item.thumbnail == item.url
        assert item.filesize == 12345

    @pytest.mark.asyncio
    @respx.mock
    async def test_stale_api_dimensions_replaced_by_measured(self, cdn_url, fake_cdn):
        """No upgrade available: dimensions come from the served header."""
        fake_cdn.renditions = {"dst-jpg_e35_p640x640_tt6": (640, 480)}
        respx.route(host=CDN_HOST).mock(side_effect=fake_cdn)
        url = cdn_url("dst-jpg_e35_p640x640_tt6")
        item = MediaItem(type=MediaType.IMAGE, url=url, thumbnail=url, width=2000, height=2000)

        async with build_client() as client:
            await enrich_media_items(client, [item])

        assert item.url == url
        assert (item.width, item.height) == (640, 480)

    @pytest.mark.asyncio
    @respx.mock
    async def test_dimensions_fall_back_to_size_token(self, cdn_url, fake_cdn):
        respx.route(host=CDN_HOST).mock(side_effect=fake_cdn)
        url = cdn_url("dst-jpg_e35_p640x800_tt6")
        item = MediaItem(type=MediaType.IMAGE, url=url, thumbnail=url)

        async with build_client() as client:
            await enrich_media_items(client, [item])

        assert item.url == url
        assert (item.width, item.height) == (640, 800)
        assert item.filesize == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_video_only_gets_size(self, fake_cdn):
        fake_cdn.default = (1, 1)
        fake_cdn.content_length = "987654"
        route = respx.route(host=CDN_HOST).mock(side_effect=fake_cdn)
        url = f"https://{CDN_HOST}/v/t50/clip.mp4"
        item = MediaItem(
            type=MediaType.VIDEO, url=url, thumbnail="", width=720, height=1280
        )

        async with build_client() as client:
            await enrich_media_items(client, [item])

        assert item.url == url
        assert (item.width, item.height) == (720, 1280)
        assert item.filesize == 987654
        assert route.call_count == 1
        assert route.calls.last.request.method == "HEAD"

    @pytest.mark.asyncio
    @respx.mock
    async def test_legacy_url_resolved_before_upgrade(self, cdn_url, fake_cdn):
        canonical = cdn_url("dst-jpg_e35_p640x640_tt6")
        fake_cdn.renditions = {
            "dst-jpg_e35_p640x640_tt6": (640, 640),
            "dst-jpg_e35_s1080x1080_tt6": (1080, 1080),
        }
        respx.route(host=CDN_HOST).mock(side_effect=fake_cdn)
        respx.get("https://www.instagram.com/p/ABC123/media/?size=l").mock(
            return_value=httpx.Response(302, headers={"location": canonical})
        )
        legacy = "https://www.instagram.com/p/ABC123/media/?size=l"
        item = MediaItem(type=MediaType.IMAGE, url=legacy, thumbnail=legacy)

        async with build_client() as client:
            await enrich_media_items(client, [item])

        assert item.url.startswith(f"https://{CDN_HOST}/")
        assert item.width == 1080

    @pytest.mark.asyncio
    @pytest.mark.respx(assert_all_called=False)
    async def test_unparseable_cdn_url_is_left_alone(self, respx_mock):
        route = respx_mock.route()
        url = f"https://{CDN_HOST}:abc/v/x.jpg?stp=dst-jpg_p640x640"
        items = [
            MediaItem(type=MediaType.VIDEO, url=url, thumbnail=""),
            MediaItem(type=MediaType.IMAGE, url=url, thumbnail=url),
        ]

        async with build_client() as client:
            await enrich_media_items(client, items)

        assert not route.called
        for item in items:
            assert item.url == url
            assert item.filesize == 0
            assert (item.width, item.height) == (640, 640)

    @pytest.mark.asyncio
    @pytest.mark.respx(assert_all_called=False)
    async def test_off_allowlist_item_is_never_fetched(self, respx_mock):
        route = respx_mock.route()
        url = "http://169.254.169.254/latest/meta-data?stp=p640x640"
        item = MediaItem(type=MediaType.IMAGE, url=url, thumbnail=url)

        async with build_client() as client:
            await enrich_media_items(client, [item])

        assert not route.called
        assert item.filesize == 0
        assert (item.width, item.height) == (640, 640)

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_errors_yield_zero_size(self):
        respx.route(host=CDN_HOST).mock(side_effect=httpx.ConnectTimeout)
        url = f"https://{CDN_HOST}/v/t50/clip.mp4"
        item = MediaItem(type=MediaType.VIDEO, url=url, thumbnail="")

        async with build_client() as client:
            await enrich_media_items(client, [item])

        assert item.filesize == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_every_item_enriched(self, fake_cdn):
        fake_cdn.default = (1, 1)
        respx.route(host=CDN_HOST).mock(side_effect=fake_cdn)
        items = [
            MediaItem(type=MediaType.VIDEO, url=f"https://{CDN_HOST}/v/{i}.mp4", thumbnail="")
            for i in range(4)
        ]

        async with build_client() as client:
            await enrich_media_items(client, items)

        assert [item.filesize for item in items] == [12345] * 4
