"""
Tests for preloader: ImageRequest construction, _fetch_image (single GET) and
load_images (fan-out/join-all orchestration).

Network is never touched: _fetch_image is patched for orchestration tests and the
aiohttp session is a MagicMock for single-request tests.
"""

import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp

from dom_images import DOMImages
from environment import BrowserEnvironment
from exceptions import ImageLoadError
from preloader import ImageRequest, load_images
from preloader import _fetch_image  # Private; tested directly


def _response(status: int = 200, body: bytes = b"") -> AsyncMock:
    resp = AsyncMock()
    resp.status = status
    resp.read = AsyncMock(return_value=body)
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=None)
    return resp


class TestImageRequest(unittest.TestCase):
    def test_absolute_url(self) -> None:
        request = ImageRequest("https://example.com/a.jpg")
        self.assertEqual(str(request.target), "https://example.com/a.jpg")
        self.assertFalse(request.inline)

    def test_relative_url_resolved_against_location(self) -> None:
        location = "https://shop.example.com/products/"
        self.assertEqual(str(ImageRequest("/assets/a.jpg", location).target), "https://shop.example.com/assets/a.jpg")
        self.assertEqual(
            str(ImageRequest("images/a.jpg", location).target),
            "https://shop.example.com/products/images/a.jpg",
        )

    def test_protocol_relative_url_takes_location_scheme(self) -> None:
        request = ImageRequest("//cdn.example.com/a.jpg", "https://shop.example.com/")
        self.assertEqual(str(request.target), "https://cdn.example.com/a.jpg")

    def test_relative_url_without_location_rejected(self) -> None:
        with self.assertRaises(ImageLoadError):
            ImageRequest("/assets/a.jpg")

    def test_non_http_scheme_rejected(self) -> None:
        for url in ("ftp://example.com/a.jpg", "javascript:alert(1)", "not a url", ""):
            with self.subTest(url=url):
                with self.assertRaises(ImageLoadError):
                    ImageRequest(url)

    def test_data_uri_is_inline(self) -> None:
        self.assertTrue(ImageRequest("data:image/gif;base64,R0lGODlhAQABAAAAACw=").inline)

    def test_image_load_error_is_value_error(self) -> None:
        with self.assertRaises(ValueError):
            ImageRequest("relative.png")


class TestLoadImages(unittest.IsolatedAsyncioTestCase):
    async def test_empty_input_resolves_without_session(self) -> None:
        with patch("preloader.aiohttp.ClientSession") as mock_session_cls:
            settled = await load_images([])
        self.assertEqual(settled, 0)
        mock_session_cls.assert_not_called()

    async def test_every_url_requested(self) -> None:
        with patch("preloader._fetch_image", new_callable=AsyncMock, return_value=b"img") as mock_fetch:
            urls = [f"https://example.com/{i}.jpg" for i in range(6)]
            settled = await load_images(urls, session=MagicMock())
        self.assertEqual(settled, 6)
        self.assertEqual(mock_fetch.await_count, 6)
        requested = [str(call.args[1].target) for call in mock_fetch.await_args_list]
        self.assertEqual(sorted(requested), sorted(urls))

    async def test_construction_failure_rejects_before_any_request(self) -> None:
        with patch("preloader._fetch_image", new_callable=AsyncMock) as mock_fetch:
            with self.assertRaises(ImageLoadError):
                await load_images(["https://example.com/ok.jpg", "/relative.jpg"], session=MagicMock())
        mock_fetch.assert_not_awaited()

    async def test_post_initiation_failures_settle(self) -> None:
        """A failed fetch (None) does not fail the aggregate."""
        with patch("preloader._fetch_image", new_callable=AsyncMock, side_effect=[None, b"ok"]):
            cache: dict = {}
            settled = await load_images(
                ["https://example.com/missing.jpg", "https://example.com/ok.jpg"],
                session=MagicMock(),
                cache=cache,
            )
        self.assertEqual(settled, 2)
        self.assertEqual(list(cache.values()), [b"ok"])

    async def test_cache_keyed_by_resolved_url(self) -> None:
        with patch("preloader._fetch_image", new_callable=AsyncMock, return_value=b"bytes"):
            cache: dict = {}
            await load_images(["/a.jpg"], location="https://example.com/", session=MagicMock(), cache=cache)
        self.assertEqual(cache, {"https://example.com/a.jpg": b"bytes"})

    async def test_data_uri_not_fetched(self) -> None:
        with patch("preloader._fetch_image", new_callable=AsyncMock) as mock_fetch:
            settled = await load_images(["data:image/gif;base64,R0lGODlhAQABAAAAACw="], session=MagicMock())
        self.assertEqual(settled, 1)
        mock_fetch.assert_not_awaited()

    async def test_max_concurrent_still_loads_all(self) -> None:
        with patch("preloader._fetch_image", new_callable=AsyncMock, return_value=b"x") as mock_fetch:
            urls = ["https://example.com/a.jpg", "https://example.com/b.png"] * 5
            settled = await load_images(urls, session=MagicMock(), max_concurrent=2)
        self.assertEqual(settled, 10)
        self.assertEqual(mock_fetch.await_count, 10)

    async def test_requests_issued_concurrently(self) -> None:
        """Each fetch waits until all of them have started; a sequential loop would never finish."""
        urls = [f"https://example.com/{i}.jpg" for i in range(5)]
        started = 0
        all_started = asyncio.Event()

        async def fake_fetch(session, request, timeout=None):
            nonlocal started
            started += 1
            if started == len(urls):
                all_started.set()
            await all_started.wait()
            return b"img"

        with patch("preloader._fetch_image", new_callable=AsyncMock, side_effect=fake_fetch):
            settled = await asyncio.wait_for(load_images(urls, session=MagicMock()), timeout=2)
        self.assertEqual(settled, 5)

    async def test_max_concurrent_bounds_in_flight(self) -> None:
        in_flight = 0
        peak = 0

        async def fake_fetch(session, request, timeout=None):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return b"img"

        urls = [f"https://example.com/{i}.jpg" for i in range(8)]
        with patch("preloader._fetch_image", new_callable=AsyncMock, side_effect=fake_fetch):
            settled = await load_images(urls, session=MagicMock(), max_concurrent=2)
        self.assertEqual(settled, 8)
        self.assertEqual(peak, 2)

    async def test_timeout_forwarded(self) -> None:
        with patch("preloader._fetch_image", new_callable=AsyncMock, return_value=None) as mock_fetch:
            await load_images(["https://example.com/a.jpg"], session=MagicMock(), timeout=2.5)
        self.assertEqual(mock_fetch.await_args.args[2], 2.5)


class TestFetchImage(unittest.IsolatedAsyncioTestCase):
    async def test_returns_body_on_200(self) -> None:
        session = MagicMock()
        session.get = MagicMock(return_value=_response(200, b"\x89PNG"))
        body = await _fetch_image(session, ImageRequest("https://example.com/a.png"))
        self.assertEqual(body, b"\x89PNG")

    async def test_non_200_returns_none(self) -> None:
        session = MagicMock()
        session.get = MagicMock(return_value=_response(404))
        self.assertIsNone(await _fetch_image(session, ImageRequest("https://example.com/missing.png")))

    async def test_client_error_returns_none(self) -> None:
        session = MagicMock()
        session.get = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        self.assertIsNone(await _fetch_image(session, ImageRequest("https://example.com/a.png")))

    async def test_timeout_passed_to_request(self) -> None:
        session = MagicMock()
        session.get = MagicMock(return_value=_response(200, b""))
        await _fetch_image(session, ImageRequest("https://example.com/a.png"), timeout=3)
        self.assertEqual(session.get.call_args.kwargs["timeout"].total, 3)


class TestEnginePreload(unittest.IsolatedAsyncioTestCase):
    """DOMImages.load_images / load_all delegate to the preloader."""

    async def test_load_all_warms_environment_cache(self) -> None:
        env = BrowserEnvironment.from_html(
            '<img src="/a.jpg"><div style="background: url(/b.png)"></div>',
            location="https://example.com/",
        )
        with patch("preloader._fetch_image", new_callable=AsyncMock, return_value=b"data"):
            settled = await DOMImages(environment=env).load_all()
        self.assertEqual(settled, 2)
        self.assertEqual(set(env.image_cache), {"https://example.com/a.jpg", "https://example.com/b.png"})

    async def test_load_images_relative_without_location_rejects(self) -> None:
        dom_images = DOMImages('<img src="/a.jpg">', environment=None)
        with self.assertRaises(ImageLoadError):
            await dom_images.load_all()

    async def test_load_images_explicit_location_in_string_context(self) -> None:
        dom_images = DOMImages('<img src="/a.jpg">', environment=None)
        with patch("preloader._fetch_image", new_callable=AsyncMock, return_value=b"data") as mock_fetch:
            settled = await dom_images.load_images(["/a.jpg"], location="https://example.com/")
        self.assertEqual(settled, 1)
        self.assertEqual(str(mock_fetch.await_args.args[1].target), "https://example.com/a.jpg")

    async def test_load_images_empty(self) -> None:
        self.assertEqual(await DOMImages("", environment=None).load_images([]), 0)
