"""
Tests for the HTTP surface in api.py via FastAPI's TestClient.
"""

import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from api import app

FIXTURES = Path(__file__).resolve().parent / "fixtures"


class TestImagesEndpoint(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(app)

    def test_html_content(self) -> None:
        html = (FIXTURES / "dom-fixture.html").read_text(encoding="utf-8")
        resp = self.client.post("/images", json={"content": html})
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertFalse(data["browser_context"])
        self.assertEqual(len(data["images"]), 5)
        self.assertIn("/assets/gallery/landscape.jpeg", data["images"])

    def test_browser_content_reads_style_blocks(self) -> None:
        html = '<style>.a { background: url("/sheet.png") }</style><img src="/tag.png">'
        resp = self.client.post("/images", json={"content": html, "browser": True})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["images"], ["/tag.png", "/sheet.png"])

    def test_missing_content_is_rejected(self) -> None:
        resp = self.client.post("/images", json={})
        self.assertEqual(resp.status_code, 422)


class TestPreloadEndpoint(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(app)

    def test_empty_list(self) -> None:
        resp = self.client.post("/preload", json={"urls": []})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"settled": 0})

    def test_relative_url_without_location_is_400(self) -> None:
        resp = self.client.post("/preload", json={"urls": ["/a.jpg"]})
        self.assertEqual(resp.status_code, 400)

    @patch("preloader._fetch_image", new_callable=AsyncMock, return_value=b"img")
    def test_urls_settled(self, mock_fetch) -> None:
        resp = self.client.post(
            "/preload",
            json={"urls": ["/a.jpg", "https://cdn.example.com/b.png"], "location": "https://example.com/"},
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"settled": 2})
        self.assertEqual(mock_fetch.await_count, 2)
