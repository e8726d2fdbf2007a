"""
Document image extraction engine.

DOMImages enumerates every image a content source references, whether the source
is a raw HTML/CSS string or an element of a live (browser-like) document:

1. <img src> values (regex over text, or a DOM query in a browser context).
2. Inline style background declarations (always matched against the markup text).
3. Stylesheet rules mentioning background (browser context only, best-effort).

The union is quote-stripped and deduplicated in order of first appearance.
The resulting URLs can then be preloaded concurrently (see preloader.py).
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional, Union

import config
import preloader
from environment import StyleSheet, get_window, is_browser_context
from models import DOMImagesOptions
from scanners import make_scanner, resolve_content, scan_stylesheet, strip_quotes

logger = logging.getLogger(__name__)

# Sentinel: read the ambient window at construction time.
AUTO: Any = object()


def _unique(urls: Iterable[Optional[str]]) -> list[str]:
    """Quote-strip, drop empties, dedupe keeping first occurrence."""
    normalized = (strip_quotes(url) for url in urls if url)
    return list(dict.fromkeys(url for url in normalized if url))


class DOMImages:
    DEFAULT_OPTIONS = DOMImagesOptions()

    def __init__(
        self,
        root_element: Any = None,
        options: Union[DOMImagesOptions, Mapping[str, Any], None] = None,
        environment: Any = AUTO,
    ):
        """
        root_element: HTML/CSS string, a DOM element, or any object with `inner_html`.
            Defaults to the document body in a browser context.
        options: overrides merged over DEFAULT_OPTIONS; unknown keys are kept and ignored.
        environment: a BrowserEnvironment, None for a plain string context, or AUTO to
            use whatever is installed in the ambient window slot.
        """
        if environment is AUTO:
            environment = get_window()
        self.environment = environment
        self._scanner = make_scanner(environment)

        if isinstance(options, DOMImagesOptions):
            self.options = options
        else:
            self.options = DOMImagesOptions(**{**self.DEFAULT_OPTIONS.model_dump(), **dict(options or {})})

        self.root_element = root_element
        if self.root_element is None and self.is_browser_context:
            self.root_element = self.environment.body

    @property
    def root_element_content(self) -> str:
        """Text to scan. Raises InvalidSourceError for unsupported sources."""
        return resolve_content(self.root_element)

    @property
    def is_browser_context(self) -> bool:
        return is_browser_context(self.environment)

    # --- Extraction ---

    def get_document_images(self) -> list[str]:
        """All image URLs: tags, then inline styles, then stylesheets (when readable)."""
        try:
            stylesheet_images = self.get_images_from_stylesheets()
        except Exception as e:
            logger.debug("Stylesheet images skipped: '%s'.", e)
            stylesheet_images = []

        images = _unique([*self.get_images_from_html(), *stylesheet_images])
        logger.debug("Found %d unique image(s).", len(images))
        return images

    def get_images_from_html(self) -> list[str]:
        return [
            *self.get_images_from_html_img_tag(),
            *self.get_images_from_html_inline_styles(),
        ]

    def get_images_from_html_img_tag(self) -> list[str]:
        return self._scanner.scan_tags(self.root_element)

    def get_images_from_html_inline_styles(self) -> list[str]:
        return self._scanner.scan_inline_styles(self.root_element)

    def get_images_from_stylesheets(self) -> list[str]:
        """Raises UnsupportedContextError outside a browser-like context."""
        return self._scanner.scan_stylesheets()

    def get_images_from_stylesheet(self, sheet: StyleSheet) -> list[str]:
        return scan_stylesheet(sheet)

    # --- Preloading ---

    async def load_all(self) -> int:
        return await self.load_images(self.get_document_images())

    async def load_images(self, urls: Iterable[str], location: Optional[str] = None) -> int:
        """
        Preload `urls` into the environment's image cache (if any). Returns the settled count.
        Relative URLs resolve against `location`, or the environment's location when omitted.
        """
        browser = self.is_browser_context
        if location is None and browser:
            location = self.environment.location
        return await preloader.load_images(
            urls,
            location=location,
            cache=self.environment.image_cache if browser else None,
            max_concurrent=config.PRELOAD_MAX_CONCURRENT,
            timeout=config.PRELOAD_TIMEOUT,
        )

    def __repr__(self) -> str:
        kind = "browser" if self.is_browser_context else "string"
        return f"DOMImages({kind}, root_element={type(self.root_element).__name__})"
