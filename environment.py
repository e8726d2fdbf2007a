"""
Browser-like execution environment.

A BrowserEnvironment stands in for the host APIs a page exposes to scripts:
the parsed document (BeautifulSoup), the stylesheets attached to it, the
document location and an image cache that preloading warms.

The module also owns the ambient "window" slot. Entry points install an
environment there (or use the browser_window() context manager); the engine
reads it once at construction when no environment is injected explicitly.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
from typing import Any, Iterator, Optional
from urllib.parse import urljoin, urlparse

import aiohttp
from bs4 import BeautifulSoup
from bs4.element import Tag

import config
from exceptions import StylesheetAccessError
from models import StyleRule

logger = logging.getLogger(__name__)

_CSS_COMMENT_RE = re.compile(r"/\*.*?\*/", re.S)


def _style_rule(prelude: str, body: str) -> StyleRule:
    # Statements such as "@import url(x.css);" can precede a selector.
    selector = " ".join(prelude.rsplit(";", 1)[-1].split())
    if selector.startswith("@"):
        selector = ""
    return StyleRule(selector_text=selector, css_text=" ".join(body.split()))


def parse_css_rules(css: str) -> list[StyleRule]:
    """
    Split stylesheet text into its top-level rules, like a sheet's cssRules.
    At-rules get an empty selector_text; a grouping rule such as @media keeps
    its nested rules inside its own css_text instead of exposing them.
    """
    rules: list[StyleRule] = []
    css = _CSS_COMMENT_RE.sub("", css or "")
    depth = 0
    start = 0
    prelude = ""
    for i, ch in enumerate(css):
        if ch == "{":
            if depth == 0:
                prelude = css[start:i]
                start = i + 1
            depth += 1
        elif ch == "}":
            if depth == 0:
                # Stray closing brace.
                start = i + 1
                continue
            depth -= 1
            if depth == 0:
                rules.append(_style_rule(prelude, css[start:i]))
                start = i + 1
    return rules


class StyleSheet:
    """
    A stylesheet attached to a document.
    css_text is None when the sheet's content is not readable (cross-origin or never fetched);
    reading .rules then raises StylesheetAccessError, as the CSSOM does for foreign sheets.
    """

    def __init__(self, href: Optional[str] = None, css_text: Optional[str] = None):
        self.href = href
        self._rules = parse_css_rules(css_text) if css_text is not None else None

    @property
    def rules(self) -> list[StyleRule]:
        if self._rules is None:
            raise StylesheetAccessError(self.href)
        return self._rules

    def __repr__(self) -> str:
        state = "inaccessible" if self._rules is None else f"{len(self._rules)} rules"
        return f"StyleSheet(href={self.href!r}, {state})"


def _is_stylesheet_link(tag: Tag) -> bool:
    rel = tag.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return "stylesheet" in (r.lower() for r in rel) and bool(tag.get("href"))


def collect_style_sheets(
    document: BeautifulSoup,
    location: Optional[str] = None,
    stylesheets: Optional[dict[str, str]] = None,
) -> list[StyleSheet]:
    """
    Build the document's stylesheet list in document order: <style> blocks and
    <link rel="stylesheet"> elements. Linked sheets are readable only when their
    text is supplied in `stylesheets`, keyed by the raw or the resolved href.
    """
    supplied = stylesheets or {}
    sheets: list[StyleSheet] = []
    for tag in document.find_all(["style", "link"]):
        if tag.name == "style":
            sheets.append(StyleSheet(None, tag.string or ""))
        elif _is_stylesheet_link(tag):
            raw_href = tag["href"]
            href = urljoin(location, raw_href) if location else raw_href
            sheets.append(StyleSheet(href, supplied.get(raw_href, supplied.get(href))))
    return sheets


class BrowserEnvironment:
    def __init__(
        self,
        document: BeautifulSoup,
        style_sheets: Optional[list[StyleSheet]] = None,
        location: Optional[str] = None,
    ):
        self.document = document
        self.style_sheets = list(style_sheets or [])
        self.location = location
        self.image_cache: dict[str, bytes] = {}

    @classmethod
    def from_html(
        cls,
        html: str,
        location: Optional[str] = None,
        stylesheets: Optional[dict[str, str]] = None,
    ) -> "BrowserEnvironment":
        document = BeautifulSoup(html, "html.parser")
        return cls(document, collect_style_sheets(document, location, stylesheets), location)

    @property
    def body(self) -> Tag:
        # Fragments parsed without a <body> fall back to the whole document.
        return self.document.body or self.document

    def query_selector_all(self, selector: str, root: Optional[Tag] = None) -> list[Tag]:
        return (root if root is not None else self.document).select(selector)


# --- Ambient window slot ---

_window: Any = None


def install_window(environment: Any) -> None:
    global _window
    _window = environment


def uninstall_window() -> None:
    global _window
    _window = None


def get_window() -> Any:
    return _window


@contextlib.contextmanager
def browser_window(environment: Any) -> Iterator[Any]:
    """Install `environment` as the ambient window for the duration of the block."""
    global _window
    previous = _window
    _window = environment
    try:
        yield environment
    finally:
        _window = previous


def is_browser_context(environment: Any) -> bool:
    """True if `environment` is a BrowserEnvironment exposing a document. Never raises."""
    try:
        return isinstance(environment, BrowserEnvironment) and environment.document is not None
    except Exception:
        return False


# --- Live pages ---

def _origin(url: str) -> tuple[str, str]:
    parsed = urlparse(url)
    return (parsed.scheme.lower(), parsed.netloc.lower())


async def _fetch_stylesheet(session: aiohttp.ClientSession, href: str) -> Optional[str]:
    """Return the sheet's text, or None when it cannot be fetched."""
    try:
        async with session.get(href) as resp:
            if resp.status != 200:
                logger.debug("Stylesheet %s answered with status %s.", href, resp.status)
                return None
            return await resp.text()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.debug("Stylesheet fetch failed for %s: '%s'.", href, e)
        return None


async def _load_page(session: aiohttp.ClientSession, url: str) -> BrowserEnvironment:
    async with session.get(url) as resp:
        resp.raise_for_status()
        html = await resp.text()

    document = BeautifulSoup(html, "html.parser")
    origin = _origin(url)
    hrefs = [urljoin(url, link["href"]) for link in document.find_all("link") if _is_stylesheet_link(link)]
    # Cross-origin sheets stay unreadable, like CSSOM access from a page script.
    same_origin = [href for href in dict.fromkeys(hrefs) if _origin(href) == origin]
    texts = await asyncio.gather(*[_fetch_stylesheet(session, href) for href in same_origin])
    supplied = {href: text for href, text in zip(same_origin, texts) if text is not None}

    logger.debug("Loaded %s with %d/%d readable linked stylesheets.", url, len(supplied), len(hrefs))
    return BrowserEnvironment(document, collect_style_sheets(document, url, supplied), url)


async def load_page(url: str, *, session: Optional[aiohttp.ClientSession] = None) -> BrowserEnvironment:
    """Fetch a page and its same-origin stylesheets into a BrowserEnvironment."""
    if session is not None:
        return await _load_page(session, url)
    async with aiohttp.ClientSession(
        headers={"User-Agent": config.USER_AGENT},
        timeout=aiohttp.ClientTimeout(total=config.PAGE_TIMEOUT),
    ) as own_session:
        return await _load_page(own_session, url)
