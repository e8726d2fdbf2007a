"""
Image reference scanners.

Three surfaces carry image references: <img> tags, inline style attributes and
stylesheet rules. A scanner exposes one method per surface. StringScanner works
on raw HTML/CSS text with regular expressions; BrowserScanner reads tags and
stylesheets from a BrowserEnvironment and shares the text-based inline-style pass.
The engine picks one variant at construction time.
"""

from __future__ import annotations

import re
from typing import Any, Protocol

from bs4.element import Tag

from environment import StyleSheet, is_browser_context
from exceptions import InvalidSourceError, UnsupportedContextError

# <img ... src="x">, tolerant of multi-line attributes, single/no quotes and
# self-closing or unclosed tags. Preceding attributes are consumed whole, values
# included, so "src=" inside onerror="..." or alt="..." and data-src never match.
_IMG_SRC_RE = re.compile(
    r"""<img\b"""
    r"""(?:\s+(?!src\b)[^\s=>/]+(?:\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]+))?)*"""
    r"""\s+src\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))""",
    re.IGNORECASE,
)
# Pass 1: background-image declarations, first parenthesised argument.
_BACKGROUND_IMAGE_RE = re.compile(r"background-image.+?\((.+?)\)", re.IGNORECASE)
# Pass 2: any background/background-* declaration holding a url(...).
_BACKGROUND_URL_RE = re.compile(r"background.+?url\(([^)]*)\)", re.IGNORECASE)
_CSS_URL_RE = re.compile(r"url\(([^)]*)\)")

_QUOTE_RE = re.compile(r"&quot;|&#39;|[\"']")


# --- Helpers ---

def resolve_content(source: Any) -> str:
    """
    Return the text to scan for `source`: a string verbatim, the inner markup of a
    DOM element, or the inner_html attribute of any other markup-bearing object.
    """
    if isinstance(source, str):
        return source
    if isinstance(source, Tag):
        return source.decode_contents()
    inner_html = getattr(source, "inner_html", None)
    if isinstance(inner_html, str):
        return inner_html
    raise InvalidSourceError()


def strip_quotes(value: str) -> str:
    """Remove every single/double quote character (and their HTML entities) from `value`."""
    return _QUOTE_RE.sub("", value)


def unquote_literal(value: str) -> str:
    """Strip one matching pair of wrapping quotes from a CSS string literal; never evaluates it."""
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def _src_value(m: re.Match) -> str:
    return next(group for group in m.groups() if group is not None)


def scan_stylesheet(sheet: StyleSheet) -> list[str]:
    """
    First url(...) of every style rule whose declarations mention "background".
    Raises StylesheetAccessError for unreadable sheets.
    """
    images = []
    for rule in sheet.rules:
        if not (rule.selector_text and rule.css_text):
            continue
        if "background" in rule.css_text:
            m = _CSS_URL_RE.search(rule.css_text)
            if m:
                images.append(unquote_literal(m.group(1)))
    return images


# --- Scanner variants ---

class ImageScanner(Protocol):
    browser_context: bool

    def scan_tags(self, source: Any) -> list[str]: ...

    def scan_inline_styles(self, source: Any) -> list[str]: ...

    def scan_stylesheets(self) -> list[str]: ...


class StringScanner:
    """Regex scanning over the resolved text content. No stylesheet access."""

    browser_context = False

    def scan_tags(self, source: Any) -> list[str]:
        return [_src_value(m) for m in _IMG_SRC_RE.finditer(resolve_content(source))]

    def scan_inline_styles(self, source: Any) -> list[str]:
        content = resolve_content(source)
        background_images = [strip_quotes(m.group(1)) for m in _BACKGROUND_IMAGE_RE.finditer(content)]
        urls = [m.group(1) for m in _BACKGROUND_URL_RE.finditer(content)]
        return background_images + urls

    def scan_stylesheets(self) -> list[str]:
        raise UnsupportedContextError("Stylesheets can be processed only in a browser-like context")


class BrowserScanner(StringScanner):
    """DOM-backed tag and stylesheet scanning; inline styles still go through the markup text."""

    browser_context = True

    def __init__(self, environment: Any):
        self.environment = environment

    def scan_tags(self, source: Any) -> list[str]:
        # A DOM element scopes the query to its subtree; anything else scans the whole document.
        root = source if isinstance(source, Tag) else None
        srcs = []
        for img in self.environment.query_selector_all("img", root):
            src = img.get("src")
            if src is not None:
                srcs.append(src)
        return srcs

    def scan_stylesheets(self) -> list[str]:
        images = []
        for sheet in self.environment.style_sheets:
            images.extend(scan_stylesheet(sheet))
        return images


def make_scanner(environment: Any) -> ImageScanner:
    if is_browser_context(environment):
        return BrowserScanner(environment)
    return StringScanner()
