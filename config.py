import os

from dotenv import load_dotenv

load_dotenv()


def _optional_float(name: str) -> float | None:
    raw = os.environ.get(name, "").strip()
    return float(raw) if raw else None


def _optional_int(name: str) -> int | None:
    raw = os.environ.get(name, "").strip()
    return int(raw) if raw else None


LOG_LEVEL = os.environ.get("DOMIMAGES_LOG_LEVEL", "INFO").upper()

# Browser-like User-Agent to reduce CDN blocking
USER_AGENT = os.environ.get(
    "DOMIMAGES_USER_AGENT",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

# Unset means no per-request timeout and unbounded fan-out.
PRELOAD_TIMEOUT = _optional_float("DOMIMAGES_PRELOAD_TIMEOUT")
PRELOAD_MAX_CONCURRENT = _optional_int("DOMIMAGES_PRELOAD_MAX_CONCURRENT")

PAGE_TIMEOUT = _optional_float("DOMIMAGES_PAGE_TIMEOUT") or 10.0
