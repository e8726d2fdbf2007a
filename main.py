import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import config
from dom_images import DOMImages
from environment import BrowserEnvironment, load_page
from models import ImageReport


async def run_extraction(
    path: str,
    *,
    browser: bool = False,
    preload: bool = False,
    location: Optional[str] = None,
) -> ImageReport:
    """Scan one HTML/CSS file, as a raw string or as a live document served from `location`."""
    content = Path(path).read_text(encoding="utf-8", errors="replace")
    if browser:
        environment = BrowserEnvironment.from_html(content, location=location)
        engine = DOMImages(environment=environment)
    else:
        engine = DOMImages(content, environment=None)

    images = engine.get_document_images()
    if preload:
        await engine.load_images(images, location=location)
    return ImageReport(source=path, browser_context=engine.is_browser_context, images=images)


async def run_page(url: str, *, preload: bool = False) -> ImageReport:
    environment = await load_page(url)
    engine = DOMImages(environment=environment)
    images = engine.get_document_images()
    if preload:
        await engine.load_images(images)
    return ImageReport(source=url, browser_context=True, images=images)


async def run_all(
    paths: list[str],
    url: Optional[str] = None,
    *,
    browser: bool = False,
    preload: bool = False,
    location: Optional[str] = None,
):
    tasks = [run_extraction(path, browser=browser, preload=preload, location=location) for path in paths]
    if url:
        tasks.append(run_page(url, preload=preload))
    return await asyncio.gather(*tasks, return_exceptions=True)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="List (and optionally preload) every image referenced by HTML/CSS sources")
    parser.add_argument("paths", nargs="*", help="HTML or CSS files to scan")
    parser.add_argument("--url", type=str, help="Load a live page and scan its document and stylesheets")
    parser.add_argument("--browser", action="store_true", help="Treat files as live documents (DOM + <style> sheets)")
    parser.add_argument("--location", type=str, help="Document URL the files are served from; relative images preload against it")
    parser.add_argument("--preload", action="store_true", help="Fetch every image after extraction")
    parser.add_argument(
        "--export",
        type=str,
        metavar="PATH",
        help="Write reports to JSON (e.g. output/images.json)",
    )
    args = parser.parse_args()
    if not args.paths and not args.url:
        parser.error("give at least one path or --url")

    logging.basicConfig(level=config.LOG_LEVEL)
    sources = list(args.paths) + ([args.url] if args.url else [])
    results = asyncio.run(
        run_all(args.paths, args.url, browser=args.browser, preload=args.preload, location=args.location)
    )

    for source, result in zip(sources, results):
        if isinstance(result, BaseException):
            logging.error(f"Failed {source}: {type(result).__name__}: {result}")
        else:
            logging.info(f"{source}: {len(result.images)} image(s)")
            for image in result.images:
                print(image)

    if args.export:
        reports = [res for res in results if isinstance(res, ImageReport)]
        out_path = Path(args.export)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps([r.model_dump() for r in reports], indent=2), encoding="utf-8")
        logging.info(f"Exported {len(reports)} report(s) to {out_path}")
