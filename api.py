import logging

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

import config
from dom_images import DOMImages
from environment import BrowserEnvironment
from exceptions import DOMImagesError
from models import ExtractRequest, ImageReport, PreloadRequest
from preloader import load_images

logger = logging.getLogger("uvicorn.error")

app = FastAPI()

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.post("/images", response_model=ImageReport)
def extract_images(body: ExtractRequest):
    """Return every image URL referenced by the posted HTML/CSS content"""
    if body.browser:
        engine = DOMImages(environment=BrowserEnvironment.from_html(body.content, location=body.location))
    else:
        engine = DOMImages(body.content, environment=None)
    try:
        images = engine.get_document_images()
    except DOMImagesError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ImageReport(source="request", browser_context=engine.is_browser_context, images=images)


@app.post("/preload")
async def preload_images(body: PreloadRequest):
    """Warm the given image URLs; responds once every request has settled"""
    try:
        settled = await load_images(
            body.urls,
            location=body.location,
            max_concurrent=config.PRELOAD_MAX_CONCURRENT,
            timeout=config.PRELOAD_TIMEOUT,
        )
    except DOMImagesError as e:
        logger.warning(f"Preload rejected: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    return {"settled": settled}
