from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class DOMImagesOptions(BaseModel):
    # Unknown keys are kept on the model and ignored by the engine.
    model_config = ConfigDict(extra="allow", frozen=True)

    # Reserved for host-name filtering; accepted but currently has no effect on output.
    skip_dns_name: bool = True


class StyleRule(BaseModel):
    # One CSS style rule as exposed by a stylesheet: selector plus declaration text.
    # At-rules (@font-face, @import, ...) carry an empty selector_text.
    selector_text: str = ""
    css_text: str = ""


class ImageReport(BaseModel):
    source: str
    browser_context: bool = False
    images: list[str] = Field(default_factory=list)


class ExtractRequest(BaseModel):
    content: str
    browser: bool = Field(default=False, description="Treat content as a live document, including its <style> sheets")
    location: Optional[str] = Field(default=None, description="Document URL used when preloading relative image URLs")


class PreloadRequest(BaseModel):
    urls: list[str]
    location: Optional[str] = None
