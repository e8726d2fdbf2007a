# Base Exception
class DOMImagesError(Exception):
    # Base exception for image extraction and preloading errors
    pass


# Specific Exceptions
class InvalidSourceError(DOMImagesError, TypeError):
    # Raised when the content source is neither a string nor markup-bearing

    def __init__(self, message: str = "source must be a string or a valid markup-bearing element"):
        super().__init__(message)


class UnsupportedContextError(DOMImagesError):
    # Raised when a browser-only operation runs without a browser-like environment
    pass


class StylesheetAccessError(DOMImagesError):
    # Raised when a stylesheet's rules cannot be read (e.g. cross-origin sheet)

    def __init__(self, href: str | None, message: str = "Stylesheet rules are not accessible"):
        self.href = href
        super().__init__(f"{message}: {href}" if href else message)


class ImageLoadError(DOMImagesError, ValueError):
    # Raised when an image load request cannot be constructed
    pass
