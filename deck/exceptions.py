"""
Exceptions raised by the deck assembly package.
"""

from typing import Optional


class DeckError(Exception):
    """Base class for deck assembly errors."""


class UpstreamError(DeckError):
    """A call to the dataset API did not produce usable data."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class UpstreamUnavailable(UpstreamError):
    """Non-2xx response, network failure or malformed payload from the dataset API."""


class UpstreamTimeout(UpstreamError):
    """The dataset API did not answer before the request deadline."""


class NoImagesAvailable(DeckError):
    """Every source was exhausted and the deck pool is empty."""

    def __init__(self, message: str = "No usable images could be fetched from any source"):
        super().__init__(message)
