from typing import Optional


class ScraperError(Exception):
    """Base class for errors raised by scraperlib."""


class ConfigurationError(ScraperError, ValueError):
    """Raised by option normalization before any request is made."""


class FetchError(ScraperError):
    """A single resource could not be fetched.

    Recorded on the failing resource; never aborts the crawl.
    """

    def __init__(self, url: str, cause: object, status: Optional[int] = None):
        self.url = url
        self.cause = cause
        self.status = status
        super().__init__(f"{url}: {cause}")


class ExtractionError(ScraperError):
    """Fetched content could not be run through the source pipeline."""

    def __init__(self, url: str, cause: object):
        self.url = url
        self.cause = cause
        super().__init__(f"{url}: {cause}")
