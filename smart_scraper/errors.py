"""Exceptions raised inside retrieval stages.

None of these escape ``SmartScraper.scrape``; each stage converts them into
its own failure result.
"""


class ScraperError(Exception):
    """Base class for smart_scraper errors."""


class BrowserNotFoundError(ScraperError):
    """No Chrome/Chromium executable was found for screenshot capture."""


class BrowserEngineUnavailableError(ScraperError):
    """The full browser engine could not be launched."""


class PdfError(ScraperError):
    """A PDF could not be downloaded or parsed."""


class PdfTooLargeError(PdfError):
    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"PDF too large ({size} bytes, max {limit // (1024 * 1024)}MB)")
