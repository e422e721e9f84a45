from typing import Optional


class ScrapeError(Exception):
    """Base class for failures while fetching or extracting a platform's listings."""

    def __init__(self, message: str, platform: Optional[str] = None, url: Optional[str] = None):
        super().__init__(message)
        self.platform = platform
        self.url = url

    def __str__(self) -> str:
        msg = super().__str__()
        return f"[{self.platform}] {msg}" if self.platform else msg


class LaunchError(ScrapeError):
    """The browser process could not be started. Aborts the whole search."""


class NavigationTimeout(ScrapeError):
    """The search page did not load within its time budget."""


class BlockedError(ScrapeError):
    """The retailer served a CAPTCHA or anti-bot page instead of results."""


class ExtractionEmpty(ScrapeError):
    """The page loaded but no extraction strategy produced a product."""


class MalformedProduct(ScrapeError):
    """A candidate record is missing a required field (title, price or url)."""
