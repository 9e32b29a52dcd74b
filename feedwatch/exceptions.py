"""
Custom exceptions for feedwatch.
"""
from typing import Optional


class FeedWatchError(Exception):
    """Base class for feedwatch errors"""


class FeedFetchError(FeedWatchError):
    """Raised when a feed could not be downloaded"""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"{reason} ({url})")


class FeedParseError(FeedWatchError):
    """Raised when downloaded content is not a usable RSS/Atom feed"""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"{reason} ({url})")
