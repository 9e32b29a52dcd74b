"""
Helper functions for feedwatch.
Contains utility functions for dates, text cleanup, hashing and URL handling.
"""
import hashlib
import random
import re
import time
import urllib.parse
import uuid
import logging
from datetime import datetime
from typing import Dict, Any, Optional

import pytz
from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

ISO_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(pytz.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Make a datetime timezone-aware in UTC.

    Naive datetimes are assumed to already be UTC.
    """
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value.astimezone(pytz.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse an ISO string (or pass through a datetime) into an aware UTC datetime.

    Args:
        value: datetime, date string or None

    Returns:
        Aware UTC datetime, or None when the value is empty or unparseable
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)

    try:
        return ensure_utc(date_parser.parse(str(value)))
    except (ValueError, TypeError, OverflowError) as e:
        logger.warning(f"Failed to parse datetime '{value}': {e}")
        return None


def format_iso(value: Optional[datetime]) -> Optional[str]:
    """Format an aware datetime as an ISO-8601 UTC string."""
    if value is None:
        return None
    return ensure_utc(value).strftime(ISO_FORMAT)


def normalize_date(date_string: str) -> str:
    """
    Normalize date strings to a consistent ISO format.

    Args:
        date_string: Raw date string from an RSS feed

    Returns:
        Normalized date string in ISO format, or "" if parsing fails
    """
    if not date_string or not date_string.strip():
        return ""

    parsed = parse_datetime(date_string.strip())
    if parsed is None:
        return ""
    return format_iso(parsed)


def clean_text(text: str, max_length: int = None) -> str:
    """
    Clean and normalize text content.

    Args:
        text: Raw text to clean
        max_length: Maximum length to truncate to (optional)

    Returns:
        Cleaned text string
    """
    if not text:
        return ""

    # Remove HTML tags and entities
    cleaned = re.sub(r'<[^>]+>', ' ', text)
    cleaned = re.sub(r'&[a-zA-Z0-9#]+;', ' ', cleaned)

    cleaned = re.sub(r'\s+', ' ', cleaned).strip()

    if max_length and len(cleaned) > max_length:
        cleaned = cleaned[:max_length].rstrip() + "..."

    return cleaned


def create_article_hash(title: str, pub_date: str) -> str:
    """
    Generate a SHA-256 hash from title and publication date for deduplication.

    Args:
        title: Article title
        pub_date: Publication date (normalized string)

    Returns:
        SHA-256 hash string
    """
    title = title or ""
    pub_date = pub_date or ""

    content = f"{title.strip()}|{pub_date.strip()}".encode('utf-8')
    return hashlib.sha256(content).hexdigest()


def generate_feed_id(now: Optional[datetime] = None) -> str:
    """Build a new feed identifier: rss_<epoch millis>_<9 hex chars>."""
    now = now or utc_now()
    millis = int(now.timestamp() * 1000)
    return f"rss_{millis}_{uuid.uuid4().hex[:9]}"


def validate_json_structure(data: Dict[str, Any], schema: Dict) -> bool:
    """
    Validate if a dictionary conforms to a simple schema (required keys and basic types).

    Args:
        data: Dictionary to validate
        schema: Schema dictionary with required keys and expected types

    Returns:
        True if data conforms to schema, False otherwise
    """
    if not isinstance(data, dict):
        logger.warning("Validation failed: Data is not a dictionary")
        return False

    for key, expected_type in schema.items():
        if key not in data:
            logger.warning(f"Validation failed: Missing required key '{key}'")
            return False
        if data[key] is not None and not isinstance(data[key], expected_type):
            logger.warning(f"Validation failed: Key '{key}' has wrong type. Expected {expected_type}, got {type(data[key])}")
            return False

    return True


ARTICLE_SCHEMA = {
    'title': str,
    'link': str,
    'published': str,  # ISO format string or ""
    'author': str,
    'snippet': str,
    'id_hash': str,
}

PARSED_FEED_SCHEMA = {
    'fetched_at': str,
    'source_url': str,
    'title': str,
    'articles': list,
}

HEALTH_SCHEMA = {
    'is_valid': bool,
    'status': str,
    'last_fetch': datetime,
    'last_successful_fetch': datetime,
    'error_count': int,
    'message': str,
}

FEED_RECORD_SCHEMA = {
    'id': str,
    'title': str,
    'url': str,
    'category': str,
    'is_active': bool,
    'health': dict,
    'last_updated': datetime,
    'article_count': int,
}


def retry_with_backoff(func, max_retries: int, initial_delay: float, backoff_factor: float = 2.0,
                       retry_on: tuple = (Exception,)):
    """
    Retry a function call with exponential backoff.

    Args:
        func: The function to call.
        max_retries: The maximum number of retries.
        initial_delay: The initial delay in seconds before the first retry.
        backoff_factor: The factor by which the delay increases each retry.
        retry_on: Exception types that trigger a retry; anything else propagates at once.

    Returns:
        The result of the function call if successful.

    Raises:
        Exception: The last error if the function fails after max_retries.
    """
    for attempt in range(max_retries + 1):
        try:
            return func()
        except retry_on as e:
            if attempt == max_retries:
                raise
            delay = initial_delay * (backoff_factor ** attempt) + random.uniform(0, initial_delay * 0.5)
            logger.warning(f"Attempt {attempt + 1} failed. Retrying in {delay:.2f}s: {e}")
            time.sleep(delay)


def validate_url(url: str) -> bool:
    """
    Validate if a string is a proper URL.

    Args:
        url: URL string to validate

    Returns:
        True if valid URL, False otherwise
    """
    if not url or not isinstance(url, str):
        return False

    try:
        parsed = urllib.parse.urlparse(url)
        return bool(parsed.scheme and parsed.hostname)
    except ValueError:
        return False


def pluralize(count: int, word: str) -> str:
    """'1 hour', '2 hours'."""
    return f"{count} {word}{'' if count == 1 else 's'}"
