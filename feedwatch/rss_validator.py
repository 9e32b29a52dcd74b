"""
RSS feed URL validation and feed record creation.
"""
import logging
import re
import time
import urllib.parse
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Any, Optional, Tuple

from feedwatch.exceptions import FeedWatchError
from feedwatch.feed_importer import FeedImporter
from feedwatch.health_monitor import STATUS_ACTIVE, STATUS_ERROR
from feedwatch.rss_fetcher import RSSFetcher
from feedwatch.utils.helpers import utc_now, generate_feed_id

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r'^https?://.+', re.IGNORECASE)
RSS_URL_PATTERNS = [re.compile(p, re.IGNORECASE) for p in (r'feed', r'rss', r'xml', r'atom')]

INVALID_FORMAT_ERROR = "Invalid URL format. URL must start with http:// or https://"
MALFORMED_URL_ERROR = "Malformed URL"
NO_RSS_PATTERN_WARNING = "URL doesn't match common RSS patterns but will be accepted"
IMPORTED_MESSAGE = "Feed validated and imported successfully"

# Invalid feeds are back-dated past the warning window so they classify as error
INVALID_FEED_AGE = timedelta(hours=25)


def extract_title_from_url(url: str) -> str:
    """
    Derive a readable title from a feed URL.

    "https://www.example.com/security-news/feed" -> "example.com - security news"
    """
    try:
        parsed = urllib.parse.urlparse(url)
        hostname = parsed.hostname
    except ValueError:
        return "RSS Feed"
    if not hostname:
        return "RSS Feed"

    hostname = re.sub(r'^www\.', '', hostname)
    path_parts = [part for part in parsed.path.split('/') if part]

    if path_parts and path_parts[0] not in ('feed', 'rss'):
        return f"{hostname} - {re.sub(r'[-_]', ' ', path_parts[0])}"

    return hostname


def _check_url(url: str, fetcher: Optional[RSSFetcher]) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
    """
    Validate a URL and return the validation result with the parsed feed
    (None unless a live check succeeded).
    """
    if not url or not URL_PATTERN.match(url):
        return {"is_valid": False, "error": INVALID_FORMAT_ERROR, "title": None}, None

    try:
        parsed = urllib.parse.urlparse(url)
        if not parsed.hostname:
            raise ValueError("missing host")
    except ValueError:
        return {"is_valid": False, "error": MALFORMED_URL_ERROR, "title": None}, None

    title = extract_title_from_url(url)

    if fetcher is not None:
        try:
            feed_data = fetcher.fetch_feed(url)
        except FeedWatchError as e:
            logger.info(f"Live validation failed for {url}: {e}")
            return {"is_valid": False, "error": f"Failed to validate RSS feed: {e}", "title": None}, None
        return {"is_valid": True, "error": None, "title": feed_data.get('title') or title}, feed_data

    if not any(pattern.search(url) for pattern in RSS_URL_PATTERNS):
        return {"is_valid": True, "error": NO_RSS_PATTERN_WARNING, "title": title}, None

    return {"is_valid": True, "error": None, "title": title}, None


def validate_rss_url(url: str, fetcher: Optional[RSSFetcher] = None) -> Dict[str, Any]:
    """
    Validate a feed URL.

    Without a fetcher only the URL itself is checked. With a fetcher the feed
    is downloaded and parsed, and its own title is suggested.

    Args:
        url: Candidate feed URL
        fetcher: Optional fetcher for a live check

    Returns:
        Dictionary with is_valid, error (message or None) and title (suggestion or None)
    """
    validation, _ = _check_url(url, fetcher)
    return validation


def new_feed_record(url: str, category: str, title: str, validation: Dict[str, Any],
                    now: Optional[datetime] = None) -> Dict[str, Any]:
    """Build the record of a freshly added feed from its validation result."""
    now = now or utc_now()
    is_valid = validation['is_valid']

    return {
        "id": generate_feed_id(now),
        "title": title,
        "url": url,
        "category": category,
        "is_active": True,
        "health": {
            "is_valid": is_valid,
            "status": STATUS_ACTIVE if is_valid else STATUS_ERROR,
            "last_fetch": now,
            "last_successful_fetch": now if is_valid else now - INVALID_FEED_AGE,
            "error_count": 0 if is_valid else 1,
            "message": validation.get('error') or IMPORTED_MESSAGE,
        },
        "last_updated": now,
        "article_count": 0,
        "tags": [],
    }


def validate_and_import_rss(url: str, category: str, title: Optional[str] = None,
                            importer: Optional[FeedImporter] = None,
                            now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Validate a URL and, when valid, import its recent articles.

    Args:
        url: Feed URL
        category: Category the feed is filed under
        title: Optional explicit title
        importer: Importer used for the live check and the initial import
        now: Reference time

    Returns:
        New feed record
    """
    fetcher = importer.fetcher if importer is not None else None
    validation, feed_data = _check_url(url, fetcher)
    record = new_feed_record(
        url, category, title or validation.get('title') or 'New RSS Feed', validation, now
    )

    # The live check already downloaded the feed; import from that copy
    if validation['is_valid'] and importer is not None:
        return importer.import_feed(record, now, feed_data=feed_data)

    return record


def _failed_record(entry: Dict[str, Any], index: int, error: Exception, now: datetime) -> Dict[str, Any]:
    return {
        "id": f"error_{int(now.timestamp() * 1000)}_{index}",
        "title": entry.get('title') or 'Failed RSS Feed',
        "url": entry.get('url', ''),
        "category": entry.get('category', ''),
        "is_active": False,
        "health": {
            "is_valid": False,
            "status": STATUS_ERROR,
            "last_fetch": now,
            "last_successful_fetch": now - INVALID_FEED_AGE,
            "error_count": 1,
            "message": f"Validation failed: {error}",
        },
        "last_updated": now,
        "article_count": 0,
        "tags": [],
    }


def batch_validate_rss_feeds(entries: List[Dict[str, Any]], importer: Optional[FeedImporter] = None,
                             on_progress: Optional[Callable[[int, int, Dict[str, Any]], None]] = None,
                             delay_seconds: float = 0.1) -> List[Dict[str, Any]]:
    """
    Validate and import feed entries one after another.

    Args:
        entries: Dictionaries with category, url and optional title
        importer: Importer for live validation and import
        on_progress: Called with (current, total, entry) before each entry
        delay_seconds: Pause between entries

    Returns:
        List of {"feed": entry, "result": record, "is_valid": bool}
    """
    results = []
    total = len(entries)

    for index, entry in enumerate(entries):
        if on_progress:
            on_progress(index + 1, total, entry)

        try:
            record = validate_and_import_rss(entry['url'], entry['category'], entry.get('title'), importer)
            results.append({"feed": entry, "result": record, "is_valid": record['health']['is_valid']})
        except Exception as e:
            logger.exception(f"Unexpected error validating {entry.get('url')}: {e}")
            results.append({"feed": entry, "result": _failed_record(entry, index, e, utc_now()), "is_valid": False})

        if delay_seconds > 0 and index < total - 1:
            time.sleep(delay_seconds)

    return results


def summarize_batch(results: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Split batch validation results into successes and failures.

    Returns:
        Dictionary with successful, failed, total, success_count and failure_count
    """
    successful = [item['result'] for item in results if item['is_valid']]
    failed = [
        {"feed": item['feed'], "error": item['result']['health']['message']}
        for item in results if not item['is_valid']
    ]

    return {
        "successful": successful,
        "failed": failed,
        "total": len(results),
        "success_count": len(successful),
        "failure_count": len(failed),
    }
