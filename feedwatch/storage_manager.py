"""
Storage Manager module for persisting feed state, refresh timestamps and
deduplicated articles as JSON files.
"""
import json
import logging
import os
import hashlib
from datetime import datetime, timedelta
from typing import List, Dict, Any, Optional, Set

from feedwatch.health_monitor import HEALTH_STATUSES
from feedwatch.utils.helpers import (
    utc_now,
    format_iso,
    parse_datetime,
    validate_json_structure,
    FEED_RECORD_SCHEMA,
    HEALTH_SCHEMA
)
from feedwatch.utils.logging_utils import log_storage_results

logger = logging.getLogger(__name__)

FEEDS_STATE_FILE = "feeds_state.json"
TIMESTAMPS_FILE = "timestamps.json"
ARTICLES_DIR = "articles"

_RECORD_DATETIME_KEYS = ("last_updated",)
_HEALTH_DATETIME_KEYS = ("last_fetch", "last_successful_fetch")


class StorageManager:
    """
    Manages feed state, timestamps and article storage with deduplication.
    """

    def __init__(self, base_dir: str = 'data'):
        """
        Initialize the storage manager.

        Args:
            base_dir: Base directory for stored state
        """
        self.base_dir = base_dir
        self.articles_dir = os.path.join(base_dir, ARTICLES_DIR)
        self.feeds_path = os.path.join(base_dir, FEEDS_STATE_FILE)
        self.timestamps_path = os.path.join(base_dir, TIMESTAMPS_FILE)

        os.makedirs(self.articles_dir, exist_ok=True)

        logger.debug(f"StorageManager initialized with base directory: {self.base_dir}")

    def _read_json(self, file_path: str, default):
        if not os.path.exists(file_path):
            logger.debug(f"No existing data file found: {file_path}")
            return default

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in {file_path}, ignoring it: {e}")
            return default

    def _write_json(self, file_path: str, data) -> None:
        # Write to a temp file first so a crash never leaves half a file behind
        tmp_path = f"{file_path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, file_path)

    # Feed state

    @staticmethod
    def _serialize_feed(feed: Dict[str, Any]) -> Dict[str, Any]:
        record = {key: value for key, value in feed.items() if key != 'articles'}
        for key in _RECORD_DATETIME_KEYS:
            record[key] = format_iso(record.get(key))
        health = dict(record['health'])
        for key in _HEALTH_DATETIME_KEYS:
            health[key] = format_iso(health.get(key))
        record['health'] = health
        return record

    @staticmethod
    def _deserialize_feed(record: Dict[str, Any]) -> Dict[str, Any]:
        feed = dict(record)
        for key in _RECORD_DATETIME_KEYS:
            feed[key] = parse_datetime(feed.get(key))
        health = dict(feed['health'])
        for key in _HEALTH_DATETIME_KEYS:
            health[key] = parse_datetime(health.get(key))
        feed['health'] = health
        return feed

    def save_feeds(self, feeds: List[Dict[str, Any]]) -> None:
        """
        Persist feed records. Recent articles are not part of the feed state.
        """
        self._write_json(self.feeds_path, [self._serialize_feed(feed) for feed in feeds])
        logger.debug(f"Saved {len(feeds)} feed records to {self.feeds_path}")

    def load_feeds(self) -> List[Dict[str, Any]]:
        """
        Load persisted feed records.

        Returns:
            List of feed records, empty when nothing was saved yet
        """
        records = self._read_json(self.feeds_path, [])
        if not isinstance(records, list):
            logger.warning(f"Invalid data format in {self.feeds_path}, expected list")
            return []

        feeds = []
        for record in records:
            if not isinstance(record, dict) or not isinstance(record.get('health'), dict):
                logger.warning(f"Skipping unreadable feed record {record!r}")
                continue

            try:
                feed = self._deserialize_feed(record)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable feed record {record!r}: {e}")
                continue

            if not (validate_json_structure(feed, FEED_RECORD_SCHEMA)
                    and validate_json_structure(feed['health'], HEALTH_SCHEMA)
                    and feed['health']['status'] in HEALTH_STATUSES):
                logger.warning(f"Skipping invalid feed record {feed.get('id')}")
                continue
            feeds.append(feed)
        return feeds

    # Timestamps

    def _get_timestamp(self, key: str) -> Optional[datetime]:
        timestamps = self._read_json(self.timestamps_path, {})
        return parse_datetime(timestamps.get(key)) if isinstance(timestamps, dict) else None

    def _set_timestamp(self, key: str, now: Optional[datetime]) -> None:
        timestamps = self._read_json(self.timestamps_path, {})
        if not isinstance(timestamps, dict):
            timestamps = {}
        timestamps[key] = format_iso(now or utc_now())
        self._write_json(self.timestamps_path, timestamps)

    def set_login_timestamp(self, now: Optional[datetime] = None) -> None:
        self._set_timestamp('last_login', now)

    def set_feed_refresh_timestamp(self, now: Optional[datetime] = None) -> None:
        self._set_timestamp('last_feed_refresh', now)

    def is_login_refresh(self) -> bool:
        """
        True when feeds should be refreshed because of a new login: either
        timestamp is missing, or the login is more recent than the last refresh.
        """
        last_login = self._get_timestamp('last_login')
        last_refresh = self._get_timestamp('last_feed_refresh')

        if last_login is None or last_refresh is None:
            return True
        return last_login > last_refresh

    # Articles

    def _get_daily_file_path(self, date: datetime) -> str:
        return os.path.join(self.articles_dir, f"{date.strftime('%Y-%m-%d')}.json")

    def _load_existing_articles(self, date: datetime) -> List[Dict[str, Any]]:
        data = self._read_json(self._get_daily_file_path(date), [])
        if not isinstance(data, list):
            logger.warning(f"Invalid data format in {self._get_daily_file_path(date)}, expected list")
            return []
        return data

    def _get_article_hash(self, article: Dict[str, Any]) -> str:
        """
        SHA-256 of title|published, used when an article has no link.
        """
        title = article.get('title', '').strip()
        published = article.get('published', '').strip()
        if not title and not published:
            return ""
        return hashlib.sha256(f"{title}|{published}".encode('utf-8')).hexdigest()

    def _is_duplicate(self, article: Dict[str, Any], existing_links: Set[str], existing_hashes: Set[str]) -> bool:
        link = article.get('link', '').strip()
        if link:
            return link in existing_links

        article_hash = self._get_article_hash(article)
        return bool(article_hash) and article_hash in existing_hashes

    def store_articles(self, feed_id: str, articles: List[Dict[str, Any]],
                       now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Append articles to today's file, skipping ones already stored.

        Args:
            feed_id: Feed the articles came from
            articles: Parsed articles

        Returns:
            Dictionary with new_articles, duplicates_found and total_articles
        """
        today = now or utc_now()
        existing = self._load_existing_articles(today)

        existing_links = {a.get('link', '').strip() for a in existing if a.get('link')}
        existing_hashes = {self._get_article_hash(a) for a in existing if not a.get('link')}

        new_articles = []
        duplicates_found = 0

        for article in articles:
            if self._is_duplicate(article, existing_links, existing_hashes):
                duplicates_found += 1
                continue

            stored = dict(article, feed_id=feed_id)
            new_articles.append(stored)
            if stored.get('link', '').strip():
                existing_links.add(stored['link'].strip())
            else:
                existing_hashes.add(self._get_article_hash(stored))

        if new_articles:
            self._write_json(self._get_daily_file_path(today), existing + new_articles)

        stats = {
            'new_articles': len(new_articles),
            'duplicates_found': duplicates_found,
            'total_articles': len(articles)
        }
        log_storage_results(logger, feed_id, stats)
        return stats

    def list_available_dates(self) -> List[str]:
        """
        List all dates with stored articles.

        Returns:
            Sorted list of YYYY-MM-DD strings
        """
        dates = []
        for filename in os.listdir(self.articles_dir):
            if not filename.endswith('.json'):
                continue
            date_str = filename[:-5]
            try:
                datetime.strptime(date_str, '%Y-%m-%d')
            except ValueError:
                continue
            dates.append(date_str)

        return sorted(dates)

    def cleanup_old_files(self, days_to_keep: int = 30, now: Optional[datetime] = None) -> int:
        """
        Remove article files older than the given number of days.

        Returns:
            Number of files removed
        """
        cutoff = (now or utc_now()).date() - timedelta(days=days_to_keep)
        removed_count = 0

        for date_str in self.list_available_dates():
            if datetime.strptime(date_str, '%Y-%m-%d').date() < cutoff:
                os.remove(os.path.join(self.articles_dir, f"{date_str}.json"))
                removed_count += 1
                logger.debug(f"Removed old file: {date_str}.json")

        logger.info(f"Cleanup completed: removed {removed_count} old files")
        return removed_count
