"""
Feed importer: fetches a feed, keeps the articles of the recency window and
synthesises the feed's health record.
"""
import copy
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Any, Optional, Tuple

from feedwatch.exceptions import FeedWatchError
from feedwatch.health_monitor import check_rss_health, STATUS_ACTIVE, STATUS_ERROR
from feedwatch.rss_fetcher import RSSFetcher
from feedwatch.utils.helpers import utc_now, parse_datetime

logger = logging.getLogger(__name__)

DEFAULT_RECENCY_DAYS = 7


class FeedImporter:
    """
    Imports and refreshes feed records using an RSSFetcher.
    """

    def __init__(self, fetcher: RSSFetcher, recency_days: int = DEFAULT_RECENCY_DAYS):
        """
        Args:
            fetcher: Fetcher used to download and parse feeds
            recency_days: Only articles published within this many days are kept
        """
        self.fetcher = fetcher
        self.recency_days = recency_days

    def filter_recent(self, articles: List[Dict[str, Any]], now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Keep articles published on or after now - recency_days.

        Articles whose publication date is missing or unparseable are kept.
        """
        cutoff = (now or utc_now()) - timedelta(days=self.recency_days)
        recent = []
        for article in articles:
            published = parse_datetime(article.get('published'))
            if published is None or published >= cutoff:
                recent.append(article)

        dropped = len(articles) - len(recent)
        if dropped:
            logger.debug(f"Dropped {dropped} articles older than {self.recency_days} days")
        return recent

    def fetch_recent_articles(self, url: str, now: Optional[datetime] = None) -> Tuple[List[Dict[str, Any]], str]:
        """
        Fetch a feed and return its recent articles and title.

        Raises:
            FeedFetchError, FeedParseError
        """
        feed_data = self.fetcher.fetch_feed(url)
        articles = self.filter_recent(feed_data.get('articles', []), now)
        return articles, feed_data.get('title', '')

    def refresh_feed(self, feed: Dict[str, Any], now: Optional[datetime] = None,
                     feed_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Re-fetch a feed and return an updated copy of its record.

        Args:
            feed: Feed record
            now: Reference time
            feed_data: Already parsed feed content; the feed is not downloaded again when given

        Raises:
            FeedWatchError: If fetching or parsing fails
        """
        now = now or utc_now()
        if feed_data is None:
            articles, title = self.fetch_recent_articles(feed['url'], now)
        else:
            articles = self.filter_recent(feed_data.get('articles', []), now)
            title = feed_data.get('title', '')

        updated = copy.copy(feed)
        updated['title'] = feed.get('title') or title or 'RSS Feed'
        updated['article_count'] = len(articles)
        updated['articles'] = articles
        updated['last_updated'] = now
        updated['health'] = dict(
            feed['health'],
            last_fetch=now,
            last_successful_fetch=now,
            status=STATUS_ACTIVE,
            message=f"Successfully imported {len(articles)} articles from last {self.recency_days} days"
        )
        logger.info(f"Imported {len(articles)} recent articles from \"{updated['title']}\"")
        return updated

    def import_feed(self, feed: Dict[str, Any], now: Optional[datetime] = None,
                    feed_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Like refresh_feed, but failures are recorded in the feed's health instead of raised.
        """
        try:
            return self.refresh_feed(feed, now, feed_data)
        except FeedWatchError as e:
            logger.warning(f"Failed to import {feed['url']}: {e}")
            now = now or utc_now()
            updated = copy.copy(feed)
            updated['health'] = dict(
                feed['health'],
                last_fetch=now,
                status=STATUS_ERROR,
                message=f"Failed to import RSS data: {e}",
                error_count=feed['health']['error_count'] + 1
            )
            return updated


def mark_refresh_failed(feed: Dict[str, Any], error: str, now: Optional[datetime] = None,
                        **thresholds) -> Dict[str, Any]:
    """
    Record a scheduled refresh that failed every attempt.

    The status is re-derived from the last successful fetch, so a feed that
    failed once shortly after a good fetch stays active.

    Args:
        thresholds: active_hours / warning_hours passed on to check_rss_health
    """
    now = now or utc_now()
    updated = copy.copy(feed)
    updated['health'] = dict(
        feed['health'],
        last_fetch=now,
        status=check_rss_health(feed['health']['last_successful_fetch'], now, **thresholds),
        message=f"Refresh failed: {error}",
        error_count=feed['health']['error_count'] + 1
    )
    return updated
