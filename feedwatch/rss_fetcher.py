"""
rss_fetcher.py - Module for fetching RSS feeds using requests and proxy.
"""

import time
import logging
from typing import Dict, Optional, Any

import requests
from user_agent import generate_user_agent

from feedwatch.exceptions import FeedFetchError
from feedwatch.rss_parser import RSSParser
from feedwatch.utils.helpers import (
    validate_json_structure,
    retry_with_backoff,
    ARTICLE_SCHEMA,
    PARSED_FEED_SCHEMA
)
from feedwatch.utils.logging_utils import log_fetch_success
from feedwatch.utils.proxy_utils import ProxyConfig, create_proxy_aware_session

logger = logging.getLogger(__name__)


class _TransientHTTPError(Exception):
    """Server-side or network failure worth retrying"""


class RSSFetcher:
    """
    Class for fetching RSS feeds using a requests session with proxy support.
    Relies on RSSParser for parsing the fetched content.
    """

    def __init__(self, timeout: float = 30, max_retries: int = 1, backoff_factor: float = 2.0,
                 initial_delay: float = 1.0, proxy_config: Optional[ProxyConfig] = None,
                 parser: Optional[RSSParser] = None, user_agent: Optional[str] = None):
        """
        Initialize the RSS Fetcher with configuration and dependencies.

        Args:
            timeout: Request timeout in seconds.
            max_retries: Retries for transient HTTP failures (5xx, timeouts, connection errors).
            backoff_factor: Multiplier applied to the retry delay after each attempt.
            initial_delay: Delay before the first retry in seconds.
            proxy_config: Proxy configuration.
            parser: RSSParser instance for parsing fetched content.
            user_agent: Fixed User-Agent; a generated one is used per request when omitted.
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.initial_delay = initial_delay
        self.proxy_config = proxy_config
        self.parser = parser or RSSParser()
        self.user_agent = user_agent

        self.session = create_proxy_aware_session(self.proxy_config, user_agent=user_agent)

        logger.debug("RSSFetcher initialized with requests session and parser")

    def _headers(self) -> Dict[str, str]:
        return {
            'User-Agent': self.user_agent or generate_user_agent(),
            'Accept': 'application/rss+xml, application/atom+xml, application/xml, text/xml;q=0.9, */*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.5'
        }

    def fetch_raw_content(self, url: str) -> str:
        """
        Fetch raw feed content from the given URL, retrying transient failures.

        Args:
            url: URL of the RSS feed

        Returns:
            Raw feed content (text)

        Raises:
            FeedFetchError: If the feed could not be downloaded
        """
        def fetch():
            start_time = time.time()
            try:
                response = self.session.get(url, headers=self._headers(), timeout=self.timeout)
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                raise _TransientHTTPError(str(e)) from e

            if response.status_code >= 500:
                raise _TransientHTTPError(f"HTTP {response.status_code}")

            try:
                response.raise_for_status()
            except requests.exceptions.HTTPError as e:
                # Client errors are permanent, do not retry them
                raise FeedFetchError(url, f"HTTP {response.status_code}", status_code=response.status_code) from e

            log_fetch_success(logger, url, len(response.content), time.time() - start_time)
            return response.text

        try:
            return retry_with_backoff(
                func=fetch,
                max_retries=self.max_retries,
                initial_delay=self.initial_delay,
                backoff_factor=self.backoff_factor,
                retry_on=(_TransientHTTPError,)
            )
        except _TransientHTTPError as e:
            logger.error(f"Final attempt failed to fetch feed from {url}: {e}")
            raise FeedFetchError(url, str(e)) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Request error fetching {url}: {e}")
            raise FeedFetchError(url, str(e)) from e

    def fetch_feed(self, url: str) -> Dict[str, Any]:
        """
        Fetch raw content for a feed URL, parse it, and return structured feed data.

        Args:
            url: URL of the RSS/Atom feed

        Returns:
            Parsed feed data dictionary (fetched_at, source_url, title, articles)

        Raises:
            FeedFetchError: If downloading fails
            FeedParseError: If the content is not a feed
        """
        logger.info(f"Fetching feed: {url}")
        raw_content = self.fetch_raw_content(url)

        parsed_feed_data = self.parser.parse_rss(raw_content, url)

        if not validate_json_structure(parsed_feed_data, PARSED_FEED_SCHEMA):
            raise FeedFetchError(url, "Parsed feed has an invalid structure")

        articles = parsed_feed_data['articles']
        valid_articles = [article for article in articles if validate_json_structure(article, ARTICLE_SCHEMA)]
        if len(valid_articles) < len(articles):
            logger.warning(f"Dropped {len(articles) - len(valid_articles)} malformed articles from {url}")
        parsed_feed_data['articles'] = valid_articles

        return parsed_feed_data
