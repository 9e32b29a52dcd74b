"""
RSS Parser module for processing RSS and Atom feeds.
Extracts essential information from feed XML into structured format.
"""
import logging
from typing import Dict, Any

import feedparser

from feedwatch.exceptions import FeedParseError
from feedwatch.utils.helpers import normalize_date, clean_text, create_article_hash, utc_now, format_iso

logger = logging.getLogger(__name__)

SNIPPET_MAX_LENGTH = 300


class RSSParser:
    """
    Parses RSS/Atom feeds and extracts relevant information.
    """

    def __init__(self):
        """Initialize the RSS parser."""
        logger.debug("RSSParser initialized")

    def parse_rss(self, rss_content: str, source_url: str) -> Dict[str, Any]:
        """
        Parse feed content into structured format.

        Args:
            rss_content: Raw RSS/Atom XML content
            source_url: URL the content was downloaded from

        Returns:
            Dictionary with feed metadata and articles

        Raises:
            FeedParseError: If the content is not a recognisable feed
        """
        logger.debug(f"Parsing feed from {source_url}")

        feed = feedparser.parse(rss_content)

        # feedparser sets bozo on malformed XML but still recovers what it can
        if not feed.entries and not feed.feed.get('title'):
            reason = str(feed.get('bozo_exception', 'no channel or entries found'))
            raise FeedParseError(source_url, f"Not a valid RSS/Atom feed: {reason}")

        if feed.bozo:
            logger.warning(f"Feed from {source_url} is malformed, using recovered content: {feed.get('bozo_exception')}")

        articles = []
        for entry in feed.entries:
            article = self._extract_article_data(entry)
            if self._is_valid_article(article):
                articles.append(article)

        result = {
            "fetched_at": format_iso(utc_now()),
            "source_url": source_url,
            "title": clean_text(feed.feed.get('title', '')),
            "articles": articles
        }

        logger.info(f"Extracted {len(articles)} valid articles from {source_url}")
        return result

    def _extract_article_data(self, entry) -> Dict[str, str]:
        """
        Extract relevant data from a feed entry.

        Args:
            entry: Feed entry from feedparser

        Returns:
            Dictionary with article data
        """
        title = clean_text(entry.get('title', ''))
        link = entry.get('link', '').strip()

        published = entry.get('published') or entry.get('updated') or ''
        published = normalize_date(published)

        snippet = entry.get('summary') or entry.get('description') or ''
        if not snippet and entry.get('content'):
            snippet = entry.content[0].get('value', '')
        snippet = clean_text(snippet, max_length=SNIPPET_MAX_LENGTH)

        return {
            "title": title,
            "link": link,
            "published": published,
            "author": entry.get('author', ''),
            "snippet": snippet,
            "id_hash": create_article_hash(title, published)
        }

    def _is_valid_article(self, article: Dict[str, str]) -> bool:
        """
        Validate if an article contains minimum required information.

        Args:
            article: Article dictionary

        Returns:
            True if article is valid, False otherwise
        """
        if not article.get('title'):
            logger.debug(f"Skipping article without title: {article.get('link')}")
            return False

        return True
