"""
feedwatch

RSS feed scheduler with URL validation, recency-limited import and
health monitoring of tracked feeds.
"""

__version__ = "1.0.0"

from .config_manager import ConfigManager
from .feed_importer import FeedImporter
from .rss_fetcher import RSSFetcher
from .rss_parser import RSSParser
from .scheduler import FeedScheduler
from .storage_manager import StorageManager

__all__ = [
    'ConfigManager',
    'FeedImporter',
    'RSSFetcher',
    'RSSParser',
    'FeedScheduler',
    'StorageManager'
]
