"""
Main entry point for feedwatch.
Wires configuration, fetching, storage and the scheduler together.
"""
import argparse
import json
import logging
import os
import sys
import threading
import time
from json.decoder import JSONDecodeError
from typing import Dict, List, Any, Optional

from feedwatch import __version__
from feedwatch.config_manager import ConfigManager
from feedwatch.feed_importer import FeedImporter, mark_refresh_failed
from feedwatch.health_monitor import monitor_rss_health, get_feed_health_stats, get_health_label
from feedwatch.rss_fetcher import RSSFetcher
from feedwatch.rss_parser import RSSParser
from feedwatch.rss_validator import batch_validate_rss_feeds, summarize_batch, validate_rss_url
from feedwatch.scheduler import initialize_scheduler, format_time_until_refresh, format_time_since_refresh
from feedwatch.storage_manager import StorageManager
from feedwatch.utils.logging_utils import setup_logging
from feedwatch.utils.proxy_utils import ProxyConfig

logger = logging.getLogger(__name__)


def build_fetcher(config_manager: ConfigManager) -> RSSFetcher:
    """Create an RSSFetcher from the networking settings (timeouts, retries, proxy, user agent)."""
    get = config_manager.get_config_value
    return RSSFetcher(
        timeout=get("networking.timeout_seconds", 30),
        max_retries=get("networking.retry_attempts", 1),
        backoff_factor=get("networking.backoff_factor", 2.0),
        proxy_config=ProxyConfig(get("networking.proxy", {})),
        parser=RSSParser(),
        user_agent=get("networking.user_agent")
    )


class FeedMonitor:
    """
    Keeps the tracked feeds, refreshes them on schedule and persists the results.
    """

    def __init__(self, config_manager: ConfigManager, fetcher: Optional[RSSFetcher] = None,
                 storage_manager: Optional[StorageManager] = None):
        """
        Args:
            config_manager: Loaded configuration
            fetcher: Optional fetcher; built from the networking settings when omitted
            storage_manager: Optional storage; built from the storage settings when omitted
        """
        self.config_manager = config_manager
        get = config_manager.get_config_value

        self.fetcher = fetcher or build_fetcher(config_manager)
        self.importer = FeedImporter(self.fetcher, recency_days=get("import.recency_days", 7))
        self.storage = storage_manager or StorageManager(get("storage.base_dir", "./data"))
        self.thresholds = {
            "active_hours": get("health.active_hours", 6),
            "warning_hours": get("health.warning_hours", 24),
        }

        self._lock = threading.Lock()
        self.feeds: List[Dict[str, Any]] = self.storage.load_feeds()
        self.last_error: Optional[str] = None

        self.scheduler = initialize_scheduler(config_manager, self._refresh_feed)
        self.scheduler.init(
            self.feeds,
            on_feed_refreshed=self._on_feed_refreshed,
            on_scheduler_error=self._on_scheduler_error,
            on_scheduler_status=self._on_scheduler_status
        )

        logger.info(f"FeedMonitor initialized with {len(self.feeds)} stored feeds")

    def _replace_feed(self, feed_id: str, updated: Dict[str, Any]) -> None:
        for index, feed in enumerate(self.feeds):
            if feed['id'] == feed_id:
                self.feeds[index] = updated
                return
        logger.warning(f"Refreshed feed {feed_id} is no longer tracked")

    def _find_feed(self, feed_id: str) -> Optional[Dict[str, Any]]:
        return next((feed for feed in self.feeds if feed['id'] == feed_id), None)

    def _refresh_feed(self, feed: Dict[str, Any]) -> Dict[str, Any]:
        # The scheduler may hold an older copy; refresh from the latest record
        return self.importer.refresh_feed(self._find_feed(feed['id']) or feed)

    def _on_feed_refreshed(self, feed_id: str, success: bool, data: Optional[Dict[str, Any]]) -> None:
        with self._lock:
            if success and data is not None:
                self.storage.store_articles(feed_id, data.get('articles', []))
                self._replace_feed(feed_id, data)
                self.storage.set_feed_refresh_timestamp()
            else:
                feed = self._find_feed(feed_id)
                if feed is None:
                    return
                error = self.scheduler.get_last_error(feed_id) or "unknown error"
                self._replace_feed(feed_id, mark_refresh_failed(feed, error, **self.thresholds))

            self.storage.save_feeds(self.feeds)

    def _on_scheduler_error(self, message: str) -> None:
        self.last_error = message
        logger.error(f"Scheduler error: {message}")

    def _on_scheduler_status(self, running: bool) -> None:
        logger.info(f"Scheduler {'running' if running else 'stopped'}")

    def import_configured_feeds(self) -> Dict[str, Any]:
        """
        Validate and import configured feeds that are not tracked yet.

        Returns:
            Batch summary (see summarize_batch)
        """
        tracked_urls = {feed['url'] for feed in self.feeds}
        entries = [e for e in self.config_manager.get_feed_entries() if e['url'] not in tracked_urls]

        def on_progress(current, total, entry):
            logger.info(f"Validating feed {current}/{total}: {entry['url']}")

        results = batch_validate_rss_feeds(
            entries,
            importer=self.importer,
            on_progress=on_progress,
            delay_seconds=self.config_manager.get_config_value("import.batch_delay_seconds", 0.1)
        )

        with self._lock:
            for item in results:
                record = item['result']
                entry = item['feed']
                record['description'] = entry.get('description', '')
                record['tags'] = list(entry.get('tags', []))
                if item['is_valid']:
                    self.storage.store_articles(record['id'], record.get('articles', []))
                self.feeds.append(record)
            self.storage.save_feeds(self.feeds)

        self.scheduler.update_feeds([feed for feed in self.feeds if feed.get('is_active')])
        summary = summarize_batch(results)
        logger.info(f"Imported {summary['success_count']}/{summary['total']} configured feeds")
        return summary

    def refresh_now(self) -> Optional[Dict[str, Any]]:
        """Refresh every active feed once, outside of the schedule."""
        self.scheduler.update_feeds([feed for feed in self.feeds if feed.get('is_active')])
        return self.scheduler.refresh_all_feeds()

    def refresh_on_login(self) -> Optional[Dict[str, Any]]:
        """
        Record a login and refresh feeds if the previous login is newer than the last refresh.

        Returns:
            Refresh summary, or None when no refresh was needed
        """
        needed = self.storage.is_login_refresh()
        self.storage.set_login_timestamp()

        if not (needed and self.feeds):
            return None

        logger.info("Login detected - triggering feed refresh")
        return self.refresh_now()

    def health_report(self) -> Dict[str, Any]:
        """
        Recompute feed health and summarise it with the scheduler status.
        """
        with self._lock:
            self.feeds = monitor_rss_health(self.feeds, **self.thresholds)
            feeds = list(self.feeds)

        status = self.scheduler.get_status()
        return {
            "stats": get_feed_health_stats(feeds),
            "feeds": [
                {
                    "id": feed['id'],
                    "title": feed['title'],
                    "url": feed['url'],
                    "category": feed['category'],
                    "status": feed['health']['status'],
                    "label": get_health_label(feed['health']['status'], **self.thresholds),
                    "message": feed['health']['message'],
                    "article_count": feed['article_count'],
                    "error_count": feed['health']['error_count'],
                }
                for feed in feeds
            ],
            "scheduler": {
                "is_running": status['is_running'],
                "feed_count": status['feed_count'],
                "last_refresh": format_time_since_refresh(status['last_refresh']),
                "time_until_refresh": format_time_until_refresh(status['next_refresh']),
                "needs_refresh": self.scheduler.needs_refresh(),
                "config": status['config'],
            },
        }

    def start(self, refresh_now: bool = True) -> None:
        self.scheduler.update_feeds([feed for feed in self.feeds if feed.get('is_active')])
        self.scheduler.start(refresh_now=refresh_now)

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.stop()


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="feedwatch - RSS feed scheduler, validator and health monitor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  feedwatch --validate https://example.com/feed.xml   # Check URLs
  feedwatch --import-configured                        # Add feeds from feeds.json
  feedwatch --run-now --health                         # Refresh once and report health
  feedwatch --schedule                                 # Refresh every N hours
        """
    )
    parser.add_argument("--config-dir", default="config",
                        help="Path to configuration directory (default: config)")
    parser.add_argument("--validate", nargs="+", metavar="URL",
                        help="Validate feed URLs and exit")
    parser.add_argument("--live", action="store_true",
                        help="Download feeds when validating instead of checking URLs only")
    parser.add_argument("--import-configured", action="store_true",
                        help="Validate and import feeds listed in feeds.json")
    parser.add_argument("--run-now", action="store_true",
                        help="Refresh all feeds immediately")
    parser.add_argument("--schedule", action="store_true",
                        help="Start scheduler for automatic refresh")
    parser.add_argument("--health", action="store_true",
                        help="Print the feed health report")
    parser.add_argument("--debug", action="store_true",
                        help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"feedwatch v{__version__}")

    return parser, parser.parse_args(argv)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def main(argv=None):
    """
    Main entry point for the script.
    """
    parser, args = parse_arguments(argv)

    settings_path = os.path.join(args.config_dir, 'settings.json')
    feeds_path = os.path.join(args.config_dir, 'feeds.json')

    try:
        config_manager = ConfigManager(settings_path, feeds_path)
    except (FileNotFoundError, JSONDecodeError, TypeError, ValueError) as e:
        logging.basicConfig(level=logging.INFO)
        logger.critical(f"Failed to load configuration from {args.config_dir}: {e}")
        return 1

    log_level = 'DEBUG' if args.debug else config_manager.get_config_value("logging.level", "INFO")
    setup_logging(log_level=log_level, log_dir=config_manager.get_config_value("logging.log_dir", "./logs"))

    if args.validate:
        fetcher = build_fetcher(config_manager) if args.live else None
        results = {url: validate_rss_url(url, fetcher=fetcher) for url in args.validate}
        _print_json(results)
        return 0 if all(r['is_valid'] for r in results.values()) else 2

    if not (args.import_configured or args.run_now or args.schedule or args.health):
        logger.warning("No action specified. Use --validate, --import-configured, --run-now, --schedule or --health")
        parser.print_help()
        return 0

    monitor = FeedMonitor(config_manager)

    try:
        if args.import_configured:
            summary = monitor.import_configured_feeds()
            _print_json({k: summary[k] for k in ('total', 'success_count', 'failure_count', 'failed')})

        if args.run_now:
            logger.info("Running immediate refresh")
            summary = monitor.refresh_now()
            if summary is None:
                logger.warning("Nothing was refreshed")
            monitor.storage.cleanup_old_files(config_manager.get_config_value("storage.cleanup_days", 30))

        if args.health:
            _print_json(monitor.health_report())

        if args.schedule:
            # A login-triggered refresh replaces the scheduler's immediate one
            login_summary = monitor.refresh_on_login()
            monitor.start(refresh_now=login_summary is None and not args.run_now)
            logger.info("Scheduler started - Press Ctrl+C to stop")
            while True:
                time.sleep(1)

    except (KeyboardInterrupt, SystemExit):
        logger.info("Stopped by user or system signal")
    finally:
        monitor.stop()

    return 0


if __name__ == "__main__":
    sys.exit(main())
