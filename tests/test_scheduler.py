#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
test_scheduler.py - Unit tests for the scheduler module
"""

import unittest
from unittest.mock import patch, MagicMock, call
import os
import sys
import threading
from datetime import datetime, timedelta

import pytz

# Add project root to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from feedwatch.exceptions import FeedFetchError
from feedwatch.scheduler import (
    FeedScheduler,
    format_time_until_refresh,
    format_time_since_refresh,
    initialize_scheduler
)

NOW = datetime(2024, 1, 10, 12, 0, 0, tzinfo=pytz.utc)


def make_feeds(count):
    return [
        {"id": f"rss_{i}", "title": f"Feed {i}", "url": f"https://example.com/{i}/feed"}
        for i in range(count)
    ]


class TestFeedScheduler(unittest.TestCase):
    """Test cases for FeedScheduler class"""

    def setUp(self):
        self.refresh_func = MagicMock(side_effect=lambda feed: dict(feed, article_count=1))
        self.on_feed_refreshed = MagicMock()
        self.on_scheduler_error = MagicMock()
        self.on_scheduler_status = MagicMock()

        self.scheduler = FeedScheduler(
            interval_hours=3,
            max_retries=3,
            retry_delay_seconds=0,
            refresh_func=self.refresh_func,
            max_workers=1,
            poll_interval=0.01
        )

    def tearDown(self):
        if self.scheduler.running:
            self.scheduler.stop()

    def _init(self, feeds):
        self.scheduler.init(
            feeds,
            on_feed_refreshed=self.on_feed_refreshed,
            on_scheduler_error=self.on_scheduler_error,
            on_scheduler_status=self.on_scheduler_status
        )

    def test_default_config(self):
        scheduler = FeedScheduler()
        self.assertEqual(scheduler.config, {
            "interval_hours": 3,
            "max_retries": 3,
            "retry_delay_seconds": 30,
        })
        self.assertFalse(scheduler.running)

    def test_invalid_config(self):
        with self.assertRaises(ValueError):
            FeedScheduler(interval_hours=0)
        with self.assertRaises(ValueError):
            FeedScheduler(max_retries=0)
        with self.assertRaises(ValueError):
            FeedScheduler(retry_delay_seconds=-1)

    def test_unknown_timezone_falls_back_to_utc(self):
        scheduler = FeedScheduler(timezone="Mars/Olympus")
        self.assertEqual(scheduler.tz, pytz.utc)

    def test_refresh_without_init_returns_none(self):
        self.assertIsNone(self.scheduler.refresh_all_feeds())
        self.refresh_func.assert_not_called()

    def test_refresh_without_feeds_returns_none(self):
        self._init([])
        self.assertIsNone(self.scheduler.refresh_all_feeds())

    def test_refresh_without_refresh_func_returns_none(self):
        scheduler = FeedScheduler()
        scheduler.init(make_feeds(1), on_feed_refreshed=self.on_feed_refreshed)
        self.assertIsNone(scheduler.refresh_all_feeds())

    def test_refresh_all_feeds(self):
        feeds = make_feeds(3)
        self._init(feeds)

        summary = self.scheduler.refresh_all_feeds()

        self.assertEqual(summary['total'], 3)
        self.assertEqual(summary['succeeded'], 3)
        self.assertEqual(summary['failed'], 0)
        self.assertEqual(self.refresh_func.call_count, 3)
        self.on_feed_refreshed.assert_has_calls([
            call(feed['id'], True, dict(feed, article_count=1)) for feed in feeds
        ], any_order=True)
        self.assertIsNotNone(self.scheduler.last_refresh)

    def test_retry_then_success(self):
        feed = make_feeds(1)[0]
        self.refresh_func.side_effect = [FeedFetchError(feed['url'], "HTTP 500"), dict(feed, article_count=2)]
        self._init([feed])

        summary = self.scheduler.refresh_all_feeds()

        self.assertEqual(summary['succeeded'], 1)
        self.assertEqual(self.refresh_func.call_count, 2)
        self.on_feed_refreshed.assert_called_once_with(feed['id'], True, dict(feed, article_count=2))
        self.assertIsNone(self.scheduler.get_last_error(feed['id']))

    @patch('feedwatch.scheduler.time.sleep')
    def test_all_attempts_fail(self, mock_sleep):
        feed = make_feeds(1)[0]
        self.refresh_func.side_effect = FeedFetchError(feed['url'], "HTTP 500")
        self.scheduler.update_config(retry_delay_seconds=30)
        self._init([feed])

        summary = self.scheduler.refresh_all_feeds()

        self.assertEqual(summary['failed'], 1)
        self.assertEqual(self.refresh_func.call_count, 3)
        # No wait after the final attempt
        self.assertEqual(mock_sleep.call_args_list, [call(30), call(30)])
        self.on_feed_refreshed.assert_called_once_with(feed['id'], False, None)
        self.assertEqual(self.scheduler.get_last_error(feed['id']), f"HTTP 500 ({feed['url']})")

    def test_one_failure_does_not_stop_others(self):
        feeds = make_feeds(3)

        def refresh(feed):
            if feed['id'] == "rss_1":
                raise RuntimeError("boom")
            return feed

        self.refresh_func.side_effect = refresh
        self._init(feeds)

        summary = self.scheduler.refresh_all_feeds()

        self.assertEqual(summary['succeeded'], 2)
        self.assertEqual(summary['failed'], 1)
        self.assertEqual(self.on_feed_refreshed.call_count, 3)
        self.on_scheduler_error.assert_not_called()

    def test_callback_errors_are_contained(self):
        self.on_feed_refreshed.side_effect = RuntimeError("callback broke")
        self._init(make_feeds(2))

        summary = self.scheduler.refresh_all_feeds()

        self.assertEqual(summary['succeeded'], 2)

    def test_start_and_stop(self):
        refreshed = threading.Event()
        self.on_feed_refreshed.side_effect = lambda *args: refreshed.set()
        self._init(make_feeds(1))

        self.scheduler.start()

        self.assertTrue(self.scheduler.running)
        self.assertTrue(refreshed.wait(timeout=5))
        self.assertEqual(len(self.scheduler._scheduler.jobs), 1)
        self.on_scheduler_status.assert_called_with(True)

        self.scheduler.stop()

        self.assertFalse(self.scheduler.running)
        self.assertFalse(self.scheduler.thread.is_alive())
        self.assertEqual(self.scheduler._scheduler.jobs, [])
        self.on_scheduler_status.assert_called_with(False)

    def test_start_without_immediate_refresh(self):
        self._init(make_feeds(1))

        self.scheduler.start(refresh_now=False)
        self.scheduler.stop()

        self.refresh_func.assert_not_called()

    def test_start_twice_is_ignored(self):
        self._init(make_feeds(1))
        self.scheduler.start(refresh_now=False)
        thread = self.scheduler.thread

        self.scheduler.start(refresh_now=False)

        self.assertIs(self.scheduler.thread, thread)

    def test_stop_when_not_running(self):
        self.scheduler.stop()
        self.on_scheduler_status.assert_not_called()

    def test_next_refresh(self):
        self._init(make_feeds(1))
        self.assertIsNone(self.scheduler.get_next_refresh())

        self.scheduler.start(refresh_now=False)
        self.scheduler.last_refresh = NOW

        self.assertEqual(self.scheduler.get_next_refresh(), NOW + timedelta(hours=3))
        status = self.scheduler.get_status()
        self.assertTrue(status['is_running'])
        self.assertEqual(status['feed_count'], 1)
        self.assertEqual(status['next_refresh'], NOW + timedelta(hours=3))

    def test_update_config(self):
        self.scheduler.update_config(max_retries=5)
        self.assertEqual(self.scheduler.config['max_retries'], 5)

        with self.assertRaises(ValueError):
            self.scheduler.update_config(unknown_key=1)
        with self.assertRaises(ValueError):
            self.scheduler.update_config(interval_hours=-2)
        self.assertEqual(self.scheduler.config['interval_hours'], 3)

    def test_interval_change_restarts_running_scheduler(self):
        self._init(make_feeds(1))
        self.scheduler.start(refresh_now=False)
        old_thread = self.scheduler.thread

        self.scheduler.update_config(interval_hours=6)

        self.assertTrue(self.scheduler.running)
        self.assertIsNot(self.scheduler.thread, old_thread)
        self.assertFalse(old_thread.is_alive())
        self.assertEqual(self.scheduler._scheduler.jobs[0].interval, 6)

    def test_needs_refresh(self):
        self.assertTrue(self.scheduler.needs_refresh(NOW))

        self.scheduler.last_refresh = NOW - timedelta(hours=2)
        self.assertFalse(self.scheduler.needs_refresh(NOW))

        self.scheduler.last_refresh = NOW - timedelta(hours=3)
        self.assertTrue(self.scheduler.needs_refresh(NOW))

    def test_to_local(self):
        scheduler = FeedScheduler(timezone="Asia/Kolkata")
        local = scheduler.to_local(NOW)
        self.assertEqual((local.hour, local.minute), (17, 30))
        self.assertIsNone(scheduler.to_local(None))


class TestRefreshTimeFormatting(unittest.TestCase):

    def test_time_until_refresh(self):
        self.assertEqual(format_time_until_refresh(None, NOW), "Unknown")
        self.assertEqual(format_time_until_refresh(NOW - timedelta(minutes=1), NOW), "Refreshing soon...")
        self.assertEqual(format_time_until_refresh(NOW, NOW), "Refreshing soon...")
        self.assertEqual(format_time_until_refresh(NOW + timedelta(hours=2, minutes=15), NOW), "2h 15m")
        self.assertEqual(format_time_until_refresh(NOW + timedelta(minutes=45), NOW), "45m")

    def test_time_since_refresh(self):
        self.assertEqual(format_time_since_refresh(None, NOW), "Never")
        self.assertEqual(format_time_since_refresh(NOW - timedelta(hours=2, minutes=15), NOW), "2h 15m ago")
        self.assertEqual(format_time_since_refresh(NOW - timedelta(minutes=45), NOW), "45m ago")


class TestInitializeScheduler(unittest.TestCase):

    def test_reads_scheduler_settings(self):
        values = {
            "scheduler.interval_hours": 6,
            "scheduler.max_retries": 2,
            "scheduler.retry_delay_seconds": 10,
            "scheduler.timezone": "Europe/Berlin",
            "scheduler.max_workers": 4,
        }
        config_manager = MagicMock()
        config_manager.get_config_value.side_effect = lambda key, default=None: values.get(key, default)
        refresh = MagicMock()

        scheduler = initialize_scheduler(config_manager, refresh)

        self.assertEqual(scheduler.config, {"interval_hours": 6, "max_retries": 2, "retry_delay_seconds": 10})
        self.assertEqual(scheduler.max_workers, 4)
        self.assertEqual(scheduler.timezone, "Europe/Berlin")
        self.assertIs(scheduler.refresh_func, refresh)


if __name__ == '__main__':
    unittest.main()
