"""
Unit tests for the health monitor module.
"""

import unittest
import sys
import os
from datetime import datetime, timedelta

import pytz

# Add project root to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from feedwatch.health_monitor import (
    check_rss_health,
    update_rss_health,
    monitor_rss_health,
    get_feed_health_stats,
    get_status_text,
    get_health_label,
    format_time_ago
)

NOW = datetime(2024, 1, 10, 12, 0, 0, tzinfo=pytz.utc)


def make_feed(hours_since_success, status="active", is_active=True, feed_id="rss_1"):
    return {
        "id": feed_id,
        "title": "Example Feed",
        "url": "https://example.com/feed",
        "category": "Tech News",
        "is_active": is_active,
        "health": {
            "is_valid": True,
            "status": status,
            "last_fetch": NOW,
            "last_successful_fetch": NOW - timedelta(hours=hours_since_success),
            "error_count": 0,
            "message": "",
        },
        "last_updated": NOW,
        "article_count": 3,
    }


class TestCheckRSSHealth(unittest.TestCase):

    def test_recent_fetch_is_active(self):
        self.assertEqual(check_rss_health(NOW - timedelta(hours=1), NOW), "active")

    def test_six_hours_is_still_active(self):
        self.assertEqual(check_rss_health(NOW - timedelta(hours=6), NOW), "active")

    def test_just_over_six_hours_is_warning(self):
        self.assertEqual(check_rss_health(NOW - timedelta(hours=6, minutes=1), NOW), "warning")

    def test_twenty_four_hours_is_still_warning(self):
        self.assertEqual(check_rss_health(NOW - timedelta(hours=24), NOW), "warning")

    def test_older_than_a_day_is_error(self):
        self.assertEqual(check_rss_health(NOW - timedelta(hours=25), NOW), "error")

    def test_custom_thresholds(self):
        last = NOW - timedelta(hours=3)
        self.assertEqual(check_rss_health(last, NOW, active_hours=2, warning_hours=4), "warning")

    def test_naive_datetime_treated_as_utc(self):
        naive = datetime(2024, 1, 10, 11, 0, 0)
        self.assertEqual(check_rss_health(naive, NOW), "active")


class TestUpdateRSSHealth(unittest.TestCase):

    def test_active_message(self):
        updated = update_rss_health(make_feed(2, status="error"), NOW)

        self.assertEqual(updated["health"]["status"], "active")
        self.assertEqual(updated["health"]["message"], "Last updated 2 hours ago")

    def test_warning_message(self):
        updated = update_rss_health(make_feed(10.5), NOW)

        self.assertEqual(updated["health"]["status"], "warning")
        self.assertEqual(updated["health"]["message"], "No data received in 10 hours")

    def test_error_message_single_day(self):
        updated = update_rss_health(make_feed(30), NOW)

        self.assertEqual(updated["health"]["status"], "error")
        self.assertEqual(updated["health"]["message"], "No data received in 1 day")

    def test_error_message_several_days(self):
        updated = update_rss_health(make_feed(72), NOW)

        self.assertEqual(updated["health"]["message"], "No data received in 3 days")

    def test_input_not_mutated(self):
        feed = make_feed(30, status="active")
        update_rss_health(feed, NOW)

        self.assertEqual(feed["health"]["status"], "active")
        self.assertEqual(feed["health"]["message"], "")

    def test_monitor_updates_every_feed(self):
        feeds = [make_feed(1, feed_id="a"), make_feed(12, feed_id="b"), make_feed(48, feed_id="c")]

        updated = monitor_rss_health(feeds, NOW)

        self.assertEqual([f["health"]["status"] for f in updated], ["active", "warning", "error"])
        self.assertEqual([f["id"] for f in updated], ["a", "b", "c"])


class TestHealthStats(unittest.TestCase):

    def test_counts(self):
        feeds = [
            make_feed(1, status="active"),
            make_feed(1, status="active", is_active=False),
            make_feed(12, status="warning"),
            make_feed(48, status="error", is_active=False),
        ]

        stats = get_feed_health_stats(feeds)

        self.assertEqual(stats, {
            "total": 4,
            "active": 2,
            "warning": 1,
            "error": 1,
            "active_feeds": 2,
            "inactive_feeds": 2,
        })

    def test_empty(self):
        stats = get_feed_health_stats([])
        self.assertEqual(stats["total"], 0)
        self.assertEqual(stats["inactive_feeds"], 0)


class TestFormatting(unittest.TestCase):

    def test_status_text(self):
        self.assertEqual(get_status_text("active"), "Active")
        self.assertEqual(get_status_text("warning"), "Warning")
        self.assertEqual(get_status_text("error"), "Error")
        self.assertEqual(get_status_text("bogus"), "Unknown")

    def test_health_label(self):
        self.assertEqual(get_health_label("warning"), "Warning - No data for 6+ hours")
        self.assertEqual(get_health_label("error"), "Error - No data for 24+ hours")
        self.assertEqual(get_health_label(None), "Unknown status")

    def test_health_label_follows_thresholds(self):
        self.assertEqual(get_health_label("warning", active_hours=2, warning_hours=12),
                         "Warning - No data for 2+ hours")
        self.assertEqual(get_health_label("error", active_hours=2, warning_hours=12),
                         "Error - No data for 12+ hours")
        self.assertEqual(get_health_label("warning", active_hours=1.5), "Warning - No data for 1.5+ hours")

    def test_time_ago_minutes(self):
        self.assertEqual(format_time_ago(NOW - timedelta(minutes=30), NOW), "30 minutes ago")
        self.assertEqual(format_time_ago(NOW - timedelta(minutes=1), NOW), "1 minute ago")
        self.assertEqual(format_time_ago(NOW, NOW), "0 minutes ago")

    def test_time_ago_hours(self):
        self.assertEqual(format_time_ago(NOW - timedelta(hours=1), NOW), "1 hour ago")
        self.assertEqual(format_time_ago(NOW - timedelta(hours=23, minutes=59), NOW), "23 hours ago")

    def test_time_ago_days(self):
        self.assertEqual(format_time_ago(NOW - timedelta(hours=24), NOW), "1 day ago")
        self.assertEqual(format_time_ago(NOW - timedelta(hours=49), NOW), "2 days ago")


if __name__ == '__main__':
    unittest.main()
