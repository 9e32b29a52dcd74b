"""
Unit tests for the configuration manager.
"""

import unittest
import json
import tempfile
import shutil
import sys
import os
from json.decoder import JSONDecodeError

# Add project root to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from feedwatch.config_manager import ConfigManager, merge_dicts, DEFAULT_SETTINGS


class TestConfigManager(unittest.TestCase):
    """Test cases for ConfigManager class."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.settings_path = os.path.join(self.temp_dir, 'settings.json')
        self.feeds_path = os.path.join(self.temp_dir, 'feeds.json')

        self.sample_settings = {
            "networking": {
                "timeout_seconds": 10,
                "proxy": {"enabled": False}
            },
            "scheduler": {
                "interval_hours": 6
            },
            "storage": {
                "base_dir": "./data"
            }
        }

        self.sample_feeds = {
            "feeds": [
                {"url": "https://example.com/feed", "category": "News", "title": "Example"},
                {"url": "https://example.org/rss", "category": "Tech", "tags": ["python"]},
                {"url": "https://example.com/feed", "category": "News"}
            ]
        }

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir)

    def _write(self, settings=None, feeds=None):
        with open(self.settings_path, 'w', encoding='utf-8') as f:
            json.dump(self.sample_settings if settings is None else settings, f)
        with open(self.feeds_path, 'w', encoding='utf-8') as f:
            json.dump(self.sample_feeds if feeds is None else feeds, f)

    def _load(self, settings=None, feeds=None):
        self._write(settings, feeds)
        return ConfigManager(self.settings_path, self.feeds_path)

    def test_load_valid_config(self):
        config = self._load()

        self.assertEqual(config.get_config_value("networking.timeout_seconds"), 10)
        self.assertEqual(config.get_config_value("scheduler.interval_hours"), 6)

    def test_defaults_are_merged(self):
        config = self._load()

        self.assertEqual(config.get_config_value("scheduler.max_retries"), 3)
        self.assertEqual(config.get_config_value("scheduler.retry_delay_seconds"), 30)
        self.assertEqual(config.get_config_value("health.active_hours"), 6)
        self.assertEqual(config.get_config_value("health.warning_hours"), 24)
        self.assertEqual(config.get_config_value("import.recency_days"), 7)
        self.assertEqual(config.get_config_value("logging.level"), "INFO")

    def test_defaults_are_not_shared(self):
        config = self._load(settings={})
        config.settings["networking"]["proxy"]["enabled"] = True

        self.assertFalse(DEFAULT_SETTINGS["networking"]["proxy"]["enabled"])

    def test_missing_value_returns_default(self):
        config = self._load()

        self.assertIsNone(config.get_config_value("nonexistent.key"))
        self.assertEqual(config.get_config_value("scheduler.interval_hours.deeper", "fallback"), "fallback")

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            ConfigManager(self.settings_path, self.feeds_path)

    def test_invalid_json(self):
        self._write()
        with open(self.settings_path, 'w', encoding='utf-8') as f:
            f.write("{invalid json")

        with self.assertRaises(JSONDecodeError):
            ConfigManager(self.settings_path, self.feeds_path)

    def test_settings_must_be_object(self):
        with self.assertRaises(TypeError):
            self._load(settings=[1, 2, 3])

    def test_section_must_be_object(self):
        with self.assertRaises(TypeError):
            self._load(settings={"scheduler": "often"})

    def test_invalid_numbers(self):
        bad_settings = [
            {"networking": {"timeout_seconds": 0}},
            {"networking": {"timeout_seconds": "30"}},
            {"scheduler": {"interval_hours": -1}},
            {"scheduler": {"max_retries": 1.5}},
            {"scheduler": {"max_retries": True}},
            {"scheduler": {"retry_delay_seconds": -5}},
            {"import": {"recency_days": 0}},
            {"storage": {"base_dir": "./data", "cleanup_days": 0}},
        ]
        for settings in bad_settings:
            with self.subTest(settings=settings):
                with self.assertRaises((TypeError, ValueError)):
                    self._load(settings=settings)

    def test_health_thresholds_order(self):
        with self.assertRaises(ValueError):
            self._load(settings={"health": {"active_hours": 30, "warning_hours": 24}})

    def test_invalid_proxy(self):
        settings = {"networking": {"proxy": {"enabled": True, "host": "proxy.local", "port": 70000}}}
        with self.assertRaises(ValueError):
            self._load(settings=settings)

    def test_valid_proxy(self):
        settings = {"networking": {"proxy": {"enabled": True, "host": "proxy.local", "port": 3128}}}
        config = self._load(settings=settings)
        self.assertEqual(config.get_config_value("networking.proxy.port"), 3128)

    def test_feeds_section_required(self):
        with self.assertRaises(ValueError):
            self._load(feeds={"sources": []})

    def test_feed_entry_validation(self):
        bad_feeds = [
            {"feeds": "https://example.com/feed"},
            {"feeds": ["https://example.com/feed"]},
            {"feeds": [{"url": "example.com/feed", "category": "News"}]},
            {"feeds": [{"url": "https://example.com/feed", "category": "  "}]},
            {"feeds": [{"url": "https://example.com/feed", "category": "News", "title": 5}]},
            {"feeds": [{"url": "https://example.com/feed", "category": "News", "tags": "python"}]},
        ]
        for feeds in bad_feeds:
            with self.subTest(feeds=feeds):
                with self.assertRaises((TypeError, ValueError)):
                    self._load(feeds=feeds)

    def test_get_feed_entries_drops_duplicates(self):
        config = self._load()

        entries = config.get_feed_entries()

        self.assertEqual([e["url"] for e in entries], ["https://example.com/feed", "https://example.org/rss"])
        self.assertEqual(entries[0]["title"], "Example")
        self.assertEqual(entries[1]["tags"], ["python"])


class TestMergeDicts(unittest.TestCase):

    def test_existing_values_win(self):
        source = {"a": {"x": 1}, "b": 2}
        merge_dicts(source, {"a": {"x": 10, "y": 20}, "c": 3})
        self.assertEqual(source, {"a": {"x": 1, "y": 20}, "b": 2, "c": 3})


if __name__ == '__main__':
    unittest.main()
