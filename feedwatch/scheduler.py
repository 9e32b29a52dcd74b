"""
Scheduler for feed refresh jobs.
Refreshes every tracked feed on a fixed interval, retrying failed feeds.
"""
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import pytz
import schedule

from feedwatch.utils.helpers import utc_now, ensure_utc
from feedwatch.utils.logging_utils import (
    setup_module_logger,
    log_fetch_attempt,
    log_fetch_failure,
    log_scheduler_event,
    log_refresh_summary
)

logger = setup_module_logger(__name__)

DEFAULT_CONFIG = {
    "interval_hours": 3,
    "max_retries": 3,
    "retry_delay_seconds": 30,
}


class SchedulerCallbacks:
    """
    Hooks the scheduler reports through. Any of them may be None.
    """

    def __init__(self, on_feed_refreshed: Optional[Callable[[str, bool, Optional[Dict[str, Any]]], None]] = None,
                 on_scheduler_error: Optional[Callable[[str], None]] = None,
                 on_scheduler_status: Optional[Callable[[bool], None]] = None):
        self.on_feed_refreshed = on_feed_refreshed
        self.on_scheduler_error = on_scheduler_error
        self.on_scheduler_status = on_scheduler_status


class FeedScheduler:
    """
    Periodically refreshes all tracked feeds in a background thread.
    """

    def __init__(self, interval_hours: float = 3, max_retries: int = 3, retry_delay_seconds: float = 30,
                 refresh_func: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None,
                 timezone: str = "UTC", max_workers: int = 8, poll_interval: float = 1.0):
        """
        Initialize the scheduler.

        Args:
            interval_hours: Hours between refresh cycles
            max_retries: Attempts per feed and cycle
            retry_delay_seconds: Fixed wait between attempts
            refresh_func: Callable taking a feed record and returning the refreshed record.
                          It must raise on failure.
            timezone: Timezone used when displaying refresh times
            max_workers: Upper bound on feeds refreshed concurrently
            poll_interval: Seconds between checks of the pending job
        """
        self.config = dict(DEFAULT_CONFIG)
        self.config.update(
            interval_hours=interval_hours,
            max_retries=max_retries,
            retry_delay_seconds=retry_delay_seconds
        )
        self._validate_config(self.config)

        self.refresh_func = refresh_func
        self.max_workers = max_workers
        self.poll_interval = poll_interval
        self.timezone = timezone

        self.feeds: List[Dict[str, Any]] = []
        self.running = False
        self.thread = None
        self.last_refresh: Optional[datetime] = None
        self.last_errors: Dict[str, str] = {}

        self._callbacks: Optional[SchedulerCallbacks] = None
        self._scheduler = schedule.Scheduler()
        self._stop_event = threading.Event()
        self._refresh_lock = threading.Lock()

        try:
            self.tz = pytz.timezone(timezone)
        except pytz.exceptions.UnknownTimeZoneError:
            logger.warning(f"Unknown timezone: {timezone}, using UTC")
            self.tz = pytz.utc

        logger.debug(f"FeedScheduler created with config: {self.config}")

    @staticmethod
    def _validate_config(config: Dict[str, Any]) -> None:
        if not isinstance(config["interval_hours"], (int, float)) or config["interval_hours"] <= 0:
            raise ValueError("interval_hours must be a positive number")
        if not isinstance(config["max_retries"], int) or config["max_retries"] < 1:
            raise ValueError("max_retries must be a positive integer")
        if not isinstance(config["retry_delay_seconds"], (int, float)) or config["retry_delay_seconds"] < 0:
            raise ValueError("retry_delay_seconds must be a non-negative number")

    def init(self, feeds: List[Dict[str, Any]], on_feed_refreshed=None, on_scheduler_error=None,
             on_scheduler_status=None) -> None:
        """
        Register the feeds to track and the callbacks to report through.
        """
        self.feeds = list(feeds)
        self._callbacks = SchedulerCallbacks(on_feed_refreshed, on_scheduler_error, on_scheduler_status)
        log_scheduler_event(logger, "initialized", f"{len(self.feeds)} feeds")

    def update_feeds(self, feeds: List[Dict[str, Any]]) -> None:
        """Replace the list of tracked feeds."""
        self.feeds = list(feeds)
        log_scheduler_event(logger, "updated", f"{len(self.feeds)} feeds")

    def _notify_status(self, running: bool) -> None:
        if self._callbacks and self._callbacks.on_scheduler_status:
            try:
                self._callbacks.on_scheduler_status(running)
            except Exception as e:
                logger.error(f"Status callback failed: {e}", exc_info=True)

    def _notify_error(self, message: str) -> None:
        if self._callbacks and self._callbacks.on_scheduler_error:
            try:
                self._callbacks.on_scheduler_error(message)
            except Exception as e:
                logger.error(f"Error callback failed: {e}", exc_info=True)

    def _notify_feed(self, feed_id: str, success: bool, data: Optional[Dict[str, Any]]) -> None:
        if self._callbacks and self._callbacks.on_feed_refreshed:
            try:
                self._callbacks.on_feed_refreshed(feed_id, success, data)
            except Exception as e:
                logger.error(f"Feed refreshed callback failed for {feed_id}: {e}", exc_info=True)

    def start(self, refresh_now: bool = True) -> None:
        """
        Start the scheduler in a separate thread.

        Args:
            refresh_now: Refresh all feeds as soon as the thread starts
        """
        if self.running:
            logger.warning("FeedScheduler is already running")
            return

        self.running = True
        self._notify_status(True)

        interval_hours = self.config["interval_hours"]
        self._scheduler.clear()
        self._scheduler.every(interval_hours).hours.do(self._run_refresh_safely)

        # Each run gets its own stop event so a lingering thread from a
        # previous run cannot be revived by a restart.
        self._stop_event = threading.Event()
        self.thread = threading.Thread(
            target=self._scheduler_loop,
            args=(self._stop_event, refresh_now),
            name="feed-scheduler",
            daemon=True
        )
        self.thread.start()

        log_scheduler_event(logger, "started", f"refreshing feeds every {interval_hours} hours")

    def stop(self) -> None:
        """
        Stop the scheduler.
        """
        if not self.running:
            logger.warning("FeedScheduler is not running")
            return

        self.running = False
        self._stop_event.set()
        self._notify_status(False)

        if self.thread and self.thread.is_alive() and self.thread is not threading.current_thread():
            self.thread.join(timeout=5)
            if self.thread.is_alive():
                logger.warning("Scheduler thread did not terminate cleanly, a refresh cycle is still in progress")

        self._scheduler.clear()
        log_scheduler_event(logger, "stopped")

    def _scheduler_loop(self, stop_event: threading.Event, refresh_now: bool) -> None:
        """
        Main scheduler loop running in separate thread.
        """
        logger.debug("Scheduler loop started")

        if refresh_now:
            self._run_refresh_safely()

        while not stop_event.is_set():
            try:
                self._scheduler.run_pending()
            except Exception as e:
                logger.error(f"Error in scheduler loop: {e}", exc_info=True)
            stop_event.wait(self.poll_interval)

        logger.debug("Scheduler loop stopped")

    def _run_refresh_safely(self) -> None:
        try:
            self.refresh_all_feeds()
        except Exception as e:
            message = f"Failed to complete refresh cycle: {e}"
            logger.error(message, exc_info=True)
            self._notify_error(message)

    def refresh_all_feeds(self) -> Optional[Dict[str, Any]]:
        """
        Refresh every tracked feed concurrently and wait for all of them to settle.

        Returns:
            Summary with total, succeeded, failed and duration_seconds,
            or None when there was nothing to refresh
        """
        if self._callbacks is None or not self.feeds:
            logger.info("No feeds to refresh or callbacks not set")
            return None

        if self.refresh_func is None:
            logger.error("No refresh function defined")
            return None

        with self._refresh_lock:
            feeds = list(self.feeds)
            self.last_refresh = utc_now()
            start_time = time.time()
            logger.info(f"Refreshing {len(feeds)} RSS feeds...")

            try:
                with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(feeds)))) as executor:
                    outcomes = list(executor.map(self._refresh_feed_with_retry, feeds))
            except Exception as e:
                message = f"Failed to complete refresh cycle: {e}"
                logger.error(message, exc_info=True)
                self._notify_error(message)
                return None

            succeeded = sum(1 for outcome in outcomes if outcome)
            summary = {
                "total": len(feeds),
                "succeeded": succeeded,
                "failed": len(feeds) - succeeded,
                "duration_seconds": time.time() - start_time,
            }

        log_refresh_summary(logger, summary)
        return summary

    def _refresh_feed_with_retry(self, feed: Dict[str, Any]) -> bool:
        """
        Refresh a single feed, retrying with a fixed delay.

        Returns:
            True if the feed was refreshed
        """
        max_retries = self.config["max_retries"]
        retry_delay = self.config["retry_delay_seconds"]
        title = feed.get("title") or feed.get("url")
        last_error = None

        for attempt in range(1, max_retries + 1):
            log_fetch_attempt(logger, title, attempt, max_retries)
            try:
                refreshed = self.refresh_func(feed)
            except Exception as e:
                last_error = e
                logger.warning(f"Failed to refresh feed \"{title}\" (attempt {attempt}/{max_retries}): {e}")
                if attempt < max_retries:
                    time.sleep(retry_delay)
                continue

            self.last_errors.pop(feed["id"], None)
            self._notify_feed(feed["id"], True, refreshed)
            logger.info(f"Successfully refreshed feed \"{title}\"")
            return True

        log_fetch_failure(logger, title, str(last_error), max_retries)
        self.last_errors[feed["id"]] = str(last_error)
        self._notify_feed(feed["id"], False, None)
        return False

    def get_last_error(self, feed_id: str) -> Optional[str]:
        """Error of the feed's most recent failed refresh, if its last refresh failed."""
        return self.last_errors.get(feed_id)

    def get_next_refresh(self) -> Optional[datetime]:
        if self.last_refresh is None or not self.running:
            return None
        return self.last_refresh + timedelta(hours=self.config["interval_hours"])

    def get_status(self) -> Dict[str, Any]:
        """
        Get scheduler status information.

        Returns:
            Dictionary with is_running, feed_count, last_refresh, next_refresh and config
        """
        return {
            "is_running": self.running,
            "feed_count": len(self.feeds),
            "last_refresh": self.last_refresh,
            "next_refresh": self.get_next_refresh(),
            "config": dict(self.config),
        }

    def update_config(self, **changes) -> None:
        """
        Update scheduler configuration; restarts a running scheduler when the interval changes.
        """
        unknown = set(changes) - set(DEFAULT_CONFIG)
        if unknown:
            raise ValueError(f"Unknown scheduler settings: {', '.join(sorted(unknown))}")

        new_config = dict(self.config)
        new_config.update(changes)
        self._validate_config(new_config)

        old_interval = self.config["interval_hours"]
        self.config = new_config
        log_scheduler_event(logger, "configuration updated", str(self.config))

        if self.running and old_interval != self.config["interval_hours"]:
            logger.info("Restarting scheduler due to interval change")
            self.stop()
            self.start()

    def needs_refresh(self, now: Optional[datetime] = None) -> bool:
        """True if feeds were never refreshed or a full interval has passed."""
        if self.last_refresh is None:
            return True

        now = ensure_utc(now or utc_now())
        return now - self.last_refresh >= timedelta(hours=self.config["interval_hours"])

    def to_local(self, moment: Optional[datetime]) -> Optional[datetime]:
        """Convert a UTC moment to the scheduler's display timezone."""
        if moment is None:
            return None
        return ensure_utc(moment).astimezone(self.tz)


def format_time_until_refresh(next_refresh: Optional[datetime], now: Optional[datetime] = None) -> str:
    """
    Describe the time left until the next refresh.

    Returns:
        "Unknown", "Refreshing soon...", "2h 15m" or "45m"
    """
    if next_refresh is None:
        return "Unknown"

    now = ensure_utc(now or utc_now())
    diff_seconds = (ensure_utc(next_refresh) - now).total_seconds()

    if diff_seconds <= 0:
        return "Refreshing soon..."

    hours = math.floor(diff_seconds / 3600)
    minutes = math.floor((diff_seconds % 3600) / 60)

    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_time_since_refresh(last_refresh: Optional[datetime], now: Optional[datetime] = None) -> str:
    """
    Describe the time since the last refresh.

    Returns:
        "Never", "2h 15m ago" or "45m ago"
    """
    if last_refresh is None:
        return "Never"

    now = ensure_utc(now or utc_now())
    diff_seconds = max(0.0, (now - ensure_utc(last_refresh)).total_seconds())
    hours = math.floor(diff_seconds / 3600)
    minutes = math.floor((diff_seconds % 3600) / 60)

    if hours > 0:
        return f"{hours}h {minutes}m ago"
    return f"{minutes}m ago"


def initialize_scheduler(config_manager, refresh_func: Callable[[Dict[str, Any]], Dict[str, Any]]) -> FeedScheduler:
    """
    Create a scheduler from the application settings.

    Args:
        config_manager: The ConfigManager instance with loaded settings.
        refresh_func: Called with each feed record on every refresh cycle.

    Returns:
        A configured FeedScheduler instance
    """
    scheduler = FeedScheduler(
        interval_hours=config_manager.get_config_value("scheduler.interval_hours", 3),
        max_retries=config_manager.get_config_value("scheduler.max_retries", 3),
        retry_delay_seconds=config_manager.get_config_value("scheduler.retry_delay_seconds", 30),
        refresh_func=refresh_func,
        timezone=config_manager.get_config_value("scheduler.timezone", "UTC"),
        max_workers=config_manager.get_config_value("scheduler.max_workers", 8)
    )
    logger.info(f"Scheduler initialized: every {scheduler.config['interval_hours']} hours")
    return scheduler
