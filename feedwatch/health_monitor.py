"""
Feed health monitoring.

A feed's health status is derived from the time elapsed since its last
successful fetch:

    elapsed <= 6 hours   -> active
    elapsed <= 24 hours  -> warning
    otherwise            -> error
"""
import copy
import logging
import math
from datetime import datetime
from typing import Dict, List, Any, Optional

from feedwatch.utils.helpers import utc_now, ensure_utc, pluralize

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "active"
STATUS_WARNING = "warning"
STATUS_ERROR = "error"

HEALTH_STATUSES = (STATUS_ACTIVE, STATUS_WARNING, STATUS_ERROR)

DEFAULT_ACTIVE_HOURS = 6
DEFAULT_WARNING_HOURS = 24

_STATUS_TEXT = {
    STATUS_ACTIVE: "Active",
    STATUS_WARNING: "Warning",
    STATUS_ERROR: "Error",
}


def hours_since(moment: datetime, now: Optional[datetime] = None) -> float:
    now = ensure_utc(now or utc_now())
    return (now - ensure_utc(moment)).total_seconds() / 3600


def check_rss_health(last_successful_fetch: datetime, now: Optional[datetime] = None,
                     active_hours: float = DEFAULT_ACTIVE_HOURS,
                     warning_hours: float = DEFAULT_WARNING_HOURS) -> str:
    """
    Classify a feed from the time of its last successful fetch.

    Args:
        last_successful_fetch: When the feed last returned data
        now: Reference time (defaults to the current UTC time)
        active_hours: Upper bound (inclusive) of the active window
        warning_hours: Upper bound (inclusive) of the warning window

    Returns:
        One of "active", "warning" or "error"
    """
    elapsed = hours_since(last_successful_fetch, now)

    if elapsed <= active_hours:
        return STATUS_ACTIVE
    if elapsed <= warning_hours:
        return STATUS_WARNING
    return STATUS_ERROR


def format_time_ago(date: datetime, now: Optional[datetime] = None) -> str:
    """
    Format a past moment relative to now.

    Returns:
        "N minute(s) ago" under an hour, "N hour(s) ago" under a day, else "N day(s) ago"
    """
    now = ensure_utc(now or utc_now())
    diff_seconds = (now - ensure_utc(date)).total_seconds()
    diff_hours = math.floor(diff_seconds / 3600)
    diff_days = math.floor(diff_hours / 24)

    if diff_hours < 1:
        return f"{pluralize(math.floor(diff_seconds / 60), 'minute')} ago"
    if diff_days < 1:
        return f"{pluralize(diff_hours, 'hour')} ago"
    return f"{pluralize(diff_days, 'day')} ago"


def update_rss_health(feed: Dict[str, Any], now: Optional[datetime] = None,
                      active_hours: float = DEFAULT_ACTIVE_HOURS,
                      warning_hours: float = DEFAULT_WARNING_HOURS) -> Dict[str, Any]:
    """
    Recompute the health status and message of a feed record.

    Args:
        feed: Feed record
        now: Reference time

    Returns:
        Copy of the feed with an updated health dict
    """
    now = now or utc_now()
    last_success = feed['health']['last_successful_fetch']
    elapsed = hours_since(last_success, now)
    status = check_rss_health(last_success, now, active_hours, warning_hours)

    if status == STATUS_WARNING:
        message = f"No data received in {math.floor(elapsed)} hours"
    elif status == STATUS_ERROR:
        message = f"No data received in {pluralize(math.floor(elapsed / 24), 'day')}"
    else:
        message = f"Last updated {format_time_ago(last_success, now)}"

    updated = copy.copy(feed)
    updated['health'] = dict(feed['health'], status=status, message=message)
    return updated


def monitor_rss_health(feeds: List[Dict[str, Any]], now: Optional[datetime] = None,
                       active_hours: float = DEFAULT_ACTIVE_HOURS,
                       warning_hours: float = DEFAULT_WARNING_HOURS) -> List[Dict[str, Any]]:
    """Recompute health for every feed."""
    now = now or utc_now()
    return [update_rss_health(feed, now, active_hours, warning_hours) for feed in feeds]


def get_feed_health_stats(feeds: List[Dict[str, Any]]) -> Dict[str, int]:
    """
    Count feeds per health status and activation state.

    Returns:
        Dictionary with total, active, warning, error, active_feeds and inactive_feeds
    """
    total = len(feeds)
    statuses = [feed['health']['status'] for feed in feeds]
    active_feeds = sum(1 for feed in feeds if feed.get('is_active'))

    return {
        "total": total,
        "active": statuses.count(STATUS_ACTIVE),
        "warning": statuses.count(STATUS_WARNING),
        "error": statuses.count(STATUS_ERROR),
        "active_feeds": active_feeds,
        "inactive_feeds": total - active_feeds,
    }


def get_status_text(status: str) -> str:
    return _STATUS_TEXT.get(status, "Unknown")


def get_health_label(status: str, active_hours: float = DEFAULT_ACTIVE_HOURS,
                     warning_hours: float = DEFAULT_WARNING_HOURS) -> str:
    """Describe a status, naming the threshold the feed has passed."""
    labels = {
        STATUS_ACTIVE: "Active - Working normally",
        STATUS_WARNING: f"Warning - No data for {active_hours:g}+ hours",
        STATUS_ERROR: f"Error - No data for {warning_hours:g}+ hours",
    }
    return labels.get(status, "Unknown status")
