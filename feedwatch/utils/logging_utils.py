"""
Logging utilities for feedwatch.
Contains helper functions for consistent logging across modules.
"""
import logging
import os
from logging.handlers import TimedRotatingFileHandler
from typing import Optional


def log_fetch_attempt(logger: logging.Logger, title: str, attempt: int, max_attempts: int) -> None:
    """
    Log a feed refresh attempt.

    Args:
        logger: Logger instance to use
        title: Title of the feed being refreshed
        attempt: Current attempt number
        max_attempts: Maximum number of attempts
    """
    logger.info(f"Refreshing feed \"{title}\" (attempt {attempt}/{max_attempts})")


def log_fetch_success(logger: logging.Logger, url: str, content_length: int, duration: float) -> None:
    """
    Log a successful HTTP fetch.

    Args:
        logger: Logger instance to use
        url: URL that was fetched
        content_length: Length of content received
        duration: Time taken for fetch
    """
    logger.info(f"Fetched {url}: {format_bytes(content_length)} in {duration:.2f}s")


def log_fetch_failure(logger: logging.Logger, title: str, error: str, attempts: int) -> None:
    """
    Log a feed that failed every refresh attempt.

    Args:
        logger: Logger instance to use
        title: Title of the feed that failed
        error: Error message
        attempts: Number of attempts made
    """
    logger.error(f"Failed to refresh feed \"{title}\" after {attempts} attempts: {error}")


def log_scheduler_event(logger: logging.Logger, event: str, details: Optional[str] = None) -> None:
    """
    Log scheduler events.

    Args:
        logger: Logger instance to use
        event: Event type (started, stopped, refreshed, etc.)
        details: Optional additional details
    """
    message = f"FeedScheduler {event}"
    if details:
        message += f": {details}"

    logger.info(message)


def log_refresh_summary(logger: logging.Logger, summary: dict) -> None:
    """
    Log the outcome of a refresh cycle.

    Args:
        logger: Logger instance to use
        summary: Dictionary with total, succeeded, failed and duration_seconds
    """
    total = summary.get('total', 0)
    succeeded = summary.get('succeeded', 0)
    failed = summary.get('failed', 0)
    duration = summary.get('duration_seconds', 0.0)

    logger.info(f"Refresh cycle completed in {format_duration(duration)}: {succeeded}/{total} feeds refreshed ({failed} failed)")

    if total and failed == total:
        logger.warning("Every feed failed to refresh in this cycle")


def log_storage_results(logger: logging.Logger, feed_id: str, stats: dict) -> None:
    """
    Log article storage results.

    Args:
        logger: Logger instance to use
        feed_id: Feed the articles came from
        stats: Storage statistics dictionary
    """
    new_count = stats.get('new_articles', 0)
    duplicate_count = stats.get('duplicates_found', 0)

    logger.info(f"Stored articles for {feed_id}: {new_count} new ({duplicate_count} duplicates)")


def setup_module_logger(module_name: str, level: str = "INFO") -> logging.Logger:
    """
    Setup a logger for a specific module.

    Args:
        module_name: Name of the module
        level: Logging level. Accepted values are "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL".

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(module_name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger


def format_bytes(byte_count: int) -> str:
    """
    Format byte count in human-readable format.

    Args:
        byte_count: Number of bytes

    Returns:
        Formatted string (e.g., "1.2 KB", "3.4 MB")
    """
    if byte_count == 0:
        return "0 B"

    sizes = ["B", "KB", "MB", "GB"]
    i = 0

    while byte_count >= 1024 and i < len(sizes) - 1:
        byte_count /= 1024.0
        i += 1

    return f"{byte_count:.1f} {sizes[i]}"


def format_duration(seconds: float) -> str:
    """
    Format duration in human-readable format.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (e.g., "2m 30s", "1h 5m")
    """
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes = int(seconds // 60)
    remaining_seconds = int(seconds % 60)

    if minutes < 60:
        return f"{minutes}m {remaining_seconds}s"

    hours = int(minutes // 60)
    remaining_minutes = int(minutes % 60)

    return f"{hours}h {remaining_minutes}m"


def setup_logging(log_level: str = "INFO", log_dir: str = "logs") -> logging.Logger:
    """
    Configure console and file logging.

    Args:
        log_level: Minimum logging level (e.g., "INFO", "DEBUG")
        log_dir: Directory to store log files

    Returns:
        The configured root logger instance.
    """
    os.makedirs(log_dir, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    root_logger.addHandler(console_handler)

    # Daily rotation
    file_handler = TimedRotatingFileHandler(os.path.join(log_dir, 'feedwatch.log'), when='midnight', interval=1, backupCount=7)
    file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    root_logger.addHandler(file_handler)

    root_logger.info(f"Logging configured to level {log_level.upper()}. Log files in {log_dir}")
    return root_logger
