"""Logging setup, progress counting and configuration dumps for the migrator."""

import copy
import logging
import logging.handlers
import threading
import time
from collections import Counter
from typing import Any, Dict, Optional

import colorlog

LOGGER_NAME = 'content_store_migrator'

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

LOG_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'red,bg_white',
}

SENSITIVE_KEYS = ('token', 'cookie', 'password', 'secret', 'authorization')


def resolve_level(verbosity: int = 0, level: Optional[str] = None) -> int:
    """Map an explicit level name or a -v count to a logging level.

    Raises:
        ValueError: If the level name is unknown
    """
    if level:
        name = level.upper()
        if name not in LOG_COLORS:
            raise ValueError(f"Invalid log level '{level}'. Must be one of: {sorted(LOG_COLORS)}")
        return getattr(logging, name)
    if verbosity >= 2:
        return logging.DEBUG
    if verbosity == 1:
        return logging.INFO
    return logging.WARNING


def setup_logging(
    verbosity: int = 0,
    log_file: Optional[str] = None,
    level: Optional[str] = None,
    log_format: str = DEFAULT_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT
) -> logging.Logger:
    """
    Configure the migrator logger with a colored console handler.

    Calling it again replaces the handlers, so the CLI can start with
    command line verbosity and switch to the configured level and log file
    once the configuration is loaded.

    Args:
        verbosity: Number of -v flags (0=WARNING, 1=INFO, 2+=DEBUG)
        log_file: Optional path of a rotating log file
        level: Explicit level name, overrides verbosity
        log_format: Record format shared by console and file
        date_format: Timestamp format

    Returns:
        The configured package logger
    """
    log_level = resolve_level(verbosity, level)

    # Third-party loggers (requests, urllib3) stay at WARNING
    logging.basicConfig(level=logging.WARNING, format=log_format, datefmt=date_format)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers.clear()

    console = colorlog.StreamHandler()
    console.setLevel(log_level)
    console.setFormatter(colorlog.ColoredFormatter(
        fmt='%(log_color)s' + log_format,
        datefmt=date_format,
        log_colors=LOG_COLORS
    ))
    logger.addHandler(console)

    if log_file:
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding='utf-8'
            )
        except OSError as e:
            logger.warning(f"Failed to set up file logging: {e}")
        else:
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter(fmt=log_format, datefmt=date_format))
            logger.addHandler(file_handler)
            logger.info(f"Logging to file: {log_file}")

    logger.debug(f"Log level: {logging.getLevelName(log_level)}")
    return logger


class ProgressCounter:
    """Thread-safe tally of finished work items, keyed by outcome.

    Used as a context manager around a batch; a summary line is logged on
    exit at a level that reflects how many items failed.
    """

    def __init__(self, total: int, item_type: str = 'items', every: int = 10):
        self.total = total
        self.item_type = item_type
        self.every = every
        self.outcomes: Counter = Counter()
        self.started: Optional[float] = None
        self.logger = logging.getLogger(LOGGER_NAME)
        self._lock = threading.Lock()

    def __enter__(self) -> 'ProgressCounter':
        self.started = time.time()
        self.logger.info(f"Starting {self.total} {self.item_type}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        failed = self.outcomes.get('failed', 0)
        if failed and failed == self.total:
            log = self.logger.error
        elif failed:
            log = self.logger.warning
        else:
            log = self.logger.info

        breakdown = ', '.join(f"{count} {outcome}" for outcome, count in sorted(self.outcomes.items()))
        log(f"Finished {self.processed}/{self.total} {self.item_type} in "
            f"{format_elapsed(self.elapsed)} ({breakdown or 'nothing done'})")

    @property
    def processed(self) -> int:
        return sum(self.outcomes.values())

    @property
    def elapsed(self) -> float:
        return time.time() - self.started if self.started else 0.0

    def record(self, outcome: str) -> None:
        """Count one finished item under the given outcome name."""
        with self._lock:
            self.outcomes[outcome] += 1
            processed = self.processed

        if processed % self.every == 0 or outcome == 'failed':
            self.logger.info(
                f"Processed {processed}/{self.total} {self.item_type} (last: {outcome})"
            )

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            outcomes = dict(self.outcomes)
        return {
            'total': self.total,
            'processed': sum(outcomes.values()),
            'outcomes': outcomes,
            'elapsed_time': self.elapsed,
        }


def format_elapsed(seconds: float) -> str:
    """Format a duration as 12.3s, 4m 5s or 1h 2m 3s."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m {secs}s"


def log_section(title: str) -> None:
    logger = logging.getLogger(LOGGER_NAME)
    logger.info("=" * 60)
    logger.info(f"  {title.upper()}")
    logger.info("=" * 60)


def redact(data: Any) -> Any:
    """Return a copy of a config structure with credential values masked."""
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            if isinstance(value, str) and value and any(s in key.lower() for s in SENSITIVE_KEYS):
                masked[key] = '***REDACTED***'
            else:
                masked[key] = redact(value)
        return masked
    if isinstance(data, list):
        return [redact(item) for item in data]
    return copy.copy(data)


def log_config(config: Dict[str, Any]) -> None:
    """Log the effective configuration with credentials masked."""
    logger = logging.getLogger(LOGGER_NAME)
    config = redact(config)
    source = config.get('source', {})
    target = config.get('target', {})
    migration = config.get('migration', {})

    log_section("Configuration")
    logger.info(f"Source: {source.get('aem_author') or 'Not Set'} "
                f"(cookie: {source.get('auth_cookie') or 'Not Set'})")
    logger.info(f"Default store: {source.get('default_store') or 'Not Set'}")
    logger.info(f"Store link pattern: {source.get('store_link_pattern')}")
    logger.info(f"Target: {target.get('org') or '?'}/{target.get('repo') or '?'} "
                f"branch {target.get('branch', 'main')}, dest /{target.get('dest', '')}")
    logger.info(f"Token: {target.get('token') or 'Not Set'}")
    logger.info(f"Data directory: {migration.get('data_dir')}")
    logger.info(f"Recursive: {migration.get('recursive', False)} "
                f"(max depth: {migration.get('max_depth') or 'unlimited'})")
    logger.info(f"Concurrency: {migration.get('concurrency', 1)}")
    logger.info(f"Preview: {migration.get('preview', False)}, publish: {migration.get('publish', False)}, "
                f"reup: {migration.get('reup', False)}, dry run: {migration.get('dry_run', False)}")
    logger.info(f"Cache mode: {config.get('cache', {}).get('mode', 'use')}")


__all__ = [
    'LOGGER_NAME',
    'setup_logging',
    'resolve_level',
    'ProgressCounter',
    'format_elapsed',
    'log_section',
    'log_config',
    'redact'
]
