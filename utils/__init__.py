"""Shared utilities."""

from utils.timezone import now_utc, to_utc, parse_iso, seconds_until
from utils.logging_config import configure_logging

__all__ = ["now_utc", "to_utc", "parse_iso", "seconds_until", "configure_logging"]
