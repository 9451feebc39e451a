"""Typed access to tunable values in the system_config table.

Every key has a code default in CONFIG_DEFAULTS, so a missing row or a value
that does not parse falls back to the default instead of failing the request.
"""

import sqlite3
from typing import Any, Dict, Optional

from clipfeed.backend.db.connection import get_config
from clipfeed.backend.utils.logging_config import get_logger

logger = get_logger(__name__)


CONFIG_DEFAULTS: Dict[str, Any] = {
    'mood_lookback': 10,
    'feed_following_pool_size': 50,
    'feed_discovery_pool_size': 30,
    'discover_pool_size': 100,
    'trending_window_hours': 24,
    'feed_timezone': 'UTC',
    'comment_base_score': 10.0,
    'fan_tier_bonus_unit': 20.0,
    'untiered_fan_bonus_multiplier': 0.0,
    'high_aura_threshold': 800,
}


def _get_config_value(conn: sqlite3.Connection, key: str) -> Optional[str]:
    try:
        return get_config(key, conn)
    except KeyError:
        return None


def get_config_int(conn: sqlite3.Connection, key: str, default: Optional[int] = None) -> int:
    """Get an integer config value.

    Args:
        conn: Database connection
        key: Configuration key
        default: Fallback; CONFIG_DEFAULTS[key] when None

    Returns:
        Integer value
    """
    if default is None:
        default = CONFIG_DEFAULTS[key]

    value = _get_config_value(conn, key)
    if value is None:
        return default

    try:
        return int(value)
    except (ValueError, TypeError):
        logger.warning("config_value_malformed", key=key, value=value, default=default)
        return default


def get_config_float(conn: sqlite3.Connection, key: str, default: Optional[float] = None) -> float:
    """Get a float config value, falling back like get_config_int."""
    if default is None:
        default = CONFIG_DEFAULTS[key]

    value = _get_config_value(conn, key)
    if value is None:
        return default

    try:
        return float(value)
    except (ValueError, TypeError):
        logger.warning("config_value_malformed", key=key, value=value, default=default)
        return default


def get_config_str(conn: sqlite3.Connection, key: str, default: Optional[str] = None) -> str:
    """Get a string config value."""
    if default is None:
        default = CONFIG_DEFAULTS[key]

    value = _get_config_value(conn, key)
    if value is None or not str(value).strip():
        return default
    return str(value).strip()
