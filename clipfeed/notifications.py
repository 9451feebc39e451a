"""Notification sink.

notify() stores an in-app notification for a user. It is fire-and-forget:
a failed write is logged and swallowed so the operation that triggered it
(a tier promotion, a new comment) still succeeds.
"""

import json
import sqlite3
from datetime import datetime
from typing import Any, Dict, Optional

import structlog

from clipfeed.models.social_models import format_timestamp

logger = structlog.get_logger(__name__)

NOTIFICATION_TIER_PROMOTION = 'tier_promotion'
NOTIFICATION_NEW_COMMENT = 'new_comment'


def notify(
    conn: sqlite3.Connection,
    user_id: int,
    notification_type: str,
    message: str,
    payload: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Optional[int]:
    """Store a notification and commit it.

    Call only outside an open transaction, after the triggering write has
    been committed.

    Returns:
        The notification id, or None when the write failed
    """
    created_at = format_timestamp(now) if now is not None else None
    try:
        cursor = conn.execute("""
            INSERT INTO notifications (user_id, type, message, payload, created_at)
            VALUES (?, ?, ?, ?, COALESCE(?, strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now')))
        """, (user_id, notification_type, message, json.dumps(payload or {}), created_at))
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        logger.warning(
            "notification_failed",
            user_id=user_id,
            notification_type=notification_type,
            error=str(e)
        )
        return None

    logger.debug("notification_sent", user_id=user_id, notification_type=notification_type)
    return cursor.lastrowid
