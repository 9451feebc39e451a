"""Tier-gated fan groups.

An owner creates a fan group with a minimum fan tier; a user may join only
with a fan status for that owner at or above the tier. Message delivery is
not handled here, only membership.
"""

import sqlite3
from datetime import datetime
from typing import Any, Dict, Optional

import structlog

from clipfeed import fans, storage
from clipfeed.backend.utils.errors import ForbiddenError, InvalidInputError, NotFoundError
from clipfeed.models.social_models import format_timestamp

logger = structlog.get_logger(__name__)

DEFAULT_MAX_MEMBERS = 500


def _require_group(conn: sqlite3.Connection, group_id: int) -> Dict[str, Any]:
    row = conn.execute("""
        SELECT g.id, g.owner_user_id, g.name, g.description, g.min_tier_required,
               g.max_members, g.created_at,
               (SELECT COUNT(*) FROM fan_group_members m WHERE m.group_id = g.id) AS member_count
        FROM fan_groups g
        WHERE g.id = ?
    """, (group_id,)).fetchone()

    if row is None:
        raise NotFoundError(f"Fan group {group_id} not found", field='group_id')
    return dict(row)


def create_fan_group(
    conn: sqlite3.Connection,
    owner_id: int,
    min_tier_required: str,
    name: Optional[str] = None,
    description: Optional[str] = None,
    max_members: int = DEFAULT_MAX_MEMBERS,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Create a fan group for an owner, who joins it as admin.

    Raises:
        NotFoundError: Unknown owner
        InvalidInputError: Unknown tier or max_members < 1
    """
    storage.require_user(conn, owner_id, field='owner_id')

    tiers = fans.fetch_fan_tiers(conn)
    tier = next((t for t in tiers if t.key == min_tier_required), None)
    if tier is None:
        raise InvalidInputError(
            f"min_tier_required must be one of: {', '.join(t.key for t in tiers)}",
            field='min_tier_required'
        )
    if max_members < 1:
        raise InvalidInputError("max_members must be at least 1", field='max_members')

    timestamp = format_timestamp(now) if now is not None else None
    try:
        cursor = conn.execute("""
            INSERT INTO fan_groups (owner_user_id, name, description, min_tier_required, max_members, created_at)
            VALUES (?, ?, ?, ?, ?, COALESCE(?, strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now')))
        """, (owner_id, name or f"{tier.badge_name} Group", description, tier.key, max_members, timestamp))
        group_id = cursor.lastrowid

        conn.execute("""
            INSERT INTO fan_group_members (group_id, user_id, role, joined_at)
            VALUES (?, ?, 'admin', COALESCE(?, strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now')))
        """, (group_id, owner_id, timestamp))
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise

    logger.info("fan_group_created", group_id=group_id, owner_id=owner_id, min_tier_required=tier.key)
    return _require_group(conn, group_id)


def get_fan_group(conn: sqlite3.Connection, group_id: int) -> Dict[str, Any]:
    """A fan group with its members, admins first."""
    group = _require_group(conn, group_id)
    rows = conn.execute("""
        SELECT m.user_id, u.username, m.role, m.joined_at
        FROM fan_group_members m
        JOIN users u ON m.user_id = u.id
        WHERE m.group_id = ?
        ORDER BY m.role = 'admin' DESC, m.joined_at ASC, m.user_id ASC
    """, (group_id,)).fetchall()
    group['members'] = [dict(row) for row in rows]
    return group


def join_fan_group(
    conn: sqlite3.Connection,
    user_id: int,
    group_id: int,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Add a fan to a group after checking their tier for the group's owner.

    Joining a group the user already belongs to returns the existing
    membership with already_member set.

    Raises:
        NotFoundError: Unknown user or group
        ForbiddenError: No fan status for the owner, tier below the
                        requirement, or group full
    """
    storage.require_user(conn, user_id)
    group = _require_group(conn, group_id)

    existing = conn.execute(
        "SELECT role, joined_at FROM fan_group_members WHERE group_id = ? AND user_id = ?",
        (group_id, user_id)
    ).fetchone()
    if existing is not None:
        return {
            'group_id': group_id,
            'user_id': user_id,
            'role': existing['role'],
            'joined_at': existing['joined_at'],
            'already_member': True,
        }

    fan_tier = fans.get_fan_tier_key(conn, user_id, group['owner_user_id'])
    if fan_tier is None:
        raise ForbiddenError("You must be a fan to join this group", field='user_id')

    if not fans.tier_meets(fan_tier, group['min_tier_required'], fans.fetch_fan_tiers(conn)):
        logger.info(
            "fan_group_join_denied",
            user_id=user_id,
            group_id=group_id,
            fan_tier=fan_tier,
            min_tier_required=group['min_tier_required']
        )
        raise ForbiddenError(
            f"You need to be at least {group['min_tier_required']} tier", field='user_id'
        )

    if group['member_count'] >= group['max_members']:
        raise ForbiddenError("This fan group is full", field='group_id')

    timestamp = format_timestamp(now) if now is not None else None
    row = conn.execute("""
        INSERT INTO fan_group_members (group_id, user_id, role, joined_at)
        VALUES (?, ?, 'fan', COALESCE(?, strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now')))
        RETURNING role, joined_at
    """, (group_id, user_id, timestamp)).fetchone()
    conn.commit()

    logger.info("fan_group_joined", user_id=user_id, group_id=group_id, fan_tier=fan_tier)

    return {
        'group_id': group_id,
        'user_id': user_id,
        'role': row['role'],
        'joined_at': row['joined_at'],
        'already_member': False,
    }
