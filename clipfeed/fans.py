"""Fan tier state machine.

Each (fan, owner) pair has a user_fan_status row with interaction counters
and a current tier from the fan_badges table. The tier is always the highest
tier whose min_interactions is <= total_interactions and never moves
backward.

log_interaction() appends the interaction, increments the counters and
recomputes the tier inside one BEGIN IMMEDIATE transaction, so concurrent
interactions for the same pair cannot leave a stale tier behind.
"""

import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import structlog

from clipfeed import storage
from clipfeed.backend.utils.errors import InvalidInputError, retry_with_backoff
from clipfeed.models.social_models import FanTier, format_timestamp
from clipfeed.notifications import NOTIFICATION_TIER_PROMOTION, notify

logger = structlog.get_logger(__name__)

FAN_INTERACTION_TYPES = ('comment', 'reaction', 'view', 'share', 'like')

_STATUS_COLUMNS = """
    ufs.fan_user_id, ufs.owner_user_id, ufs.total_interactions,
    ufs.comment_count, ufs.reaction_count, ufs.current_tier,
    ufs.tier_earned_at, ufs.last_interaction_at,
    fb.badge_name, fb.badge_icon, fb.badge_color, fb.priority_multiplier
"""


def fetch_fan_tiers(conn: sqlite3.Connection) -> List[FanTier]:
    """Load the tier table ordered by threshold, lowest first."""
    rows = conn.execute("""
        SELECT tier_key, badge_name, min_interactions, priority_multiplier, badge_icon, badge_color
        FROM fan_badges
        ORDER BY min_interactions ASC
    """).fetchall()

    return [
        FanTier(
            key=row['tier_key'],
            badge_name=row['badge_name'],
            min_interactions=row['min_interactions'],
            priority_multiplier=row['priority_multiplier'],
            badge_icon=row['badge_icon'],
            badge_color=row['badge_color'],
        )
        for row in rows
    ]


def tier_for_interactions(total: int, tiers: Sequence[FanTier]) -> FanTier:
    """
    Highest tier whose threshold is <= total.

    Saturates at the top tier.

    Args:
        total: Total interactions (>= 0)
        tiers: Tier table in any order

    Raises:
        InvalidInputError: If total is negative
        ValueError: If the tier table is empty

    Examples:
        >>> tier_for_interactions(9, tiers).key
        'new'
        >>> tier_for_interactions(10, tiers).key
        'active'
        >>> tier_for_interactions(10_000, tiers).key
        'die_hard'
    """
    if total < 0:
        raise InvalidInputError("total_interactions must be non-negative", field='total_interactions')
    if not tiers:
        raise ValueError("Fan tier table is empty")

    ordered = sorted(tiers, key=lambda tier: tier.min_interactions)
    current = ordered[0]
    for tier in ordered:
        if tier.min_interactions <= total:
            current = tier
    return current


def next_tier_threshold(total: int, tiers: Sequence[FanTier]) -> Optional[int]:
    """
    Smallest threshold above total, or None once the top tier is reached.

    Examples:
        >>> next_tier_threshold(12, tiers)
        50
        >>> next_tier_threshold(500, tiers) is None
        True
    """
    above = [tier.min_interactions for tier in tiers if tier.min_interactions > total]
    return min(above) if above else None


def tier_meets(fan_tier: Optional[str], required_tier: str, tiers: Sequence[FanTier]) -> bool:
    """Whether fan_tier is at or above required_tier in the tier order.

    A fan with no tier (None) never meets a requirement.

    Raises:
        InvalidInputError: If either tier key is unknown
    """
    thresholds = {tier.key: tier.min_interactions for tier in tiers}

    if required_tier not in thresholds:
        raise InvalidInputError(f"Unknown fan tier '{required_tier}'", field='min_tier_required')
    if fan_tier is None:
        return False
    if fan_tier not in thresholds:
        raise InvalidInputError(f"Unknown fan tier '{fan_tier}'", field='fan_tier')

    return thresholds[fan_tier] >= thresholds[required_tier]


def _status_from_row(row: sqlite3.Row, tiers: Sequence[FanTier]) -> Dict[str, Any]:
    status = dict(row)
    status['tier'] = status.pop('current_tier')
    threshold = next_tier_threshold(status['total_interactions'], tiers)
    status['next_tier_threshold'] = threshold
    status['interactions_to_next_tier'] = (
        threshold - status['total_interactions'] if threshold is not None else None
    )
    return status


def _fetch_status_row(conn: sqlite3.Connection, fan_id: int, owner_id: int) -> Optional[sqlite3.Row]:
    return conn.execute(f"""
        SELECT {_STATUS_COLUMNS}
        FROM user_fan_status ufs
        JOIN fan_badges fb ON ufs.current_tier = fb.tier_key
        WHERE ufs.fan_user_id = ? AND ufs.owner_user_id = ?
    """, (fan_id, owner_id)).fetchone()


def get_fan_tier_key(conn: sqlite3.Connection, fan_id: int, owner_id: int) -> Optional[str]:
    """Current tier of a fan for an owner without creating a status record."""
    row = conn.execute(
        "SELECT current_tier FROM user_fan_status WHERE fan_user_id = ? AND owner_user_id = ?",
        (fan_id, owner_id)
    ).fetchone()
    return row['current_tier'] if row else None


def _require_pair(conn: sqlite3.Connection, fan_id: int, owner_id: int) -> None:
    storage.require_user(conn, fan_id, field='fan_id')
    storage.require_user(conn, owner_id, field='owner_id')
    if fan_id == owner_id:
        raise InvalidInputError("A user cannot be a fan of themselves", field='owner_id')


def get_fan_status(conn: sqlite3.Connection, fan_id: int, owner_id: int, now: datetime) -> Dict[str, Any]:
    """
    Fan status for a (fan, owner) pair, created at the lowest tier on first query.

    Returns:
        dict with tier, badge fields, counters, tier_earned_at,
        last_interaction_at, next_tier_threshold and interactions_to_next_tier

    Raises:
        NotFoundError: If either user does not exist
        InvalidInputError: If fan_id == owner_id
    """
    _require_pair(conn, fan_id, owner_id)
    tiers = fetch_fan_tiers(conn)

    row = _fetch_status_row(conn, fan_id, owner_id)
    if row is None:
        lowest = tier_for_interactions(0, tiers)
        conn.execute("""
            INSERT OR IGNORE INTO user_fan_status
                (fan_user_id, owner_user_id, current_tier, tier_earned_at, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, (fan_id, owner_id, lowest.key, format_timestamp(now), format_timestamp(now)))
        conn.commit()
        logger.info("fan_status_created", fan_id=fan_id, owner_id=owner_id, tier=lowest.key)
        row = _fetch_status_row(conn, fan_id, owner_id)

    return _status_from_row(row, tiers)


def log_interaction(
    conn: sqlite3.Connection,
    fan_id: int,
    owner_id: int,
    interaction_type: str,
    post_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Record a fan interaction and advance the fan's tier.

    Steps, all in one BEGIN IMMEDIATE transaction:
    1. Append the interaction to fan_interactions
    2. Upsert the status row: total_interactions + 1, comment_count or
       reaction_count + 1 when the type matches (RETURNING the new counters)
    3. Recompute the tier from the returned total; on a change set
       current_tier and tier_earned_at = now

    A locked database is retried with backoff. A promotion notifies the fan
    once the transaction has committed.

    Args:
        conn: Database connection with no open transaction
        fan_id: Interacting user
        owner_id: Content owner
        interaction_type: One of FAN_INTERACTION_TYPES
        post_id: Post the interaction happened on, if any
        now: Interaction time

    Returns:
        dict with tier, previous_tier, promoted, counters and tier_earned_at

    Raises:
        InvalidInputError: Unknown interaction type, fan_id == owner_id or now missing
        NotFoundError: Unknown fan, owner or post
    """
    if interaction_type not in FAN_INTERACTION_TYPES:
        raise InvalidInputError(
            f"interaction_type must be one of: {', '.join(FAN_INTERACTION_TYPES)}",
            field='interaction_type'
        )
    if now is None:
        raise InvalidInputError("now is required", field='now')

    _require_pair(conn, fan_id, owner_id)
    if post_id is not None:
        storage.require_post(conn, post_id)

    tiers = fetch_fan_tiers(conn)
    by_key = {tier.key: tier for tier in tiers}
    lowest = tier_for_interactions(0, tiers)
    timestamp = format_timestamp(now)

    def _write() -> Dict[str, Any]:
        conn.execute("BEGIN IMMEDIATE")
        try:
            conn.execute("""
                INSERT INTO fan_interactions (fan_user_id, owner_user_id, interaction_type, post_id, created_at)
                VALUES (?, ?, ?, ?, ?)
            """, (fan_id, owner_id, interaction_type, post_id, timestamp))

            row = conn.execute("""
                INSERT INTO user_fan_status
                    (fan_user_id, owner_user_id, total_interactions, comment_count, reaction_count,
                     current_tier, tier_earned_at, last_interaction_at, created_at)
                VALUES (?, ?, 1, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (fan_user_id, owner_user_id) DO UPDATE SET
                    total_interactions = total_interactions + 1,
                    comment_count = comment_count + excluded.comment_count,
                    reaction_count = reaction_count + excluded.reaction_count,
                    last_interaction_at = excluded.last_interaction_at
                RETURNING total_interactions, comment_count, reaction_count, current_tier, tier_earned_at
            """, (
                fan_id, owner_id,
                1 if interaction_type == 'comment' else 0,
                1 if interaction_type == 'reaction' else 0,
                lowest.key, timestamp, timestamp, timestamp
            )).fetchone()

            previous_tier = row['current_tier']
            tier_earned_at = row['tier_earned_at']
            new_tier = tier_for_interactions(row['total_interactions'], tiers)

            previous = by_key.get(previous_tier)
            promoted = new_tier.key != previous_tier and (
                previous is None or new_tier.min_interactions > previous.min_interactions
            )
            if promoted:
                conn.execute("""
                    UPDATE user_fan_status
                    SET current_tier = ?, tier_earned_at = ?
                    WHERE fan_user_id = ? AND owner_user_id = ?
                """, (new_tier.key, timestamp, fan_id, owner_id))
                tier_earned_at = timestamp

            conn.commit()
        except Exception:
            conn.rollback()
            raise

        return {
            'fan_user_id': fan_id,
            'owner_user_id': owner_id,
            'interaction_type': interaction_type,
            'total_interactions': row['total_interactions'],
            'comment_count': row['comment_count'],
            'reaction_count': row['reaction_count'],
            'previous_tier': previous_tier,
            'tier': new_tier.key if promoted else previous_tier,
            'promoted': promoted,
            'tier_earned_at': tier_earned_at,
            'next_tier_threshold': next_tier_threshold(row['total_interactions'], tiers),
        }

    result = retry_with_backoff(_write, retryable_exceptions=(sqlite3.OperationalError,))

    logger.info(
        "fan_interaction_logged",
        fan_id=fan_id,
        owner_id=owner_id,
        interaction_type=interaction_type,
        total_interactions=result['total_interactions'],
        tier=result['tier']
    )

    if result['promoted']:
        tier = by_key[result['tier']]
        owner = storage.get_user(conn, owner_id)
        logger.info(
            "fan_tier_promoted",
            fan_id=fan_id,
            owner_id=owner_id,
            previous_tier=result['previous_tier'],
            tier=tier.key
        )
        notify(
            conn,
            fan_id,
            NOTIFICATION_TIER_PROMOTION,
            f"You reached {tier.badge_name} status with {owner.username}",
            {'owner_user_id': owner_id, 'tier': tier.key, 'previous_tier': result['previous_tier']},
            now=now,
        )

    return result


def get_leaderboard(conn: sqlite3.Connection, owner_id: int, limit: int = 100) -> List[Dict[str, Any]]:
    """
    Rank an owner's fans by total interactions.

    Ties go to the fan who reached their tier first, then to the lower fan id.
    Rank is positional and 1-indexed.

    Raises:
        InvalidInputError: If limit < 1
        NotFoundError: If the owner does not exist
    """
    if limit < 1:
        raise InvalidInputError("limit must be at least 1", field='limit')
    storage.require_user(conn, owner_id, field='owner_id')

    rows = conn.execute("""
        SELECT
            ROW_NUMBER() OVER (
                ORDER BY ufs.total_interactions DESC, ufs.tier_earned_at ASC, ufs.fan_user_id ASC
            ) AS rank,
            ufs.fan_user_id AS fan_id,
            u.username,
            u.avatar_url,
            ufs.total_interactions,
            ufs.comment_count,
            ufs.reaction_count,
            ufs.current_tier AS tier,
            fb.badge_name,
            fb.badge_icon,
            fb.badge_color
        FROM user_fan_status ufs
        JOIN users u ON ufs.fan_user_id = u.id
        JOIN fan_badges fb ON ufs.current_tier = fb.tier_key
        WHERE ufs.owner_user_id = ?
        ORDER BY rank
        LIMIT ?
    """, (owner_id, limit)).fetchall()

    return [dict(row) for row in rows]


def get_user_badges(conn: sqlite3.Connection, user_id: int) -> List[Dict[str, Any]]:
    """Badges a fan holds across owners, most recently earned first."""
    storage.require_user(conn, user_id)

    rows = conn.execute("""
        SELECT
            ufs.owner_user_id AS owner_id,
            o.username AS owner_username,
            o.avatar_url AS owner_avatar_url,
            ufs.current_tier AS tier,
            fb.badge_name,
            fb.badge_icon,
            fb.badge_color,
            ufs.total_interactions,
            ufs.tier_earned_at
        FROM user_fan_status ufs
        JOIN users o ON ufs.owner_user_id = o.id
        JOIN fan_badges fb ON ufs.current_tier = fb.tier_key
        WHERE ufs.fan_user_id = ?
        ORDER BY ufs.tier_earned_at DESC, ufs.owner_user_id ASC
    """, (user_id,)).fetchall()

    return [dict(row) for row in rows]


def get_tier_breakdown(conn: sqlite3.Connection, owner_id: int) -> Dict[str, Any]:
    """Number of fans per tier for an owner, highest tier first. Empty tiers count 0."""
    storage.require_user(conn, owner_id, field='owner_id')

    rows = conn.execute("""
        SELECT
            fb.tier_key AS tier,
            fb.badge_name,
            fb.badge_icon,
            fb.badge_color,
            fb.min_interactions,
            COUNT(ufs.id) AS count
        FROM fan_badges fb
        LEFT JOIN user_fan_status ufs
            ON ufs.current_tier = fb.tier_key AND ufs.owner_user_id = ?
        GROUP BY fb.id
        ORDER BY fb.min_interactions DESC
    """, (owner_id,)).fetchall()

    tiers = [dict(row) for row in rows]
    return {
        'owner_user_id': owner_id,
        'total_fans': sum(tier['count'] for tier in tiers),
        'tiers': tiers,
    }
