"""
Comment priority scoring and comment operations.

A comment's priority is computed once, when it is created, from the
commenter's standing with the post owner at that moment:

    final_score = base_score + fan_tier_bonus + premium_bonus
    fan_tier_bonus = tier priority_multiplier * fan_tier_bonus_unit
    premium_bonus = active plan priority_boost

The breakdown is stored in comment_priority_scores together with the fan
tier and subscription level it was computed from, and is never recomputed
when the commenter's tier or plan changes later. Comment filters read those
stored fields.
"""

import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import structlog

from clipfeed import fans, storage
from clipfeed.backend.utils.config import CONFIG_DEFAULTS, get_config_float, get_config_int
from clipfeed.backend.utils.errors import ForbiddenError, InvalidInputError, NotFoundError
from clipfeed.models.social_models import (
    SUBSCRIPTION_FREE,
    SUBSCRIPTION_SUPERFAN_PLUS,
    FanTier,
    PriorityBreakdown,
    SubscriptionPlan,
    format_timestamp,
)
from clipfeed.notifications import NOTIFICATION_NEW_COMMENT, notify
from clipfeed.subscriptions import get_active_plan

logger = structlog.get_logger(__name__)

COMMENT_SORTS = ('priority', 'recent', 'oldest')
COMMENT_FILTERS = ('all', 'die_hard', 'superfan', 'superfan_plus', 'premium', 'high_aura')
MAX_COMMENT_LENGTH = 5000

_COMMENT_COLUMNS = """
    c.id, c.user_id, c.post_id, c.parent_comment_id, c.content, c.created_at, c.updated_at,
    u.username, u.avatar_url, u.aura_score, u.wisdom_score,
    cps.base_score, cps.fan_tier_bonus, cps.premium_bonus, cps.final_score,
    cps.fan_tier, cps.subscription_level
"""

_COMMENT_FROM = """
    FROM comments c
    JOIN users u ON c.user_id = u.id
    LEFT JOIN comment_priority_scores cps ON cps.comment_id = c.id
"""


def calculate_priority_score(
    fan_tier: Optional[FanTier],
    plan: SubscriptionPlan,
    config: Optional[Mapping[str, float]] = None
) -> PriorityBreakdown:
    """
    Calculate a comment priority breakdown.

    Args:
        fan_tier: Commenter's tier for the post owner, None without a fan status
        plan: Commenter's active plan (the free plan has priority_boost 0)
        config: comment_base_score, fan_tier_bonus_unit and
                untiered_fan_bonus_multiplier; missing keys use CONFIG_DEFAULTS

    Returns:
        PriorityBreakdown whose final_score is the sum of the three parts

    Examples:
        >>> calculate_priority_score(None, FREE_PLAN).final_score
        10.0
        >>> calculate_priority_score(loyal_tier, superfan_plan).final_score  # 10 + 1.5*20 + 25
        65.0
    """
    config = config or {}
    base_score = float(config.get('comment_base_score', CONFIG_DEFAULTS['comment_base_score']))
    bonus_unit = float(config.get('fan_tier_bonus_unit', CONFIG_DEFAULTS['fan_tier_bonus_unit']))

    if fan_tier is not None:
        multiplier = fan_tier.priority_multiplier
    else:
        multiplier = float(config.get(
            'untiered_fan_bonus_multiplier', CONFIG_DEFAULTS['untiered_fan_bonus_multiplier']
        ))

    return PriorityBreakdown(
        base_score=base_score,
        fan_tier_bonus=multiplier * bonus_unit,
        premium_bonus=float(plan.priority_boost) if plan.is_paid else 0.0,
        fan_tier=fan_tier.key if fan_tier is not None else None,
        subscription_level=plan.plan_type,
    )


def load_priority_config(conn: sqlite3.Connection) -> Dict[str, float]:
    return {
        key: get_config_float(conn, key)
        for key in ('comment_base_score', 'fan_tier_bonus_unit', 'untiered_fan_bonus_multiplier')
    }


def get_commenter_priority(
    conn: sqlite3.Connection,
    user_id: int,
    owner_id: int,
    now: datetime
) -> PriorityBreakdown:
    """Priority breakdown for a comment by user_id on a post owned by owner_id."""
    tier_key = fans.get_fan_tier_key(conn, user_id, owner_id)
    tier = None
    if tier_key is not None:
        tier = next((t for t in fans.fetch_fan_tiers(conn) if t.key == tier_key), None)

    plan = get_active_plan(conn, user_id, now)
    return calculate_priority_score(tier, plan, load_priority_config(conn))


def _comment_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        'id': row['id'],
        'user_id': row['user_id'],
        'post_id': row['post_id'],
        'parent_comment_id': row['parent_comment_id'],
        'content': row['content'],
        'created_at': row['created_at'],
        'updated_at': row['updated_at'],
        'author': {
            'id': row['user_id'],
            'username': row['username'],
            'avatar_url': row['avatar_url'],
            'aura_score': row['aura_score'],
            'wisdom_score': row['wisdom_score'],
        },
        'priority_score': row['final_score'] if row['final_score'] is not None
        else CONFIG_DEFAULTS['comment_base_score'],
        'fan_tier': row['fan_tier'],
        'subscription_level': row['subscription_level'] or SUBSCRIPTION_FREE,
    }


def _require_comment(conn: sqlite3.Connection, comment_id: int) -> sqlite3.Row:
    row = conn.execute(f"SELECT {_COMMENT_COLUMNS} {_COMMENT_FROM} WHERE c.id = ?", (comment_id,)).fetchone()
    if row is None:
        raise NotFoundError(f"Comment {comment_id} not found", field='comment_id')
    return row


def _validate_content(content: Optional[str]) -> str:
    if content is None or not content.strip():
        raise InvalidInputError("content is required", field='content')
    if len(content) > MAX_COMMENT_LENGTH:
        raise InvalidInputError(
            f"content must be at most {MAX_COMMENT_LENGTH} characters", field='content'
        )
    return content.strip()


def create_comment(
    conn: sqlite3.Connection,
    user_id: int,
    post_id: int,
    content: str,
    parent_comment_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Create a comment and persist its priority breakdown.

    When the commenter is not the post owner a 'comment' fan interaction is
    logged for the owner and the owner is notified.

    Returns:
        dict with comment, priority_score and priority (the breakdown)

    Raises:
        InvalidInputError: Empty or oversized content, parent on another post
        NotFoundError: Unknown user, post or parent comment
    """
    content = _validate_content(content)
    if now is None:
        raise InvalidInputError("now is required", field='now')

    commenter = storage.require_user(conn, user_id)
    post = storage.require_post(conn, post_id)

    if parent_comment_id is not None:
        parent = conn.execute(
            "SELECT post_id FROM comments WHERE id = ?", (parent_comment_id,)
        ).fetchone()
        if parent is None:
            raise NotFoundError(f"Comment {parent_comment_id} not found", field='parent_comment_id')
        if parent['post_id'] != post_id:
            raise InvalidInputError("Parent comment belongs to another post", field='parent_comment_id')

    owner_id = post.user_id
    priority = get_commenter_priority(conn, user_id, owner_id, now)
    timestamp = format_timestamp(now)

    try:
        cursor = conn.execute("""
            INSERT INTO comments (user_id, post_id, parent_comment_id, content, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, (user_id, post_id, parent_comment_id, content, timestamp))
        comment_id = cursor.lastrowid

        conn.execute("""
            INSERT INTO comment_priority_scores
                (comment_id, base_score, fan_tier_bonus, premium_bonus, final_score,
                 fan_tier, subscription_level, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            comment_id, priority.base_score, priority.fan_tier_bonus, priority.premium_bonus,
            priority.final_score, priority.fan_tier, priority.subscription_level, timestamp
        ))
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise

    logger.info(
        "comment_created",
        comment_id=comment_id,
        post_id=post_id,
        user_id=user_id,
        priority_score=priority.final_score,
        fan_tier=priority.fan_tier,
        subscription_level=priority.subscription_level
    )

    if owner_id != user_id:
        fans.log_interaction(conn, user_id, owner_id, 'comment', post_id=post_id, now=now)
        notify(
            conn,
            owner_id,
            NOTIFICATION_NEW_COMMENT,
            f"{commenter.username} commented on your post",
            {'post_id': post_id, 'comment_id': comment_id, 'priority_score': priority.final_score},
            now=now,
        )

    return {
        'comment': _comment_from_row(_require_comment(conn, comment_id)),
        'priority_score': priority.final_score,
        'priority': priority.to_dict(),
    }


def get_post_comments(
    conn: sqlite3.Connection,
    post_id: int,
    sort: str = 'priority',
    limit: int = 50,
    offset: int = 0
) -> Dict[str, Any]:
    """
    Top-level comments of a post with their replies.

    Sorts: priority (descending, comment id ascending on ties), recent, oldest.
    Replies are listed oldest first.
    """
    if sort not in COMMENT_SORTS:
        raise InvalidInputError(f"sort must be one of: {', '.join(COMMENT_SORTS)}", field='sort')
    if limit < 1:
        raise InvalidInputError("limit must be at least 1", field='limit')
    if offset < 0:
        raise InvalidInputError("offset must be non-negative", field='offset')
    storage.require_post(conn, post_id)

    order_by = {
        'priority': "COALESCE(cps.final_score, 0) DESC, c.id ASC",
        'recent': "c.created_at DESC, c.id DESC",
        'oldest': "c.created_at ASC, c.id ASC",
    }[sort]

    total = conn.execute(
        "SELECT COUNT(*) AS total FROM comments WHERE post_id = ? AND parent_comment_id IS NULL",
        (post_id,)
    ).fetchone()['total']

    rows = conn.execute(f"""
        SELECT {_COMMENT_COLUMNS}
        {_COMMENT_FROM}
        WHERE c.post_id = ? AND c.parent_comment_id IS NULL
        ORDER BY {order_by}
        LIMIT ? OFFSET ?
    """, (post_id, limit, offset)).fetchall()

    comments = []
    for row in rows:
        comment = _comment_from_row(row)
        replies = conn.execute(f"""
            SELECT {_COMMENT_COLUMNS}
            {_COMMENT_FROM}
            WHERE c.parent_comment_id = ?
            ORDER BY c.created_at ASC, c.id ASC
        """, (row['id'],)).fetchall()
        comment['replies'] = [_comment_from_row(reply) for reply in replies]
        comment['reply_count'] = len(replies)
        comments.append(comment)

    return {
        'comments': comments,
        'count': len(comments),
        'total': total,
        'sort_by': sort,
    }


def _matches_filter(comment: Dict[str, Any], comment_filter: str, high_aura_threshold: int) -> bool:
    if comment_filter == 'die_hard':
        return comment['fan_tier'] == 'die_hard'
    if comment_filter == 'superfan':
        return comment['fan_tier'] in ('super_fan', 'die_hard')
    if comment_filter == 'superfan_plus':
        return comment['subscription_level'] == SUBSCRIPTION_SUPERFAN_PLUS
    if comment_filter == 'premium':
        return comment['subscription_level'] != SUBSCRIPTION_FREE
    if comment_filter == 'high_aura':
        return comment['author']['aura_score'] >= high_aura_threshold
    return True


def get_filtered_comments(conn: sqlite3.Connection, post_id: int, comment_filter: str = 'all') -> Dict[str, Any]:
    """
    Top-level comments of a post narrowed by commenter standing, highest priority first.

    Filters read the fan tier and subscription level stored with each
    comment's priority:
        die_hard       tier die_hard
        superfan       tier super_fan or die_hard
        superfan_plus  subscription superfan_plus
        premium        any paid subscription
        high_aura      commenter aura >= high_aura_threshold (current aura)
    """
    if comment_filter not in COMMENT_FILTERS:
        raise InvalidInputError(
            f"filter must be one of: {', '.join(COMMENT_FILTERS)}", field='filter'
        )
    storage.require_post(conn, post_id)
    high_aura_threshold = get_config_int(conn, 'high_aura_threshold')

    rows = conn.execute(f"""
        SELECT {_COMMENT_COLUMNS}
        {_COMMENT_FROM}
        WHERE c.post_id = ? AND c.parent_comment_id IS NULL
    """, (post_id,)).fetchall()

    comments = [
        comment for comment in (_comment_from_row(row) for row in rows)
        if _matches_filter(comment, comment_filter, high_aura_threshold)
    ]
    comments.sort(key=lambda comment: (-comment['priority_score'], comment['id']))

    return {
        'comments': comments,
        'count': len(comments),
        'filter': comment_filter,
    }


def update_comment(
    conn: sqlite3.Connection,
    comment_id: int,
    user_id: int,
    content: str,
    now: datetime
) -> Dict[str, Any]:
    """Edit a comment's text. Only its author may edit it; priority is unchanged."""
    content = _validate_content(content)
    row = _require_comment(conn, comment_id)
    if row['user_id'] != user_id:
        raise ForbiddenError("You can only edit your own comments", field='user_id')

    conn.execute(
        "UPDATE comments SET content = ?, updated_at = ? WHERE id = ?",
        (content, format_timestamp(now), comment_id)
    )
    conn.commit()

    logger.info("comment_updated", comment_id=comment_id, user_id=user_id)
    return _comment_from_row(_require_comment(conn, comment_id))


def delete_comment(conn: sqlite3.Connection, comment_id: int, user_id: int) -> Dict[str, Any]:
    """Delete a comment and its replies. Only its author may delete it."""
    row = _require_comment(conn, comment_id)
    if row['user_id'] != user_id:
        raise ForbiddenError("You can only delete your own comments", field='user_id')

    conn.execute("DELETE FROM comments WHERE id = ?", (comment_id,))
    conn.commit()

    logger.info("comment_deleted", comment_id=comment_id, user_id=user_id)
    return {'id': comment_id, 'deleted': True}
