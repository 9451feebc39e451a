"""Content repository: reads and writes for users, posts, reactions and comments.

The scoring engines never touch SQL directly for content; they go through the
functions here so the candidate pools and engagement aggregation are fetched
the same way by every pipeline.

Key Functions:
    fetch_public_posts: bounded, newest-first candidate fetch with author join
    fetch_post_reaction_types / count_post_comments: per-post engagement reads
    fetch_recent_reaction_types: a user's reaction history, newest first
    fetch_reaction_rules: optional per-post reaction configuration
    insert_reaction / update_reaction_type / delete_reaction: reaction writes
    award_user_scores: additive wisdom/aura update returning the new totals
"""

import json
import sqlite3
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog

from clipfeed.backend.utils.errors import NotFoundError
from clipfeed.models.social_models import (
    Author,
    Post,
    PostReactionRules,
    format_timestamp,
    parse_timestamp,
)

logger = structlog.get_logger(__name__)

_POST_COLUMNS = """
    p.id, p.user_id, p.content, p.content_type, p.hashtags, p.visibility,
    p.is_crisis, p.needs_fact_check, p.created_at,
    u.username AS author_username, u.avatar_url AS author_avatar_url,
    u.aura_score AS author_aura_score, u.wisdom_score AS author_wisdom_score
"""


def _normalize_hashtags(raw: Any) -> List[str]:
    """Decode the stored JSON hashtag list into lower-case tags without '#'."""
    if not raw:
        return []
    if isinstance(raw, str):
        try:
            tags = json.loads(raw)
        except ValueError:
            logger.warning("hashtags_malformed", raw=raw)
            return []
    else:
        tags = raw
    return [str(tag).lstrip('#').lower() for tag in tags if str(tag).strip()]


def _post_from_row(row: sqlite3.Row) -> Post:
    author = None
    if row['author_username'] is not None:
        author = Author(
            id=row['user_id'],
            username=row['author_username'],
            avatar_url=row['author_avatar_url'],
            aura_score=row['author_aura_score'] or 0,
            wisdom_score=row['author_wisdom_score'] or 0,
        )

    return Post(
        id=row['id'],
        user_id=row['user_id'],
        content=row['content'] or '',
        content_type=row['content_type'],
        hashtags=_normalize_hashtags(row['hashtags']),
        visibility=row['visibility'],
        is_crisis=bool(row['is_crisis']),
        needs_fact_check=bool(row['needs_fact_check']),
        created_at=parse_timestamp(row['created_at']),
        author=author,
    )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def get_user(conn: sqlite3.Connection, user_id: int) -> Optional[Author]:
    row = conn.execute(
        "SELECT id, username, avatar_url, aura_score, wisdom_score FROM users WHERE id = ?",
        (user_id,)
    ).fetchone()

    if row is None:
        return None

    return Author(
        id=row['id'],
        username=row['username'],
        avatar_url=row['avatar_url'],
        aura_score=row['aura_score'],
        wisdom_score=row['wisdom_score'],
    )


def require_user(conn: sqlite3.Connection, user_id: int, field: str = 'user_id') -> Author:
    """Load a user or raise NotFoundError naming the field that referenced it."""
    user = get_user(conn, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found", field=field)
    return user


def fetch_following_ids(conn: sqlite3.Connection, user_id: int) -> List[int]:
    rows = conn.execute(
        "SELECT following_id FROM follows WHERE follower_id = ? ORDER BY following_id",
        (user_id,)
    ).fetchall()
    return [row['following_id'] for row in rows]


def fetch_active_passions(conn: sqlite3.Connection, user_id: int) -> List[str]:
    rows = conn.execute(
        "SELECT passion FROM user_passions WHERE user_id = ? AND is_active = 1 ORDER BY id",
        (user_id,)
    ).fetchall()
    return [row['passion'] for row in rows]


def award_user_scores(
    conn: sqlite3.Connection,
    user_id: int,
    wisdom: int,
    aura: int
) -> Tuple[int, int]:
    """Add wisdom/aura points to a user and return the new totals.

    The increment happens in a single UPDATE so concurrent awards never
    overwrite each other. Points are never negative, so scores never decrease.
    """
    row = conn.execute("""
        UPDATE users
        SET wisdom_score = wisdom_score + ?,
            aura_score = aura_score + ?
        WHERE id = ?
        RETURNING wisdom_score, aura_score
    """, (wisdom, aura, user_id)).fetchone()

    if row is None:
        raise NotFoundError(f"User {user_id} not found", field='user_id')

    return row['wisdom_score'], row['aura_score']


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------

def get_post(conn: sqlite3.Connection, post_id: int) -> Optional[Post]:
    row = conn.execute(f"""
        SELECT {_POST_COLUMNS}
        FROM posts p
        LEFT JOIN users u ON p.user_id = u.id
        WHERE p.id = ?
    """, (post_id,)).fetchone()

    return _post_from_row(row) if row else None


def require_post(conn: sqlite3.Connection, post_id: int, field: str = 'post_id') -> Post:
    post = get_post(conn, post_id)
    if post is None:
        raise NotFoundError(f"Post {post_id} not found", field=field)
    return post


def fetch_public_posts(
    conn: sqlite3.Connection,
    author_ids: Optional[Iterable[int]] = None,
    exclude_author_ids: Optional[Iterable[int]] = None,
    since: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> List[Post]:
    """Fetch public posts newest first, with the author joined.

    Args:
        conn: Database connection
        author_ids: Only posts by these authors (an empty iterable yields no posts)
        exclude_author_ids: Skip posts by these authors
        since: Only posts created at or after this instant
        limit: Maximum number of posts (None for unbounded)

    Returns:
        List of Post objects ordered by created_at DESC, id DESC
    """
    where_clauses = ["p.visibility = 'public'"]
    params: list = []

    if author_ids is not None:
        author_ids = list(author_ids)
        if not author_ids:
            return []
        placeholders = ','.join('?' * len(author_ids))
        where_clauses.append(f"p.user_id IN ({placeholders})")
        params.extend(author_ids)

    if exclude_author_ids:
        exclude_author_ids = list(exclude_author_ids)
        placeholders = ','.join('?' * len(exclude_author_ids))
        where_clauses.append(f"p.user_id NOT IN ({placeholders})")
        params.extend(exclude_author_ids)

    if since is not None:
        where_clauses.append("p.created_at >= ?")
        params.append(format_timestamp(since))

    limit_sql = ""
    if limit is not None:
        limit_sql = "LIMIT ?"
        params.append(limit)

    rows = conn.execute(f"""
        SELECT {_POST_COLUMNS}
        FROM posts p
        LEFT JOIN users u ON p.user_id = u.id
        WHERE {' AND '.join(where_clauses)}
        ORDER BY p.created_at DESC, p.id DESC
        {limit_sql}
    """, params).fetchall()

    return [_post_from_row(row) for row in rows]


def fetch_post_reaction_types(conn: sqlite3.Connection, post_id: int) -> List[str]:
    rows = conn.execute(
        "SELECT reaction_type FROM reactions WHERE post_id = ?", (post_id,)
    ).fetchall()
    return [row['reaction_type'] for row in rows]


def count_post_comments(conn: sqlite3.Connection, post_id: int) -> int:
    row = conn.execute(
        "SELECT COUNT(*) AS count FROM comments WHERE post_id = ?", (post_id,)
    ).fetchone()
    return row['count']


def fetch_reaction_rules(conn: sqlite3.Connection, post_id: int) -> Optional[PostReactionRules]:
    """Load the reaction rules record for a post, or None when the post has none.

    NULL columns fall back to the PostReactionRules defaults individually.
    """
    row = conn.execute(
        "SELECT allowed_reactions, blocked_reactions FROM post_reaction_rules WHERE post_id = ?",
        (post_id,)
    ).fetchone()

    if row is None:
        return None

    rules = PostReactionRules()
    if row['allowed_reactions']:
        rules.allowed_reactions = json.loads(row['allowed_reactions'])
    if row['blocked_reactions']:
        rules.blocked_reactions = json.loads(row['blocked_reactions'])
    return rules


def insert_feed_interaction(
    conn: sqlite3.Connection,
    user_id: int,
    post_id: int,
    interaction_type: str,
    duration_seconds: Optional[float],
    now: datetime,
) -> int:
    cursor = conn.execute("""
        INSERT INTO feed_interactions (user_id, post_id, interaction_type, duration_seconds, created_at)
        VALUES (?, ?, ?, ?, ?)
    """, (user_id, post_id, interaction_type, duration_seconds, format_timestamp(now)))
    return cursor.lastrowid


# ---------------------------------------------------------------------------
# Reactions
# ---------------------------------------------------------------------------

def fetch_recent_reaction_types(conn: sqlite3.Connection, user_id: int, limit: int) -> List[str]:
    """A user's most recent reaction types, newest first."""
    rows = conn.execute("""
        SELECT reaction_type
        FROM reactions
        WHERE user_id = ?
        ORDER BY created_at DESC, id DESC
        LIMIT ?
    """, (user_id, limit)).fetchall()
    return [row['reaction_type'] for row in rows]


def fetch_user_reaction_types(conn: sqlite3.Connection, user_id: int) -> List[str]:
    rows = conn.execute(
        "SELECT reaction_type FROM reactions WHERE user_id = ?", (user_id,)
    ).fetchall()
    return [row['reaction_type'] for row in rows]


def get_user_reaction(conn: sqlite3.Connection, user_id: int, post_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        "SELECT id, reaction_type, created_at FROM reactions WHERE user_id = ? AND post_id = ?",
        (user_id, post_id)
    ).fetchone()
    return dict(row) if row else None


def insert_reaction(
    conn: sqlite3.Connection,
    user_id: int,
    post_id: int,
    reaction_type: str,
    now: datetime
) -> Dict[str, Any]:
    row = conn.execute("""
        INSERT INTO reactions (user_id, post_id, reaction_type, created_at)
        VALUES (?, ?, ?, ?)
        RETURNING id, user_id, post_id, reaction_type, created_at
    """, (user_id, post_id, reaction_type, format_timestamp(now))).fetchone()
    return dict(row)


def update_reaction_type(conn: sqlite3.Connection, reaction_id: int, reaction_type: str) -> None:
    conn.execute(
        "UPDATE reactions SET reaction_type = ? WHERE id = ?",
        (reaction_type, reaction_id)
    )


def delete_reaction(conn: sqlite3.Connection, reaction_id: int) -> None:
    conn.execute("DELETE FROM reactions WHERE id = ?", (reaction_id,))
