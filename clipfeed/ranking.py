"""
Feed ranking pipelines.

Builds the personalized, discovery and trending feeds from candidate pools
fetched through clipfeed.storage, scores them with clipfeed.scoring, and
records feed interactions for future personalization.

Degradation:
    A failed engagement read for one candidate does not fail the page. The
    post is scored with zero engagement and an engagement_unavailable
    warning is returned alongside the feed. A failed reaction rules read
    falls back to the default rules the same way.
"""

import sqlite3
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import structlog

from clipfeed import storage
from clipfeed.backend.utils.config import get_config_int, get_config_str
from clipfeed.backend.utils.errors import (
    InvalidInputError,
    WARNING_TYPE_ENGAGEMENT_UNAVAILABLE,
    WarningsCollector,
)
from clipfeed.models.social_models import Post, ReactionCounts, format_timestamp
from clipfeed.reactions import get_reaction_rules
from clipfeed.scoring import (
    calculate_content_score,
    calculate_engagement_score,
    calculate_trending_score,
    score_breakdown,
)
from clipfeed.signals import (
    detect_mood,
    get_recent_reaction_types,
    get_time_preference,
    get_user_passions,
    local_hour,
    matching_passions,
    tally_reactions,
)

logger = structlog.get_logger(__name__)

FEED_INTERACTION_TYPES = ('view', 'long_view', 'skip', 'react', 'comment', 'share')


def _validate_page(limit: int, offset: int = 0) -> None:
    if limit < 1:
        raise InvalidInputError("limit must be at least 1", field='limit')
    if offset < 0:
        raise InvalidInputError("offset must be non-negative", field='offset')


def attach_engagement(conn: sqlite3.Connection, posts: List[Post], warnings: WarningsCollector) -> List[Post]:
    """
    Fill in fresh reaction counts and comment count on each post.

    A post whose engagement read fails keeps zero engagement and a warning is
    recorded; the remaining posts are still annotated.
    """
    for post in posts:
        try:
            post.reactions = tally_reactions(storage.fetch_post_reaction_types(conn, post.id))
            post.comment_count = storage.count_post_comments(conn, post.id)
        except sqlite3.Error as e:
            post.reactions = ReactionCounts()
            post.comment_count = 0
            logger.warning(
                "engagement_unavailable",
                post_id=post.id,
                error=str(e)
            )
            warnings.append(
                WARNING_TYPE_ENGAGEMENT_UNAVAILABLE,
                f"Engagement lookup failed for post {post.id}; scored with zero engagement",
                {"post_id": post.id}
            )
    return posts


def fetch_candidate_pool(conn: sqlite3.Connection, user_id: int, following_ids: List[int]) -> List[Post]:
    """
    Candidate posts for the personalized feed.

    The following pool holds the newest public posts by followed authors, or
    the user's own posts when they follow nobody. The discovery pool holds the
    newest public posts by everyone else.
    """
    following_pool_size = get_config_int(conn, 'feed_following_pool_size')
    discovery_pool_size = get_config_int(conn, 'feed_discovery_pool_size')

    following_posts = storage.fetch_public_posts(
        conn,
        author_ids=following_ids if following_ids else [user_id],
        limit=following_pool_size
    )
    discovery_posts = storage.fetch_public_posts(
        conn,
        exclude_author_ids=[user_id] + following_ids,
        limit=discovery_pool_size
    )
    return following_posts + discovery_posts


def build_personalized_feed(
    conn: sqlite3.Connection,
    user_id: int,
    limit: int = 20,
    offset: int = 0,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Build a ranked, paginated feed for a user.

    Pipeline:
    1. Detect mood from the last reactions, time preference from `now`, passions
    2. Fetch the following and discovery candidate pools
    3. Annotate every candidate with fresh engagement
    4. Score every candidate
    5. Sort by score descending, post id ascending on ties
    6. Slice offset/limit over the scored list
    7. Attach allowed/blocked reactions to the page

    Args:
        conn: Database connection
        user_id: Viewing user
        limit: Page size (>= 1)
        offset: Number of scored posts to skip (>= 0)
        now: Reference time for recency and time of day

    Returns:
        dict with posts, context (mood, time_preference, passions,
        following_count), count, total_analyzed and warnings

    Raises:
        InvalidInputError: If limit or offset is out of range
        NotFoundError: If the user does not exist
    """
    _validate_page(limit, offset)
    if now is None:
        raise InvalidInputError("now is required", field='now')

    storage.require_user(conn, user_id)
    warnings = WarningsCollector()

    lookback = get_config_int(conn, 'mood_lookback')
    mood = detect_mood(get_recent_reaction_types(conn, user_id, lookback), lookback=lookback)
    time_preference = get_time_preference(local_hour(now, get_config_str(conn, 'feed_timezone')))
    passions = get_user_passions(conn, user_id)
    following_ids = storage.fetch_following_ids(conn, user_id)

    candidates = attach_engagement(conn, fetch_candidate_pool(conn, user_id, following_ids), warnings)

    scored = [
        (calculate_content_score(post, mood, time_preference, passions, now), post)
        for post in candidates
    ]
    scored.sort(key=lambda item: (-item[0], item[1].id))

    page = []
    for score, post in scored[offset:offset + limit]:
        rules = get_reaction_rules(conn, post.id, warnings)
        item = post.to_dict()
        item['feed_score'] = score
        item['score_breakdown'] = score_breakdown(post, mood, time_preference, passions, now)
        item['allowed_reactions'] = list(rules.allowed_reactions)
        item['blocked_reactions'] = list(rules.blocked_reactions)
        page.append(item)

    logger.info(
        "personalized_feed_built",
        user_id=user_id,
        mood=mood,
        time_preference=time_preference,
        candidates=len(scored),
        returned=len(page),
        warnings=len(warnings)
    )

    return {
        'posts': page,
        'context': {
            'mood': mood,
            'time_preference': time_preference,
            'passions': passions,
            'following_count': len(following_ids),
        },
        'count': len(page),
        'total_analyzed': len(scored),
        'warnings': warnings.to_list(),
    }


def build_discovery_feed(conn: sqlite3.Connection, user_id: int, limit: int = 20) -> Dict[str, Any]:
    """
    Most engaging recent posts, narrowed to the user's passions when they have any.

    Ranks by raw engagement descending, post id ascending on ties.
    """
    _validate_page(limit)
    storage.require_user(conn, user_id)
    warnings = WarningsCollector()

    passions = get_user_passions(conn, user_id)
    posts = storage.fetch_public_posts(conn, limit=get_config_int(conn, 'discover_pool_size'))

    if passions:
        posts = [post for post in posts if matching_passions(post.hashtags, passions)]

    attach_engagement(conn, posts, warnings)
    posts.sort(key=lambda post: (-calculate_engagement_score(post), post.id))

    page = []
    for post in posts[:limit]:
        item = post.to_dict()
        item['engagement_score'] = calculate_engagement_score(post)
        page.append(item)

    logger.info("discovery_feed_built", user_id=user_id, passions=len(passions), returned=len(page))

    return {
        'posts': page,
        'count': len(page),
        'warnings': warnings.to_list(),
    }


def build_trending_feed(conn: sqlite3.Connection, limit: int = 20, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Public posts from the trending window ranked by engagement per hour.

    Ties are broken by post id ascending.
    """
    _validate_page(limit)
    if now is None:
        raise InvalidInputError("now is required", field='now')

    window_hours = get_config_int(conn, 'trending_window_hours')
    warnings = WarningsCollector()

    posts = storage.fetch_public_posts(conn, since=now - timedelta(hours=window_hours))
    attach_engagement(conn, posts, warnings)

    scored = [(calculate_trending_score(post, now), post) for post in posts]
    scored.sort(key=lambda item: (-item[0], item[1].id))

    page = []
    for score, post in scored[:limit]:
        item = post.to_dict()
        item['trending_score'] = score
        page.append(item)

    logger.info("trending_feed_built", window_hours=window_hours, candidates=len(scored), returned=len(page))

    return {
        'posts': page,
        'count': len(page),
        'timeframe': f"{window_hours} hours",
        'warnings': warnings.to_list(),
    }


def track_interaction(
    conn: sqlite3.Connection,
    user_id: int,
    post_id: int,
    interaction_type: str,
    duration_seconds: Optional[float] = None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Record how a user interacted with a feed post.

    Raises:
        InvalidInputError: Unknown interaction type or negative duration
        NotFoundError: Unknown user or post
    """
    if interaction_type not in FEED_INTERACTION_TYPES:
        raise InvalidInputError(
            f"interaction_type must be one of: {', '.join(FEED_INTERACTION_TYPES)}",
            field='interaction_type'
        )
    if duration_seconds is not None and duration_seconds < 0:
        raise InvalidInputError("duration_seconds must be non-negative", field='duration_seconds')
    if now is None:
        raise InvalidInputError("now is required", field='now')

    storage.require_user(conn, user_id)
    storage.require_post(conn, post_id)

    interaction_id = storage.insert_feed_interaction(
        conn, user_id, post_id, interaction_type, duration_seconds, now
    )
    conn.commit()

    logger.debug(
        "feed_interaction_tracked",
        user_id=user_id,
        post_id=post_id,
        interaction_type=interaction_type
    )

    return {
        'id': interaction_id,
        'user_id': user_id,
        'post_id': post_id,
        'interaction_type': interaction_type,
        'duration_seconds': duration_seconds,
        'created_at': format_timestamp(now),
    }
