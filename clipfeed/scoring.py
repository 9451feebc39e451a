"""
Scoring functions for feed ranking.

This module provides the additive content relevance score used by the
personalized feed, its per-term breakdown, and the simpler engagement and
trending scores used by the discovery and trending feeds.

Every function here is pure: the current time is passed in as `now` and the
post carries freshly aggregated engagement.
"""

from datetime import datetime, timezone
from typing import Dict, Sequence

from clipfeed.models.social_models import (
    MOOD_FUN_SEEKING,
    MOOD_LEARNING,
    MOOD_SUPPORTIVE,
    TIME_AFTERNOON,
    TIME_EVENING,
    TIME_MORNING,
    Post,
)
from clipfeed.signals import matching_passions


# Engagement term: min(total / ENGAGEMENT_DIVISOR, ENGAGEMENT_CAP)
ENGAGEMENT_DIVISOR = 10
ENGAGEMENT_CAP = 50

# (max age in hours, bonus), checked in order
RECENCY_BONUSES = ((1, 30), (6, 20), (24, 10))

MOOD_CONTENT_BONUS = 40
MOOD_REACTION_BONUS = 30

# mood -> (matching content type, reaction type, reaction count threshold)
MOOD_RULES = {
    MOOD_FUN_SEEKING: ('entertainment', 'laugh', 10),
    MOOD_LEARNING: ('educational', 'thinking', 5),
    MOOD_SUPPORTIVE: ('inspirational', 'care', 5),
}

TIME_BONUS = 25
TIME_CONTENT_TYPES = {
    TIME_MORNING: ('motivational', 'news'),
    TIME_AFTERNOON: ('educational',),
    TIME_EVENING: ('entertainment', 'social'),
}

PASSION_BONUS = 35

CREATOR_SCORE_THRESHOLD = 800
CREATOR_BONUS = 15

CRISIS_PENALTY = 20
FACT_CHECK_PENALTY = 15


def hours_since(created_at: datetime, now: datetime) -> float:
    """
    Age of a post in hours. Naive datetimes are taken as UTC.

    A post timestamped after `now` (clock skew) has age 0.

    Examples:
        >>> hours_since(datetime(2024, 1, 1, 10, 0), datetime(2024, 1, 1, 12, 30))
        2.5
    """
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return max(0.0, (now - created_at).total_seconds() / 3600)


def calculate_engagement_score(post: Post) -> int:
    """
    Raw engagement: reaction count plus comment count.

    Examples:
        >>> calculate_engagement_score(post)  # 12 reactions, 3 comments
        15
    """
    return post.reactions.total + post.comment_count


def calculate_recency_bonus(age_hours: float) -> int:
    """
    Step bonus for fresh content.

    Returns:
        int: 30 under 1 hour, 20 under 6 hours, 10 under 24 hours, else 0

    Examples:
        >>> calculate_recency_bonus(0.5)
        30
        >>> calculate_recency_bonus(6)
        10
        >>> calculate_recency_bonus(24)
        0
    """
    for max_age, bonus in RECENCY_BONUSES:
        if age_hours < max_age:
            return bonus
    return 0


def score_breakdown(
    post: Post,
    mood: str,
    time_preference: str,
    passions: Sequence[str],
    now: datetime
) -> Dict[str, float]:
    """
    Compute every term of the content score separately.

    Terms are independent: both bonuses of a mood can fire for the same post,
    and each matching passion adds its own bonus.

    Args:
        post: Post with fresh engagement (reactions, comment_count) and author
        mood: Detected mood of the viewing user
        time_preference: Time-of-day bucket of the request
        passions: The viewing user's active passions
        now: Reference time for recency

    Returns:
        dict: engagement, recency, mood, time, passion, creator, safety
        (safety is zero or negative). The raw score is the sum of the values.

    Examples:
        >>> score_breakdown(post, 'fun-seeking', 'night', [], now)  # 30 min old entertainment
        {'engagement': 0.0, 'recency': 30, 'mood': 40, 'time': 0, 'passion': 0, 'creator': 0, 'safety': 0}
    """
    engagement = min(calculate_engagement_score(post) / ENGAGEMENT_DIVISOR, ENGAGEMENT_CAP)

    recency = calculate_recency_bonus(hours_since(post.created_at, now))

    mood_bonus = 0
    rule = MOOD_RULES.get(mood)
    if rule is not None:
        content_type, reaction_type, threshold = rule
        if post.content_type == content_type:
            mood_bonus += MOOD_CONTENT_BONUS
        if post.reactions.get(reaction_type) > threshold:
            mood_bonus += MOOD_REACTION_BONUS

    time_bonus = 0
    if post.content_type in TIME_CONTENT_TYPES.get(time_preference, ()):
        time_bonus = TIME_BONUS

    passion_bonus = PASSION_BONUS * len(matching_passions(post.hashtags, passions))

    creator_bonus = 0
    if post.author is not None:
        if post.author.aura_score > CREATOR_SCORE_THRESHOLD:
            creator_bonus += CREATOR_BONUS
        if post.author.wisdom_score > CREATOR_SCORE_THRESHOLD:
            creator_bonus += CREATOR_BONUS

    safety = 0
    if post.is_crisis:
        safety -= CRISIS_PENALTY
    if post.needs_fact_check:
        safety -= FACT_CHECK_PENALTY

    return {
        'engagement': engagement,
        'recency': recency,
        'mood': mood_bonus,
        'time': time_bonus,
        'passion': passion_bonus,
        'creator': creator_bonus,
        'safety': safety,
    }


def calculate_content_score(
    post: Post,
    mood: str,
    time_preference: str,
    passions: Sequence[str],
    now: datetime
) -> float:
    """
    Calculate the personalized relevance score of a post.

    Formula: sum of the score_breakdown terms, clamped to minimum 0.0.

    Returns:
        float: Score >= 0.0

    Examples:
        >>> calculate_content_score(post, 'fun-seeking', 'night', [], now)  # 30 min old entertainment
        70.0
    """
    terms = score_breakdown(post, mood, time_preference, passions, now)
    return max(0.0, float(sum(terms.values())))


def calculate_trending_score(post: Post, now: datetime) -> float:
    """
    Engagement rate for the trending feed.

    Formula: engagement / max(hours_since_posted, 1)

    Examples:
        >>> calculate_trending_score(post, now)  # 20 engagement, 4 hours old
        5.0
        >>> calculate_trending_score(post, now)  # 20 engagement, 10 minutes old
        20.0
    """
    age_hours = hours_since(post.created_at, now)
    return calculate_engagement_score(post) / max(age_hours, 1.0)
