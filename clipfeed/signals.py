"""
Signal extraction shared by the feed ranking and fan priority engines.

This module provides the aggregation primitive (reaction tally by type), mood
detection from a user's recent reactions, time-of-day preference, and passion
matching against post hashtags. Everything except the repository readers at
the bottom is a pure function of its arguments.
"""

import sqlite3
from datetime import datetime, timezone
from typing import Iterable, List, Sequence
from zoneinfo import ZoneInfo

import structlog

from clipfeed import storage
from clipfeed.backend.utils.errors import InvalidInputError
from clipfeed.models.social_models import (
    MOOD_BALANCED,
    MOOD_ENERGIZED,
    MOOD_FUN_SEEKING,
    MOOD_LEARNING,
    MOOD_NEUTRAL,
    MOOD_SUPPORTIVE,
    REACTION_TYPES,
    TIME_AFTERNOON,
    TIME_EVENING,
    TIME_MORNING,
    TIME_NIGHT,
    ReactionCounts,
)

logger = structlog.get_logger(__name__)

# Reactions considered by mood detection
MOOD_LOOKBACK = 10


def tally_reactions(reaction_types: Iterable[str]) -> ReactionCounts:
    """
    Count reactions by type.

    Args:
        reaction_types: Reaction type strings in any order

    Returns:
        ReactionCounts with one counter per known type. Unrecognised types
        are ignored and do not count toward total.

    Examples:
        >>> tally_reactions(['laugh', 'fire', 'laugh']).laugh
        2
        >>> tally_reactions(['laugh', 'wave']).total
        1
    """
    counts = ReactionCounts()
    for reaction_type in reaction_types:
        if reaction_type in REACTION_TYPES:
            setattr(counts, reaction_type, getattr(counts, reaction_type) + 1)
            counts.total += 1
    return counts


def detect_mood(reaction_types: Sequence[str], lookback: int = MOOD_LOOKBACK) -> str:
    """
    Classify a user's current content appetite from their reaction history.

    Only the first `lookback` entries are used, so callers pass the history
    newest first. Rules are checked in a fixed order and the first match wins:

    1. laugh + fire > 6      -> fun-seeking
    2. thinking > 5          -> learning
    3. care + support > 5    -> supportive
    4. applaud + fire > 5    -> energized
    5. otherwise             -> balanced

    An empty window returns neutral without evaluating the rules.

    Examples:
        >>> detect_mood([])
        'neutral'
        >>> detect_mood(['thinking'] * 6)
        'learning'
        >>> detect_mood(['laugh'] * 4 + ['fire'] * 3)
        'fun-seeking'
    """
    window = list(reaction_types)[:lookback]
    if not window:
        return MOOD_NEUTRAL

    counts = tally_reactions(window)

    if counts.laugh + counts.fire > 6:
        return MOOD_FUN_SEEKING
    if counts.thinking > 5:
        return MOOD_LEARNING
    if counts.care + counts.support > 5:
        return MOOD_SUPPORTIVE
    if counts.applaud + counts.fire > 5:
        return MOOD_ENERGIZED

    return MOOD_BALANCED


def get_time_preference(hour: int) -> str:
    """
    Map a wall-clock hour to its time-of-day bucket.

    Buckets: morning [6, 12), afternoon [12, 17), evening [17, 22), night [22, 6).

    Raises:
        InvalidInputError: If hour is outside 0-23

    Examples:
        >>> get_time_preference(6)
        'morning'
        >>> get_time_preference(12)
        'afternoon'
        >>> get_time_preference(0)
        'night'
    """
    if not isinstance(hour, int) or isinstance(hour, bool) or not 0 <= hour <= 23:
        raise InvalidInputError(f"Hour must be an integer in 0-23, got {hour!r}", field='hour')

    if 6 <= hour < 12:
        return TIME_MORNING
    if 12 <= hour < 17:
        return TIME_AFTERNOON
    if 17 <= hour < 22:
        return TIME_EVENING
    return TIME_NIGHT


def local_hour(now: datetime, tz_name: str = 'UTC') -> int:
    """Hour of `now` in the reference timezone used for time-of-day preference.

    Naive datetimes are taken as UTC. An unknown timezone name falls back to UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    if tz_name.upper() == 'UTC':
        return now.astimezone(timezone.utc).hour

    try:
        zone = ZoneInfo(tz_name)
    except (KeyError, ValueError):
        logger.warning("feed_timezone_unknown", tz_name=tz_name)
        return now.astimezone(timezone.utc).hour

    return now.astimezone(zone).hour


def matching_passions(hashtags: Sequence[str], passions: Sequence[str]) -> List[str]:
    """
    Return the passions contained in at least one hashtag, case-insensitively.

    Each passion is reported once no matter how many hashtags contain it.

    Examples:
        >>> matching_passions(['travelphotography', 'food'], ['Photography', 'music'])
        ['Photography']
    """
    tags = [tag.lower() for tag in hashtags]
    matches = []
    for passion in passions:
        needle = passion.lower()
        if needle and any(needle in tag for tag in tags):
            matches.append(passion)
    return matches


def get_recent_reaction_types(conn: sqlite3.Connection, user_id: int, lookback: int = MOOD_LOOKBACK) -> List[str]:
    """The user's last `lookback` reaction types, newest first."""
    return storage.fetch_recent_reaction_types(conn, user_id, lookback)


def get_user_passions(conn: sqlite3.Connection, user_id: int) -> List[str]:
    """The user's active passions (repository read, no computation)."""
    return storage.fetch_active_passions(conn, user_id)
