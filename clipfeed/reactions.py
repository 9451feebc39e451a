"""Reactions: add/replace/remove with wisdom and aura awards, plus reaction reads.

A user has at most one reaction per post. Reacting again with the same type
removes it; a different type replaces it. Adding or replacing awards the
reacting user the points in REACTION_POINTS; removing awards nothing and
takes nothing back.
"""

import sqlite3
from datetime import datetime
from typing import Any, Dict, Optional

import structlog

from clipfeed import fans, storage
from clipfeed.backend.utils.errors import (
    ForbiddenError,
    InvalidInputError,
    WARNING_TYPE_REACTION_RULES_UNAVAILABLE,
    WarningsCollector,
)
from clipfeed.models.social_models import REACTION_TYPES, PostReactionRules
from clipfeed.signals import tally_reactions

logger = structlog.get_logger(__name__)

# reaction type -> (wisdom, aura) awarded to the reacting user
REACTION_POINTS = {
    'thinking': (25, 5),
    'support': (5, 20),
    'care': (5, 30),
    'applaud': (5, 15),
    'laugh': (0, 10),
    'fire': (0, 10),
}

ACTION_ADDED = 'added'
ACTION_UPDATED = 'updated'
ACTION_REMOVED = 'removed'


def get_reaction_rules(
    conn: sqlite3.Connection,
    post_id: int,
    warnings: Optional[WarningsCollector] = None
) -> PostReactionRules:
    """Reaction rules for a post; defaults when it has no record or the read fails."""
    try:
        rules = storage.fetch_reaction_rules(conn, post_id)
    except (sqlite3.Error, ValueError) as e:
        logger.warning("reaction_rules_unavailable", post_id=post_id, error=str(e))
        if warnings is not None:
            warnings.append(
                WARNING_TYPE_REACTION_RULES_UNAVAILABLE,
                f"Reaction rules lookup failed for post {post_id}; using defaults",
                {"post_id": post_id}
            )
        rules = None
    return rules if rules is not None else PostReactionRules()


def add_reaction(
    conn: sqlite3.Connection,
    user_id: int,
    post_id: int,
    reaction_type: str,
    now: datetime
) -> Dict[str, Any]:
    """
    Add, replace or toggle off a user's reaction to a post.

    Returns:
        dict with action (added | updated | removed), reaction_type (None when
        removed), and scores {wisdom, aura, gained: {wisdom, aura}}

    Raises:
        InvalidInputError: Unknown reaction type
        NotFoundError: Unknown user or post
        ForbiddenError: Reaction type blocked for this post
    """
    if reaction_type not in REACTION_TYPES:
        raise InvalidInputError(
            f"reaction_type must be one of: {', '.join(REACTION_TYPES)}",
            field='reaction_type'
        )

    storage.require_user(conn, user_id)
    post = storage.require_post(conn, post_id)

    rules = get_reaction_rules(conn, post_id)
    if rules.is_blocked(reaction_type):
        raise ForbiddenError(
            f"Reaction '{reaction_type}' is not allowed on this post", field='reaction_type'
        )

    wisdom_points, aura_points = REACTION_POINTS[reaction_type]

    conn.execute("BEGIN IMMEDIATE")
    try:
        existing = storage.get_user_reaction(conn, user_id, post_id)

        if existing is not None and existing['reaction_type'] == reaction_type:
            storage.delete_reaction(conn, existing['id'])
            action = ACTION_REMOVED
            gained = (0, 0)
            user = storage.require_user(conn, user_id)
            wisdom, aura = user.wisdom_score, user.aura_score
        else:
            if existing is not None:
                storage.update_reaction_type(conn, existing['id'], reaction_type)
                action = ACTION_UPDATED
            else:
                storage.insert_reaction(conn, user_id, post_id, reaction_type, now)
                action = ACTION_ADDED
            gained = (wisdom_points, aura_points)
            wisdom, aura = storage.award_user_scores(conn, user_id, wisdom_points, aura_points)

        conn.commit()
    except Exception:
        conn.rollback()
        raise

    logger.info(
        "reaction_applied",
        user_id=user_id,
        post_id=post_id,
        reaction_type=reaction_type,
        action=action,
        wisdom_gained=gained[0],
        aura_gained=gained[1]
    )

    if action == ACTION_ADDED and post.user_id != user_id:
        fans.log_interaction(conn, user_id, post.user_id, 'reaction', post_id=post_id, now=now)

    return {
        'action': action,
        'reaction_type': None if action == ACTION_REMOVED else reaction_type,
        'scores': {
            'wisdom': wisdom,
            'aura': aura,
            'gained': {'wisdom': gained[0], 'aura': gained[1]},
        },
    }


def get_post_reaction_counts(conn: sqlite3.Connection, post_id: int) -> Dict[str, int]:
    storage.require_post(conn, post_id)
    return tally_reactions(storage.fetch_post_reaction_types(conn, post_id)).to_dict()


def get_user_reaction(conn: sqlite3.Connection, user_id: int, post_id: int) -> Dict[str, Any]:
    storage.require_user(conn, user_id)
    storage.require_post(conn, post_id)

    reaction = storage.get_user_reaction(conn, user_id, post_id)
    return {
        'has_reacted': reaction is not None,
        'reaction_type': reaction['reaction_type'] if reaction else None,
    }


def reaction_personality(percentages: Dict[str, float]) -> str:
    """
    Label a user by the share of each reaction type, first match wins.

    Examples:
        >>> reaction_personality({'laugh': 70.0, 'thinking': 30.0})
        'Fun-Seeker'
        >>> reaction_personality({})
        'Balanced'
    """
    share = {reaction_type: percentages.get(reaction_type, 0.0) for reaction_type in REACTION_TYPES}

    if share['laugh'] > 60:
        return 'Fun-Seeker'
    if share['thinking'] > 50:
        return 'Critical Thinker'
    if share['care'] + share['support'] > 60:
        return 'Supportive'
    if share['fire'] + share['applaud'] > 60:
        return 'Energetic'
    return 'Balanced'


def get_reaction_stats(conn: sqlite3.Connection, user_id: int) -> Dict[str, Any]:
    """Per-type counts and percentages of every reaction a user has given."""
    storage.require_user(conn, user_id)
    counts = tally_reactions(storage.fetch_user_reaction_types(conn, user_id))

    percentages = {
        reaction_type: round(counts.get(reaction_type) / counts.total * 100, 1) if counts.total else 0.0
        for reaction_type in REACTION_TYPES
    }

    return {
        'counts': counts.to_dict(),
        'percentages': percentages,
        'personality_type': reaction_personality(percentages),
        'total_reactions': counts.total,
    }
