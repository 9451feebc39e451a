"""Social data models for clipfeed.

This module defines the data structures that flow between the content
repository (clipfeed.storage) and the two scoring engines: the feed ranking
engine (signals, scoring, ranking) and the priority/tier engine (fans,
priority).

Data Models:
    ReactionCounts: per-type reaction tally for a post or a reaction history
    Author: post author with the two reputation scores used for quality bonuses
    Post: content item with safety flags and freshly aggregated engagement
    PostReactionRules: optional per-post reaction configuration with defaults
    FanTier: one row of the ordered tier table
    FanStatus: per (fan, owner) interaction counters and current tier
    SubscriptionPlan: paid plan with its comment priority boost
    PriorityBreakdown: components of a comment priority score

These models use dataclasses for simplicity and map cleanly to the tables in
backend/db/schema.sql.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


REACTION_TYPES = ('laugh', 'support', 'care', 'thinking', 'applaud', 'fire')

CONTENT_TYPES = (
    'entertainment', 'educational', 'inspirational', 'motivational',
    'news', 'social', 'other',
)

MOOD_FUN_SEEKING = 'fun-seeking'
MOOD_LEARNING = 'learning'
MOOD_SUPPORTIVE = 'supportive'
MOOD_ENERGIZED = 'energized'
MOOD_BALANCED = 'balanced'
MOOD_NEUTRAL = 'neutral'

TIME_MORNING = 'morning'
TIME_AFTERNOON = 'afternoon'
TIME_EVENING = 'evening'
TIME_NIGHT = 'night'

SUBSCRIPTION_FREE = 'free'
SUBSCRIPTION_SUPERFAN = 'superfan'
SUBSCRIPTION_SUPERFAN_PLUS = 'superfan_plus'


def parse_timestamp(value: Any) -> datetime:
    """Parse a stored timestamp into an aware UTC datetime.

    Accepts ISO 8601 strings with or without an offset (naive values are
    taken as UTC, which is how SQLite's datetime('now') stores them) and
    datetime objects.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        dt = datetime.fromisoformat(text)

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime the way the schema stores it."""
    return parse_timestamp(value).strftime('%Y-%m-%dT%H:%M:%S+00:00')


@dataclass
class ReactionCounts:
    """Reaction tally by type.

    Attributes:
        total: Number of reactions tallied across all six types
    """
    laugh: int = 0
    support: int = 0
    care: int = 0
    thinking: int = 0
    applaud: int = 0
    fire: int = 0
    total: int = 0

    def get(self, reaction_type: str) -> int:
        return getattr(self, reaction_type) if reaction_type in REACTION_TYPES else 0

    def to_dict(self) -> Dict[str, int]:
        counts = {reaction_type: self.get(reaction_type) for reaction_type in REACTION_TYPES}
        counts['total'] = self.total
        return counts


@dataclass
class Author:
    id: int
    username: str
    avatar_url: Optional[str] = None
    aura_score: int = 0
    wisdom_score: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'username': self.username,
            'avatar_url': self.avatar_url,
            'aura_score': self.aura_score,
            'wisdom_score': self.wisdom_score,
        }


@dataclass
class Post:
    """A content item as the scoring engine sees it.

    Engagement fields (reactions, comment_count) are filled in per request by
    the ranking pipeline; the scoring engine never writes to a post.

    Attributes:
        id: Post ID (posts.id)
        user_id: Author user ID
        content_type: One of CONTENT_TYPES
        created_at: Aware UTC creation time
        hashtags: Lower-cased hashtags without the leading '#'
        visibility: public | followers | private
        is_crisis: Crisis content flag (scored down)
        needs_fact_check: Misinformation review flag (scored down)
        content: Post text
        author: Author record joined from users, if loaded
        reactions: Fresh per-type reaction tally
        comment_count: Fresh comment count
    """
    id: int
    user_id: int
    content_type: str
    created_at: datetime
    hashtags: List[str] = field(default_factory=list)
    visibility: str = 'public'
    is_crisis: bool = False
    needs_fact_check: bool = False
    content: str = ''
    author: Optional[Author] = None
    reactions: ReactionCounts = field(default_factory=ReactionCounts)
    comment_count: int = 0

    @property
    def total_engagement(self) -> int:
        return self.reactions.total + self.comment_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'content': self.content,
            'content_type': self.content_type,
            'hashtags': list(self.hashtags),
            'visibility': self.visibility,
            'is_crisis': self.is_crisis,
            'needs_fact_check': self.needs_fact_check,
            'created_at': format_timestamp(self.created_at),
            'author': self.author.to_dict() if self.author else None,
            'reactions': self.reactions.to_dict(),
            'comment_count': self.comment_count,
        }


@dataclass
class PostReactionRules:
    """Per-post reaction configuration. Without a stored record every type is allowed."""
    allowed_reactions: List[str] = field(default_factory=lambda: list(REACTION_TYPES))
    blocked_reactions: List[str] = field(default_factory=list)

    def is_blocked(self, reaction_type: str) -> bool:
        return reaction_type in self.blocked_reactions or reaction_type not in self.allowed_reactions


@dataclass
class FanTier:
    key: str
    badge_name: str
    min_interactions: int
    priority_multiplier: float = 1.0
    badge_icon: Optional[str] = None
    badge_color: Optional[str] = None


@dataclass
class FanStatus:
    """Interaction counters between one fan and one content owner.

    current_tier is always the highest tier whose threshold is <= total_interactions.
    """
    fan_user_id: int
    owner_user_id: int
    current_tier: str
    total_interactions: int = 0
    comment_count: int = 0
    reaction_count: int = 0
    tier_earned_at: Optional[str] = None
    last_interaction_at: Optional[str] = None


@dataclass
class SubscriptionPlan:
    plan_type: str
    priority_boost: float = 0.0
    name: str = ''
    price_monthly: float = 0.0
    features: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None

    @property
    def is_paid(self) -> bool:
        return self.plan_type != SUBSCRIPTION_FREE


FREE_PLAN = SubscriptionPlan(plan_type=SUBSCRIPTION_FREE, name='Free')


@dataclass
class PriorityBreakdown:
    """Comment priority components, persisted as-is at comment creation."""
    base_score: float
    fan_tier_bonus: float
    premium_bonus: float
    fan_tier: Optional[str] = None
    subscription_level: str = SUBSCRIPTION_FREE

    @property
    def final_score(self) -> float:
        return self.base_score + self.fan_tier_bonus + self.premium_bonus

    def to_dict(self) -> Dict[str, Any]:
        return {
            'base_score': self.base_score,
            'fan_tier_bonus': self.fan_tier_bonus,
            'premium_bonus': self.premium_bonus,
            'final_score': self.final_score,
            'fan_tier': self.fan_tier,
            'subscription_level': self.subscription_level,
        }
