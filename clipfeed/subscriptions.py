"""Subscription plans and per-user subscriptions.

A user holds at most one subscription row (UNIQUE user_id). It counts only
while status is 'active' and expires_at is unset or in the future; otherwise
the user is on the free plan with no priority boost.
"""

import calendar
import json
import sqlite3
from datetime import datetime
from typing import Any, Dict, List

import structlog

from clipfeed import storage
from clipfeed.backend.utils.errors import InvalidInputError, NotFoundError
from clipfeed.models.social_models import (
    FREE_PLAN,
    SUBSCRIPTION_FREE,
    SubscriptionPlan,
    format_timestamp,
    parse_timestamp,
)

logger = structlog.get_logger(__name__)


def add_months(moment: datetime, months: int = 1) -> datetime:
    """
    Same wall-clock time `months` calendar months later, clamped to month end.

    Examples:
        >>> add_months(datetime(2024, 1, 31)).date()
        datetime.date(2024, 2, 29)
    """
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _plan_from_row(row: sqlite3.Row) -> SubscriptionPlan:
    return SubscriptionPlan(
        id=row['id'],
        plan_type=row['plan_type'],
        name=row['name'],
        price_monthly=row['price_monthly'],
        priority_boost=row['priority_boost'],
        features=json.loads(row['features'] or '{}'),
    )


def _plan_to_dict(plan: SubscriptionPlan) -> Dict[str, Any]:
    return {
        'id': plan.id,
        'plan_type': plan.plan_type,
        'name': plan.name,
        'price_monthly': plan.price_monthly,
        'priority_boost': plan.priority_boost,
        'features': plan.features,
    }


def list_plans(conn: sqlite3.Connection, include_free: bool = False) -> List[Dict[str, Any]]:
    """Active plans, cheapest first. The free plan is listed only on request."""
    rows = conn.execute("""
        SELECT id, plan_type, name, price_monthly, priority_boost, features
        FROM subscription_plans
        WHERE is_active = 1
        ORDER BY price_monthly ASC, id ASC
    """).fetchall()

    plans = [_plan_from_row(row) for row in rows]
    return [_plan_to_dict(plan) for plan in plans if include_free or plan.is_paid]


def get_active_plan(conn: sqlite3.Connection, user_id: int, now: datetime) -> SubscriptionPlan:
    """The plan a user's active, unexpired subscription is on, or the free plan."""
    row = conn.execute("""
        SELECT sp.id, sp.plan_type, sp.name, sp.price_monthly, sp.priority_boost, sp.features,
               s.expires_at
        FROM subscriptions s
        JOIN subscription_plans sp ON s.plan_id = sp.id
        WHERE s.user_id = ? AND s.status = 'active'
    """, (user_id,)).fetchone()

    if row is None:
        return FREE_PLAN
    if row['expires_at'] is not None and parse_timestamp(row['expires_at']) <= parse_timestamp(now):
        return FREE_PLAN
    return _plan_from_row(row)


def get_user_subscription(conn: sqlite3.Connection, user_id: int, now: datetime) -> Dict[str, Any]:
    """Current plan of a user with the subscription dates when it is a paid plan."""
    storage.require_user(conn, user_id)
    plan = get_active_plan(conn, user_id, now)

    subscription = {'user_id': user_id, 'plan': _plan_to_dict(plan), 'status': 'active',
                    'started_at': None, 'expires_at': None}
    if plan.is_paid:
        row = conn.execute(
            "SELECT status, started_at, expires_at FROM subscriptions WHERE user_id = ?",
            (user_id,)
        ).fetchone()
        subscription.update(dict(row))
    return subscription


def subscribe(conn: sqlite3.Connection, user_id: int, plan_type: str, now: datetime) -> Dict[str, Any]:
    """
    Start or replace a user's subscription for one month from `now`.

    Raises:
        NotFoundError: Unknown user or plan
        InvalidInputError: plan_type is the free plan
    """
    storage.require_user(conn, user_id)

    if plan_type == SUBSCRIPTION_FREE:
        raise InvalidInputError("The free plan does not need a subscription", field='plan_type')

    row = conn.execute("""
        SELECT id, plan_type, name, price_monthly, priority_boost, features
        FROM subscription_plans
        WHERE plan_type = ? AND is_active = 1
    """, (plan_type,)).fetchone()
    if row is None:
        raise NotFoundError(f"Plan '{plan_type}' not found", field='plan_type')
    plan = _plan_from_row(row)

    started_at = format_timestamp(now)
    expires_at = format_timestamp(add_months(parse_timestamp(now)))

    subscription = conn.execute("""
        INSERT INTO subscriptions (user_id, plan_id, status, started_at, expires_at)
        VALUES (?, ?, 'active', ?, ?)
        ON CONFLICT (user_id) DO UPDATE SET
            plan_id = excluded.plan_id,
            status = 'active',
            started_at = excluded.started_at,
            expires_at = excluded.expires_at
        RETURNING id, user_id, status, started_at, expires_at
    """, (user_id, plan.id, started_at, expires_at)).fetchone()
    conn.commit()

    logger.info("subscription_started", user_id=user_id, plan_type=plan_type, expires_at=expires_at)

    result = dict(subscription)
    result['plan'] = _plan_to_dict(plan)
    return result
