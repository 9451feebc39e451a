"""
Tests for subscriptions and tier-gated fan groups.

Behavioral tests for plan listing, subscribing, expiry, calendar month
arithmetic, and fan group creation and joining.
"""

from datetime import datetime, timedelta, timezone

import pytest

from clipfeed.backend.utils.errors import ForbiddenError, InvalidInputError, NotFoundError
from clipfeed.chat import create_fan_group, get_fan_group, join_fan_group
from clipfeed.fans import log_interaction
from clipfeed.subscriptions import (
    add_months,
    get_active_plan,
    get_user_subscription,
    list_plans,
    subscribe,
)


def earn_interactions(conn, fan_id, owner_id, count, now):
    for i in range(count):
        log_interaction(conn, fan_id, owner_id, 'view', now=now + timedelta(seconds=i))


class TestAddMonths:

    @pytest.mark.parametrize('start,expected', [
        (datetime(2024, 1, 15, 9, 30), datetime(2024, 2, 15, 9, 30)),
        (datetime(2024, 1, 31), datetime(2024, 2, 29)),
        (datetime(2025, 1, 31), datetime(2025, 2, 28)),
        (datetime(2024, 12, 10), datetime(2025, 1, 10)),
        (datetime(2024, 3, 31), datetime(2024, 4, 30)),
    ])
    def test_one_month(self, start, expected):
        assert add_months(start) == expected

    def test_keeps_timezone(self):
        start = datetime(2026, 3, 14, 23, 0, tzinfo=timezone.utc)
        assert add_months(start, 12) == datetime(2027, 3, 14, 23, 0, tzinfo=timezone.utc)


class TestPlans:

    def test_paid_plans_cheapest_first(self, seeded_db):
        plans = list_plans(seeded_db)

        assert [plan['plan_type'] for plan in plans] == ['superfan', 'superfan_plus']
        assert plans[0]['price_monthly'] == 4.99
        assert plans[1]['priority_boost'] == 50
        assert plans[1]['features']['celebrity_dashboard'] is True

    def test_include_free(self, seeded_db):
        plans = list_plans(seeded_db, include_free=True)

        assert [plan['plan_type'] for plan in plans] == ['free', 'superfan', 'superfan_plus']


class TestSubscribe:

    def test_subscribe_for_one_month(self, seeded_db, make_user, now):
        user = make_user('fan')

        result = subscribe(seeded_db, user, 'superfan', now)

        assert result['status'] == 'active'
        assert result['started_at'] == '2026-03-14T23:00:00+00:00'
        assert result['expires_at'] == '2026-04-14T23:00:00+00:00'
        assert result['plan']['plan_type'] == 'superfan'
        assert get_active_plan(seeded_db, user, now).priority_boost == 25

    def test_resubscribe_replaces_plan(self, seeded_db, make_user, now):
        user = make_user('fan')
        subscribe(seeded_db, user, 'superfan', now)

        subscribe(seeded_db, user, 'superfan_plus', now + timedelta(days=3))

        assert get_active_plan(seeded_db, user, now + timedelta(days=3)).plan_type == 'superfan_plus'
        assert seeded_db.execute("SELECT COUNT(*) FROM subscriptions").fetchone()[0] == 1

    def test_expired_subscription_is_free(self, seeded_db, make_user, now):
        user = make_user('fan')
        subscribe(seeded_db, user, 'superfan_plus', now)

        assert get_active_plan(seeded_db, user, now + timedelta(days=40)).plan_type == 'free'
        assert get_user_subscription(seeded_db, user, now + timedelta(days=40))['plan']['plan_type'] == 'free'

    def test_cancelled_subscription_is_free(self, seeded_db, make_user, now):
        user = make_user('fan')
        subscribe(seeded_db, user, 'superfan', now)
        seeded_db.execute("UPDATE subscriptions SET status = 'cancelled' WHERE user_id = ?", (user,))
        seeded_db.commit()

        assert get_active_plan(seeded_db, user, now).plan_type == 'free'

    def test_free_plan_rejected(self, seeded_db, make_user, now):
        with pytest.raises(InvalidInputError) as exc_info:
            subscribe(seeded_db, make_user('fan'), 'free', now)
        assert exc_info.value.field == 'plan_type'

    def test_unknown_plan(self, seeded_db, make_user, now):
        with pytest.raises(NotFoundError) as exc_info:
            subscribe(seeded_db, make_user('fan'), 'platinum', now)
        assert exc_info.value.field == 'plan_type'

    def test_user_subscription_dates(self, seeded_db, make_user, now):
        user = make_user('fan')
        assert get_user_subscription(seeded_db, user, now)['started_at'] is None

        subscribe(seeded_db, user, 'superfan', now)
        subscription = get_user_subscription(seeded_db, user, now)

        assert subscription['plan']['plan_type'] == 'superfan'
        assert subscription['expires_at'] == '2026-04-14T23:00:00+00:00'


class TestFanGroups:

    def test_owner_joins_as_admin(self, seeded_db, make_user, now):
        owner = make_user('owner')

        group = create_fan_group(seeded_db, owner, 'loyal', now=now)

        assert group['name'] == 'Loyal Fan Group'
        assert group['member_count'] == 1
        members = get_fan_group(seeded_db, group['id'])['members']
        assert [(m['user_id'], m['role']) for m in members] == [(owner, 'admin')]

    def test_unknown_tier(self, seeded_db, make_user, now):
        with pytest.raises(InvalidInputError) as exc_info:
            create_fan_group(seeded_db, make_user('owner'), 'platinum', now=now)
        assert exc_info.value.field == 'min_tier_required'

    def test_qualified_fan_joins(self, seeded_db, make_user, now):
        owner = make_user('owner')
        fan = make_user('fan')
        earn_interactions(seeded_db, fan, owner, 50, now)
        group = create_fan_group(seeded_db, owner, 'loyal', name='Inner Circle', now=now)

        result = join_fan_group(seeded_db, fan, group['id'], now=now)

        assert result['role'] == 'fan'
        assert result['already_member'] is False
        assert get_fan_group(seeded_db, group['id'])['member_count'] == 2

    def test_join_is_idempotent(self, seeded_db, make_user, now):
        owner = make_user('owner')
        fan = make_user('fan')
        earn_interactions(seeded_db, fan, owner, 10, now)
        group = create_fan_group(seeded_db, owner, 'active', now=now)
        join_fan_group(seeded_db, fan, group['id'], now=now)

        again = join_fan_group(seeded_db, fan, group['id'], now=now)

        assert again['already_member'] is True
        assert get_fan_group(seeded_db, group['id'])['member_count'] == 2

    def test_tier_below_requirement(self, seeded_db, make_user, now):
        owner = make_user('owner')
        fan = make_user('fan')
        earn_interactions(seeded_db, fan, owner, 49, now)
        group = create_fan_group(seeded_db, owner, 'loyal', now=now)

        with pytest.raises(ForbiddenError):
            join_fan_group(seeded_db, fan, group['id'], now=now)

    def test_non_fan_rejected(self, seeded_db, make_user, now):
        owner = make_user('owner')
        group = create_fan_group(seeded_db, owner, 'new', now=now)

        with pytest.raises(ForbiddenError) as exc_info:
            join_fan_group(seeded_db, make_user('stranger'), group['id'], now=now)
        assert exc_info.value.field == 'user_id'

    def test_full_group(self, seeded_db, make_user, now):
        owner = make_user('owner')
        fan = make_user('fan')
        earn_interactions(seeded_db, fan, owner, 1, now)
        group = create_fan_group(seeded_db, owner, 'new', max_members=1, now=now)

        with pytest.raises(ForbiddenError) as exc_info:
            join_fan_group(seeded_db, fan, group['id'], now=now)
        assert exc_info.value.field == 'group_id'

    def test_unknown_group(self, seeded_db, make_user, now):
        with pytest.raises(NotFoundError) as exc_info:
            join_fan_group(seeded_db, make_user('fan'), 321, now=now)
        assert exc_info.value.field == 'group_id'
