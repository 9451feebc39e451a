"""
Tests for the feed ranking pipelines.

Behavioral tests for the personalized feed (candidate pools, ordering,
pagination, degradation), the discovery and trending feeds, and feed
interaction tracking.
"""

import sqlite3
from datetime import timedelta

import pytest

from clipfeed import storage
from clipfeed.backend.utils.errors import InvalidInputError, NotFoundError
from clipfeed.ranking import (
    build_discovery_feed,
    build_personalized_feed,
    build_trending_feed,
    track_interaction,
)


@pytest.fixture
def follow(seeded_db):
    def _follow(follower_id, following_id):
        seeded_db.execute(
            "INSERT INTO follows (follower_id, following_id) VALUES (?, ?)",
            (follower_id, following_id)
        )
        seeded_db.commit()

    return _follow


@pytest.fixture
def add_passion(seeded_db):
    def _add_passion(user_id, passion, is_active=True):
        seeded_db.execute(
            "INSERT INTO user_passions (user_id, passion, is_active) VALUES (?, ?, ?)",
            (user_id, passion, int(is_active))
        )
        seeded_db.commit()

    return _add_passion


class TestPersonalizedFeed:

    def test_returns_top_page_in_score_order(self, seeded_db, make_user, make_post, follow, now):
        """80 candidates, page of 20, scores non-increasing."""
        viewer = make_user('viewer')
        followed = make_user('followed')
        stranger = make_user('stranger')
        follow(viewer, followed)

        content_types = ['entertainment', 'educational', 'news', 'social', 'other']
        for i in range(50):
            make_post(followed, content_type=content_types[i % 5], created_at=now - timedelta(hours=i))
        for i in range(30):
            make_post(stranger, content_type=content_types[i % 5], created_at=now - timedelta(minutes=20 * i))

        feed = build_personalized_feed(seeded_db, viewer, limit=20, now=now)

        assert feed['total_analyzed'] == 80
        assert feed['count'] == 20
        scores = [post['feed_score'] for post in feed['posts']]
        assert scores == sorted(scores, reverse=True)
        assert feed['context']['following_count'] == 1

    def test_ties_broken_by_post_id(self, seeded_db, make_user, make_post, follow, now):
        viewer = make_user('viewer')
        followed = make_user('followed')
        follow(viewer, followed)
        created = now - timedelta(days=3)
        ids = [make_post(followed, created_at=created) for _ in range(4)]

        feed = build_personalized_feed(seeded_db, viewer, now=now)

        assert [post['id'] for post in feed['posts']] == sorted(ids)

    def test_offset_skips_scored_posts(self, seeded_db, make_user, make_post, follow, now):
        viewer = make_user('viewer')
        followed = make_user('followed')
        follow(viewer, followed)
        for i in range(10):
            make_post(followed, created_at=now - timedelta(hours=2 * i))

        full = build_personalized_feed(seeded_db, viewer, limit=10, now=now)
        page = build_personalized_feed(seeded_db, viewer, limit=3, offset=4, now=now)

        assert [p['id'] for p in page['posts']] == [p['id'] for p in full['posts'][4:7]]
        assert page['total_analyzed'] == 10

    def test_without_follows_uses_own_posts(self, seeded_db, make_user, make_post, now):
        viewer = make_user('viewer')
        own = make_post(viewer, created_at=now - timedelta(hours=1))
        other = make_post(make_user('other'), created_at=now - timedelta(hours=1))

        feed = build_personalized_feed(seeded_db, viewer, now=now)

        assert {post['id'] for post in feed['posts']} == {own, other}
        assert feed['context']['following_count'] == 0

    def test_non_public_posts_excluded(self, seeded_db, make_user, make_post, follow, now):
        viewer = make_user('viewer')
        followed = make_user('followed')
        follow(viewer, followed)
        public = make_post(followed, created_at=now)
        make_post(followed, created_at=now, visibility='private')
        make_post(followed, created_at=now, visibility='followers')

        feed = build_personalized_feed(seeded_db, viewer, now=now)

        assert [post['id'] for post in feed['posts']] == [public]

    def test_context_and_breakdown(self, seeded_db, make_user, make_post, make_reaction, add_passion, now):
        viewer = make_user('viewer')
        author = make_user('author')
        add_passion(viewer, 'cooking')
        add_passion(viewer, 'golf', is_active=False)
        for _ in range(7):
            make_reaction(viewer, make_post(author, created_at=now - timedelta(days=5)), 'laugh',
                          created_at=now - timedelta(days=1))
        post_id = make_post(author, content_type='entertainment', hashtags=['homecooking'],
                            created_at=now - timedelta(minutes=30))

        feed = build_personalized_feed(seeded_db, viewer, now=now)

        assert feed['context']['mood'] == 'fun-seeking'
        assert feed['context']['time_preference'] == 'night'
        assert feed['context']['passions'] == ['cooking']
        top = feed['posts'][0]
        assert top['id'] == post_id
        assert top['score_breakdown']['mood'] == 40
        assert top['score_breakdown']['passion'] == 35
        assert top['feed_score'] == sum(top['score_breakdown'].values())

    def test_reaction_rules_attached(self, seeded_db, make_user, make_post, now):
        viewer = make_user('viewer')
        post_id = make_post(viewer, created_at=now)
        seeded_db.execute(
            "INSERT INTO post_reaction_rules (post_id, blocked_reactions) VALUES (?, ?)",
            (post_id, '["laugh"]')
        )
        seeded_db.commit()

        post = build_personalized_feed(seeded_db, viewer, now=now)['posts'][0]

        assert post['blocked_reactions'] == ['laugh']
        assert 'care' in post['allowed_reactions']

    def test_engagement_failure_degrades_one_post(self, seeded_db, make_user, make_post, make_reaction,
                                                  monkeypatch, now):
        """A failed engagement read scores that post with zero engagement and warns."""
        viewer = make_user('viewer')
        author = make_user('author')
        broken_id = make_post(author, created_at=now - timedelta(days=3))
        healthy_id = make_post(author, created_at=now - timedelta(days=3))
        for i in range(5):
            make_reaction(make_user(f'fan{i}'), healthy_id, 'fire')

        real_fetch = storage.fetch_post_reaction_types

        def flaky(conn, post_id):
            if post_id == broken_id:
                raise sqlite3.OperationalError("database is locked")
            return real_fetch(conn, post_id)

        monkeypatch.setattr(storage, 'fetch_post_reaction_types', flaky)

        feed = build_personalized_feed(seeded_db, viewer, now=now)

        posts = {post['id']: post for post in feed['posts']}
        assert posts[broken_id]['reactions']['total'] == 0
        assert posts[healthy_id]['reactions']['fire'] == 5
        assert [w['type'] for w in feed['warnings']] == ['engagement_unavailable']
        assert feed['warnings'][0]['context'] == {'post_id': broken_id}

    def test_unknown_user(self, seeded_db, now):
        with pytest.raises(NotFoundError) as exc_info:
            build_personalized_feed(seeded_db, 999, now=now)
        assert exc_info.value.field == 'user_id'

    @pytest.mark.parametrize('limit,offset,field', [(0, 0, 'limit'), (20, -1, 'offset')])
    def test_invalid_page(self, seeded_db, make_user, now, limit, offset, field):
        viewer = make_user('viewer')

        with pytest.raises(InvalidInputError) as exc_info:
            build_personalized_feed(seeded_db, viewer, limit=limit, offset=offset, now=now)
        assert exc_info.value.field == field


class TestDiscoveryFeed:

    def test_ranked_by_engagement(self, seeded_db, make_user, make_post, make_reaction):
        viewer = make_user('viewer')
        author = make_user('author')
        quiet = make_post(author)
        busy = make_post(author)
        for i in range(3):
            make_reaction(make_user(f'fan{i}'), busy, 'applaud')

        feed = build_discovery_feed(seeded_db, viewer)

        assert [post['id'] for post in feed['posts']] == [busy, quiet]
        assert feed['posts'][0]['engagement_score'] == 3

    def test_narrowed_to_passions(self, seeded_db, make_user, make_post, add_passion):
        viewer = make_user('viewer')
        author = make_user('author')
        add_passion(viewer, 'jazz')
        match = make_post(author, hashtags=['jazzpiano'])
        make_post(author, hashtags=['football'])

        feed = build_discovery_feed(seeded_db, viewer)

        assert [post['id'] for post in feed['posts']] == [match]

    def test_without_passions_returns_everything(self, seeded_db, make_user, make_post):
        viewer = make_user('viewer')
        author = make_user('author')
        ids = {make_post(author, hashtags=['a']), make_post(author, hashtags=['b'])}

        feed = build_discovery_feed(seeded_db, viewer)

        assert {post['id'] for post in feed['posts']} == ids


class TestTrendingFeed:

    def test_window_and_rate(self, seeded_db, make_user, make_post, make_reaction, now):
        author = make_user('author')
        old = make_post(author, created_at=now - timedelta(hours=30))
        steady = make_post(author, created_at=now - timedelta(hours=4))
        fresh = make_post(author, created_at=now - timedelta(minutes=10))
        for i in range(8):
            fan = make_user(f'fan{i}')
            make_reaction(fan, steady, 'fire')
            make_reaction(fan, old, 'fire')
        make_reaction(make_user('early'), fresh, 'laugh')

        feed = build_trending_feed(seeded_db, now=now)

        assert feed['timeframe'] == '24 hours'
        assert [post['id'] for post in feed['posts']] == [steady, fresh]
        assert feed['posts'][0]['trending_score'] == 2.0
        assert feed['posts'][1]['trending_score'] == 1.0
        assert old not in [post['id'] for post in feed['posts']]


class TestTrackInteraction:

    def test_records_interaction(self, seeded_db, make_user, make_post, now):
        viewer = make_user('viewer')
        post_id = make_post(make_user('author'))

        result = track_interaction(seeded_db, viewer, post_id, 'long_view', duration_seconds=42.5, now=now)

        assert result['interaction_type'] == 'long_view'
        row = seeded_db.execute("SELECT * FROM feed_interactions WHERE id = ?", (result['id'],)).fetchone()
        assert row['duration_seconds'] == 42.5

    def test_unknown_type(self, seeded_db, make_user, make_post, now):
        viewer = make_user('viewer')
        post_id = make_post(viewer)

        with pytest.raises(InvalidInputError) as exc_info:
            track_interaction(seeded_db, viewer, post_id, 'stare', now=now)
        assert exc_info.value.field == 'interaction_type'

    def test_negative_duration(self, seeded_db, make_user, make_post, now):
        viewer = make_user('viewer')
        post_id = make_post(viewer)

        with pytest.raises(InvalidInputError):
            track_interaction(seeded_db, viewer, post_id, 'view', duration_seconds=-1, now=now)

    def test_unknown_post(self, seeded_db, make_user, now):
        viewer = make_user('viewer')

        with pytest.raises(NotFoundError) as exc_info:
            track_interaction(seeded_db, viewer, 404, 'view', now=now)
        assert exc_info.value.field == 'post_id'
