"""
Shared pytest fixtures for the clipfeed test suite.

These fixtures provide test databases, schema setup, and small factories for
users, posts and reactions. All tests are behavioral - they verify what the
code should do, not how it does it.
"""

import json
import os
import tempfile
from datetime import datetime, timezone

import pytest

from clipfeed.backend.db.connection import open_connection
from clipfeed.backend.db.schema import SCHEMA_SQL_PATH, SEED_SQL_PATH, apply_sql_file
from clipfeed.models.social_models import format_timestamp

# Fixed reference time: a Saturday, 23:00 UTC (night, so no time-of-day bonus)
NOW = datetime(2026, 3, 14, 23, 0, tzinfo=timezone.utc)

# The app configures file logging at import time
os.environ.setdefault('LOG_DIR', tempfile.mkdtemp(prefix='clipfeed_logs_'))


@pytest.fixture
def temp_db_path():
    """Provide a temporary database file path that is cleaned up after test."""
    with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as f:
        db_path = f.name

    yield db_path

    # Cleanup
    if os.path.exists(db_path):
        os.unlink(db_path)
    # Also cleanup WAL files if they exist
    for suffix in ['-wal', '-shm']:
        wal_file = db_path + suffix
        if os.path.exists(wal_file):
            os.unlink(wal_file)


@pytest.fixture
def db_connection(temp_db_path):
    """Provide a configured SQLite connection to an empty temporary database."""
    conn = open_connection(temp_db_path)
    yield conn
    conn.close()


@pytest.fixture
def schema_initialized_db(temp_db_path):
    """Provide a database with schema.sql applied and no reference data."""
    conn = open_connection(temp_db_path)
    apply_sql_file(conn, SCHEMA_SQL_PATH)
    yield conn
    conn.close()


@pytest.fixture
def seeded_db(temp_db_path):
    """
    Provide a database with schema, fan tiers, plans and config seeded.

    Loads schema.sql then seed.sql.
    """
    conn = open_connection(temp_db_path)
    apply_sql_file(conn, SCHEMA_SQL_PATH)
    apply_sql_file(conn, SEED_SQL_PATH)
    yield conn
    conn.close()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_user(seeded_db):
    """Factory: insert a user and return its id."""
    def _make_user(username, aura_score=0, wisdom_score=0, avatar_url=None):
        cursor = seeded_db.execute("""
            INSERT INTO users (username, avatar_url, aura_score, wisdom_score)
            VALUES (?, ?, ?, ?)
        """, (username, avatar_url, aura_score, wisdom_score))
        seeded_db.commit()
        return cursor.lastrowid

    return _make_user


@pytest.fixture
def make_post(seeded_db):
    """Factory: insert a post and return its id.

    created_at defaults to the current wall-clock time so posts stay inside the
    windows the API computes from datetime.now().
    """
    def _make_post(user_id, content_type='other', hashtags=None, created_at=None,
                   visibility='public', is_crisis=False, needs_fact_check=False, content='clip'):
        if created_at is None:
            created_at = datetime.now(timezone.utc)
        cursor = seeded_db.execute("""
            INSERT INTO posts
            (user_id, content, content_type, hashtags, visibility, is_crisis, needs_fact_check, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (user_id, content, content_type, json.dumps(hashtags or []), visibility,
              int(is_crisis), int(needs_fact_check), format_timestamp(created_at)))
        seeded_db.commit()
        return cursor.lastrowid

    return _make_post


@pytest.fixture
def make_reaction(seeded_db):
    """Factory: insert a reaction row directly (no points awarded)."""
    def _make_reaction(user_id, post_id, reaction_type, created_at=None):
        if created_at is None:
            created_at = datetime.now(timezone.utc)
        cursor = seeded_db.execute("""
            INSERT INTO reactions (user_id, post_id, reaction_type, created_at)
            VALUES (?, ?, ?, ?)
        """, (user_id, post_id, reaction_type, format_timestamp(created_at)))
        seeded_db.commit()
        return cursor.lastrowid

    return _make_reaction


@pytest.fixture
def expected_tables():
    """Return list of all 18 expected table names."""
    return [
        'system_config',
        'users',
        'follows',
        'user_passions',
        'posts',
        'post_reaction_rules',
        'reactions',
        'comments',
        'comment_priority_scores',
        'fan_badges',
        'user_fan_status',
        'fan_interactions',
        'subscription_plans',
        'subscriptions',
        'feed_interactions',
        'fan_groups',
        'fan_group_members',
        'notifications',
    ]


@pytest.fixture
def expected_config_keys():
    """Return list of all 10 expected system_config keys."""
    return [
        # Feed ranking (6)
        'mood_lookback',
        'feed_following_pool_size',
        'feed_discovery_pool_size',
        'discover_pool_size',
        'trending_window_hours',
        'feed_timezone',
        # Comment priority (4)
        'comment_base_score',
        'fan_tier_bonus_unit',
        'untiered_fan_bonus_multiplier',
        'high_aura_threshold',
    ]


@pytest.fixture
def test_client(temp_db_path):
    """Provide a FastAPI TestClient backed by a temporary seeded database.

    Sets DB_PATH env var so the app lifespan connects to the temp database.
    Uses context manager to ensure lifespan startup/shutdown run properly.
    """
    from fastapi.testclient import TestClient
    from clipfeed.api.app import app

    old_db_path = os.environ.get('DB_PATH')
    os.environ['DB_PATH'] = temp_db_path

    conn = open_connection(temp_db_path)
    apply_sql_file(conn, SCHEMA_SQL_PATH)
    apply_sql_file(conn, SEED_SQL_PATH)
    conn.close()

    with TestClient(app) as client:
        yield client

    # Restore original DB_PATH
    if old_db_path is not None:
        os.environ['DB_PATH'] = old_db_path
    elif 'DB_PATH' in os.environ:
        del os.environ['DB_PATH']
