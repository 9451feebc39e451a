"""
Database schema validation script.

Verifies that the database is correctly initialized with:
- All 18 required tables and their key columns
- Every system_config key that has a code default
- The five fan tiers with increasing thresholds
- The free, superfan and superfan_plus subscription plans
- Proper PRAGMA settings (foreign_keys=ON, journal_mode=WAL)

Usage:
    python -m clipfeed.backend.scripts.validate_schema
"""

import sqlite3
import sys

from clipfeed.backend.db.connection import get_connection
from clipfeed.backend.utils.config import CONFIG_DEFAULTS


# Key columns to verify for each table (table_name -> list of column names)
TABLE_KEY_COLUMNS = {
    'system_config': ['key', 'value'],
    'users': ['id', 'username', 'wisdom_score', 'aura_score'],
    'follows': ['follower_id', 'following_id'],
    'user_passions': ['user_id', 'passion', 'is_active'],
    'posts': ['id', 'user_id', 'content_type', 'hashtags', 'visibility', 'is_crisis', 'needs_fact_check', 'created_at'],
    'post_reaction_rules': ['post_id', 'allowed_reactions', 'blocked_reactions'],
    'reactions': ['id', 'user_id', 'post_id', 'reaction_type', 'created_at'],
    'comments': ['id', 'user_id', 'post_id', 'parent_comment_id', 'content'],
    'comment_priority_scores': ['comment_id', 'base_score', 'fan_tier_bonus', 'premium_bonus', 'final_score'],
    'fan_badges': ['tier_key', 'badge_name', 'min_interactions', 'priority_multiplier'],
    'user_fan_status': ['fan_user_id', 'owner_user_id', 'total_interactions', 'current_tier', 'tier_earned_at'],
    'fan_interactions': ['fan_user_id', 'owner_user_id', 'interaction_type', 'post_id'],
    'subscription_plans': ['plan_type', 'price_monthly', 'priority_boost'],
    'subscriptions': ['user_id', 'plan_id', 'status', 'expires_at'],
    'feed_interactions': ['user_id', 'post_id', 'interaction_type', 'duration_seconds'],
    'fan_groups': ['id', 'owner_user_id', 'min_tier_required', 'max_members'],
    'fan_group_members': ['group_id', 'user_id', 'role'],
    'notifications': ['user_id', 'type', 'message', 'payload'],
}

EXPECTED_TABLES = list(TABLE_KEY_COLUMNS)

EXPECTED_CONFIG_KEYS = list(CONFIG_DEFAULTS)

EXPECTED_FAN_TIERS = ['new', 'active', 'loyal', 'super_fan', 'die_hard']

EXPECTED_PLANS = ['free', 'superfan', 'superfan_plus']


class ValidationResult:
    """Tracks validation results."""

    def __init__(self):
        self.passed = []
        self.failed = []

    def add_pass(self, check_name: str):
        self.passed.append(check_name)
        print(f"PASS: {check_name}")

    def add_fail(self, check_name: str, details: str = None):
        msg = f"FAIL: {check_name}"
        if details:
            msg += f"\n  Details: {details}"
        self.failed.append(check_name)
        print(msg)

    def summary(self) -> bool:
        """Print summary and return True if all passed."""
        print("\n" + "=" * 70)
        print(f"VALIDATION SUMMARY: {len(self.passed)} passed, {len(self.failed)} failed")
        print("=" * 70)

        if self.failed:
            print("\nFailed checks:")
            for check in self.failed:
                print(f"  - {check}")
            return False

        print("\nAll checks passed!")
        return True


def validate_tables(conn: sqlite3.Connection, result: ValidationResult):
    """Verify all tables exist with their key columns."""
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name").fetchall()
    actual_tables = {row['name'] for row in rows}

    missing = set(EXPECTED_TABLES) - actual_tables
    if missing:
        result.add_fail("Table existence check", f"Missing tables: {', '.join(sorted(missing))}")
    else:
        result.add_pass(f"All {len(EXPECTED_TABLES)} tables exist")

    for table, expected_cols in TABLE_KEY_COLUMNS.items():
        if table not in actual_tables:
            continue  # Already reported as missing

        columns = [row['name'] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()]
        missing_cols = [col for col in expected_cols if col not in columns]

        if missing_cols:
            result.add_fail(f"Table '{table}' column check", f"Missing columns: {', '.join(missing_cols)}")
        else:
            result.add_pass(f"Table '{table}' has {len(columns)} columns including key columns")


def validate_system_config(conn: sqlite3.Connection, result: ValidationResult):
    """Verify every config key with a code default is seeded."""
    actual_keys = {row['key'] for row in conn.execute("SELECT key FROM system_config").fetchall()}

    missing = set(EXPECTED_CONFIG_KEYS) - actual_keys
    if missing:
        result.add_fail(
            "system_config keys check",
            f"Missing {len(missing)} keys: {', '.join(sorted(missing))}"
        )
    else:
        result.add_pass(f"All {len(EXPECTED_CONFIG_KEYS)} system_config keys present")


def validate_fan_tiers(conn: sqlite3.Connection, result: ValidationResult):
    """Verify the tier table lists every tier in threshold order, starting at 0."""
    rows = conn.execute(
        "SELECT tier_key, min_interactions FROM fan_badges ORDER BY min_interactions"
    ).fetchall()
    tiers = [row['tier_key'] for row in rows]

    if tiers != EXPECTED_FAN_TIERS:
        result.add_fail("Fan tier order", f"Expected {EXPECTED_FAN_TIERS}, found {tiers}")
        return
    if rows[0]['min_interactions'] != 0:
        result.add_fail("Lowest fan tier threshold", f"Expected 0, got {rows[0]['min_interactions']}")
        return

    result.add_pass(f"All {len(EXPECTED_FAN_TIERS)} fan tiers present in threshold order")


def validate_subscription_plans(conn: sqlite3.Connection, result: ValidationResult):
    """Verify the plans exist and the free plan carries no priority boost."""
    rows = conn.execute("SELECT plan_type, priority_boost FROM subscription_plans").fetchall()
    plans = {row['plan_type']: row['priority_boost'] for row in rows}

    missing = [plan for plan in EXPECTED_PLANS if plan not in plans]
    if missing:
        result.add_fail("Subscription plans", f"Missing plans: {', '.join(missing)}")
        return
    if plans['free'] != 0:
        result.add_fail("Free plan boost", f"Expected 0, got {plans['free']}")
        return

    result.add_pass(f"All {len(EXPECTED_PLANS)} subscription plans present")


def validate_pragma_settings(conn: sqlite3.Connection, result: ValidationResult):
    """Verify PRAGMA foreign_keys and journal_mode settings."""
    fk_value = conn.execute("PRAGMA foreign_keys").fetchone()[0]
    if fk_value == 1:
        result.add_pass("PRAGMA foreign_keys = 1")
    else:
        result.add_fail("PRAGMA foreign_keys", f"Expected 1, got {fk_value}")

    journal_mode = conn.execute("PRAGMA journal_mode").fetchone()[0].lower()
    if journal_mode == 'wal':
        result.add_pass("PRAGMA journal_mode = 'wal'")
    else:
        result.add_fail("PRAGMA journal_mode", f"Expected 'wal', got '{journal_mode}'")


def main(db_path=None):
    """Run all validation checks. Returns the process exit code."""
    print("=" * 70)
    print("ClipFeed - Database Schema Validation")
    print("=" * 70)
    print()

    result = ValidationResult()

    try:
        with get_connection(db_path) as conn:
            validate_pragma_settings(conn, result)
            validate_tables(conn, result)
            validate_system_config(conn, result)
            validate_fan_tiers(conn, result)
            validate_subscription_plans(conn, result)
    except sqlite3.Error as e:
        print(f"\nFATAL ERROR: {e}")
        return 1

    return 0 if result.summary() else 1


if __name__ == '__main__':
    sys.exit(main())
