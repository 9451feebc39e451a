#!/usr/bin/env python3
"""
ClipFeed - Development Seed Data Script
Generates a small social graph for local development of the web client.
Idempotent: safe to run multiple times (uses INSERT OR IGNORE).
"""

import json
import sqlite3
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

from clipfeed.backend.db.connection import get_db_path, open_connection
from clipfeed.backend.db.schema import initialize_schema
from clipfeed.models.social_models import format_timestamp


def seed_users(conn):
    """Create 6 users with varied wisdom/aura scores."""
    users_data = [
        ("maya_makes", "https://cdn.example.com/avatars/maya.png", 420, 910),
        ("dev_dan", "https://cdn.example.com/avatars/dan.png", 880, 340),
        ("laughtrack", None, 120, 650),
        ("quiet_reader", None, 35, 20),
        ("coach_kim", "https://cdn.example.com/avatars/kim.png", 300, 820),
        ("newsdesk", None, 510, 150),
    ]

    cursor = conn.cursor()
    for username, avatar_url, wisdom, aura in users_data:
        cursor.execute("""
            INSERT OR IGNORE INTO users (username, avatar_url, wisdom_score, aura_score)
            VALUES (?, ?, ?, ?)
        """, (username, avatar_url, wisdom, aura))

    conn.commit()
    cursor.execute("SELECT id, username FROM users ORDER BY id")
    return {row['username']: row['id'] for row in cursor.fetchall()}


def seed_follows(conn, user_ids):
    """quiet_reader follows three creators; the creators follow each other."""
    follows_data = [
        ("quiet_reader", "maya_makes"),
        ("quiet_reader", "dev_dan"),
        ("quiet_reader", "laughtrack"),
        ("maya_makes", "coach_kim"),
        ("dev_dan", "maya_makes"),
    ]

    cursor = conn.cursor()
    for follower, following in follows_data:
        cursor.execute("""
            INSERT OR IGNORE INTO follows (follower_id, following_id) VALUES (?, ?)
        """, (user_ids[follower], user_ids[following]))

    conn.commit()
    return len(follows_data)


def seed_passions(conn, user_ids):
    passions_data = [
        ("quiet_reader", "cooking"),
        ("quiet_reader", "python"),
        ("maya_makes", "diy"),
        ("dev_dan", "python"),
    ]

    cursor = conn.cursor()
    for username, passion in passions_data:
        cursor.execute("""
            INSERT OR IGNORE INTO user_passions (user_id, passion) VALUES (?, ?)
        """, (user_ids[username], passion))

    conn.commit()
    return len(passions_data)


def seed_posts(conn, user_ids):
    """Create 8 public posts spread over the last two days."""
    now = datetime.now(timezone.utc)
    posts_data = [
        ("maya_makes", "Ten-minute bookshelf from one plank", "educational", ["diy", "woodworking"], 0.5, False, False),
        ("laughtrack", "My cat reviewing my code", "entertainment", ["cats", "python"], 2, False, False),
        ("dev_dan", "Generators explained in 60 seconds", "educational", ["python"], 5, False, False),
        ("coach_kim", "You don't need motivation, you need a routine", "motivational", ["fitness"], 9, False, False),
        ("newsdesk", "Storm warning for the coast tonight", "news", ["weather"], 1, True, False),
        ("newsdesk", "Study claims coffee cures everything", "news", ["health"], 20, False, True),
        ("maya_makes", "Fixing a wobbly chair", "educational", ["diy"], 30, False, False),
        ("laughtrack", "When the build passes on the first try", "entertainment", ["memes"], 40, False, False),
    ]

    cursor = conn.cursor()
    for username, content, content_type, hashtags, hours_ago, is_crisis, needs_fact_check in posts_data:
        existing = cursor.execute(
            "SELECT id FROM posts WHERE user_id = ? AND content = ?",
            (user_ids[username], content)
        ).fetchone()
        if existing is not None:
            continue

        cursor.execute("""
            INSERT INTO posts
            (user_id, content, content_type, hashtags, visibility, is_crisis, needs_fact_check, created_at)
            VALUES (?, ?, ?, ?, 'public', ?, ?, ?)
        """, (user_ids[username], content, content_type, json.dumps(hashtags),
              int(is_crisis), int(needs_fact_check),
              format_timestamp(now - timedelta(hours=hours_ago))))

    conn.commit()
    cursor.execute("SELECT id, content FROM posts ORDER BY id")
    return {row['content']: row['id'] for row in cursor.fetchall()}


def seed_reaction_rules(conn, post_ids):
    """The crisis post only accepts supportive reactions."""
    cursor = conn.cursor()
    cursor.execute("""
        INSERT OR IGNORE INTO post_reaction_rules (post_id, allowed_reactions, blocked_reactions)
        VALUES (?, ?, ?)
    """, (post_ids["Storm warning for the coast tonight"],
          json.dumps(["support", "care"]),
          json.dumps(["laugh"])))

    conn.commit()
    return 1


def seed_reactions(conn, user_ids, post_ids):
    """Give quiet_reader a laugh-heavy history so the feed detects fun-seeking."""
    now = datetime.now(timezone.utc)
    reactions_data = [
        ("quiet_reader", "My cat reviewing my code", "laugh", 1),
        ("quiet_reader", "When the build passes on the first try", "laugh", 2),
        ("quiet_reader", "Generators explained in 60 seconds", "thinking", 3),
        ("maya_makes", "My cat reviewing my code", "laugh", 1),
        ("dev_dan", "Ten-minute bookshelf from one plank", "applaud", 0.2),
        ("coach_kim", "Ten-minute bookshelf from one plank", "fire", 0.3),
        ("laughtrack", "Generators explained in 60 seconds", "support", 4),
    ]

    cursor = conn.cursor()
    for username, content, reaction_type, hours_ago in reactions_data:
        cursor.execute("""
            INSERT OR IGNORE INTO reactions (user_id, post_id, reaction_type, created_at)
            VALUES (?, ?, ?, ?)
        """, (user_ids[username], post_ids[content], reaction_type,
              format_timestamp(now - timedelta(hours=hours_ago))))

    conn.commit()
    return len(reactions_data)


def main():
    """Main execution function."""
    db_path = get_db_path()

    print("ClipFeed - Seed Data Script")
    print(f"Database: {db_path}")
    print("-" * 60)

    # Ensure data directory exists
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    try:
        initialize_schema(db_path)
        conn = open_connection(db_path)

        print("Seeding users...", end=" ")
        user_ids = seed_users(conn)
        print(f"{len(user_ids)} users present")

        print("Seeding follows...", end=" ")
        follow_count = seed_follows(conn, user_ids)
        print(f"{follow_count} follows created")

        print("Seeding passions...", end=" ")
        passion_count = seed_passions(conn, user_ids)
        print(f"{passion_count} passions created")

        print("Seeding posts...", end=" ")
        post_ids = seed_posts(conn, user_ids)
        print(f"{len(post_ids)} posts present")

        print("Seeding reaction rules...", end=" ")
        rule_count = seed_reaction_rules(conn, post_ids)
        print(f"{rule_count} rule sets created")

        print("Seeding reactions...", end=" ")
        reaction_count = seed_reactions(conn, user_ids, post_ids)
        print(f"{reaction_count} reactions created")

        conn.close()

        print("-" * 60)
        print("Seed data creation complete!")
        print("\nSummary:")
        print(f"  Users: {len(user_ids)}")
        print(f"  Follows: {follow_count}")
        print(f"  Passions: {passion_count}")
        print(f"  Posts: {len(post_ids)}")
        print(f"  Reaction Rules: {rule_count}")
        print(f"  Reactions: {reaction_count}")

        return 0

    except sqlite3.Error as e:
        print(f"\nERROR: Database error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
