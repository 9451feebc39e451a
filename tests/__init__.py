"""
Test suite for the ClipFeed backend.

Test Organization:
- test_schema.py: Database schema creation and constraints
- test_seed_config.py: Reference data and system_config seeding
- test_schema_validation.py: Schema validation script
- test_connection_manager.py: DB connection management
- test_seed_data.py: Demo data seeding
- test_signals.py: Reaction tally, mood, time of day, passions
- test_scoring.py: Content, recency and trending scores
- test_ranking.py: Personalized, discovery and trending feeds
- test_fans.py: Fan tier state machine, leaderboard, badges
- test_priority.py: Comment priority and comment operations
- test_reactions.py: Reactions, awards and reaction rules
- test_subscriptions_chat.py: Subscriptions and fan groups
- test_fastapi_app.py: FastAPI application setup
- test_response_envelope.py: Standard response envelope
- test_endpoints.py: HTTP endpoints
- backend/utils/: Error handling and logging utilities

Run all tests:
    python -m pytest tests/ -v

Run specific test file:
    python -m pytest tests/test_ranking.py -v
"""
