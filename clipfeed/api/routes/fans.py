"""Fan tier API endpoints.

- POST /fans/{fan_id}/interaction: Log an interaction and advance the fan's tier
- GET /fans/{fan_id}/status/{owner_id}: Fan status (created at the lowest tier on first query)
- GET /fans/{owner_id}/leaderboard: Owner's fans ranked by total interactions
- GET /fans/{user_id}/badges: Badges a fan holds across owners
- GET /fans/{owner_id}/tiers: Number of fans per tier for an owner
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Query, Request

from clipfeed import fans
from clipfeed.api.models import FanInteractionRequest
from clipfeed.api.responses import wrap_response

router = APIRouter(prefix="/fans", tags=["fans"])


@router.post("/{fan_id}/interaction")
async def log_fan_interaction(request: Request, fan_id: int, body: FanInteractionRequest):
    db = request.app.state.db
    result = fans.log_interaction(
        db,
        fan_id,
        body.owner_user_id,
        body.interaction_type,
        post_id=body.post_id,
        now=datetime.now(timezone.utc)
    )
    return wrap_response(result)


@router.get("/{fan_id}/status/{owner_id}")
async def get_fan_status(request: Request, fan_id: int, owner_id: int):
    """Fan status with the next tier threshold.

    Returns:
        Response envelope with tier, badge fields, counters,
        next_tier_threshold and interactions_to_next_tier
    """
    db = request.app.state.db
    return wrap_response(fans.get_fan_status(db, fan_id, owner_id, datetime.now(timezone.utc)))


@router.get("/{owner_id}/leaderboard")
async def get_fan_leaderboard(
    request: Request,
    owner_id: int,
    limit: int = Query(100, ge=1, le=500, description="Maximum number of fans")
):
    db = request.app.state.db
    leaderboard = fans.get_leaderboard(db, owner_id, limit=limit)
    return wrap_response(leaderboard, total=len(leaderboard))


@router.get("/{user_id}/badges")
async def get_user_badges(request: Request, user_id: int):
    db = request.app.state.db
    badges = fans.get_user_badges(db, user_id)
    return wrap_response(badges, total=len(badges))


@router.get("/{owner_id}/tiers")
async def get_tier_breakdown(request: Request, owner_id: int):
    db = request.app.state.db
    return wrap_response(fans.get_tier_breakdown(db, owner_id))
