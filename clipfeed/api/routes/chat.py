"""Tier-gated fan group endpoints.

- POST /chat/fan-groups: Create a fan group with a minimum fan tier
- GET /chat/fan-groups/{group_id}: Group details with members
- POST /chat/fan-groups/{group_id}/join: Join a group (tier checked)
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from clipfeed import chat
from clipfeed.api.models import CreateFanGroupRequest, JoinFanGroupRequest
from clipfeed.api.responses import wrap_response

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("/fan-groups")
async def create_fan_group(request: Request, body: CreateFanGroupRequest):
    db = request.app.state.db
    group = chat.create_fan_group(
        db,
        body.owner_user_id,
        body.min_tier_required,
        name=body.name,
        description=body.description,
        max_members=body.max_members,
        now=datetime.now(timezone.utc)
    )
    return wrap_response(group)


@router.get("/fan-groups/{group_id}")
async def get_fan_group(request: Request, group_id: int):
    db = request.app.state.db
    return wrap_response(chat.get_fan_group(db, group_id))


@router.post("/fan-groups/{group_id}/join")
async def join_fan_group(request: Request, group_id: int, body: JoinFanGroupRequest):
    """Join a fan group.

    Returns 403 FORBIDDEN when the user is not a fan of the owner, is below
    the group's tier, or the group is full.
    """
    db = request.app.state.db
    membership = chat.join_fan_group(db, body.user_id, group_id, now=datetime.now(timezone.utc))
    return wrap_response(membership)
