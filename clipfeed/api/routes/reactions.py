"""Reaction API endpoints.

- POST /reactions/add: Add, replace or toggle off a reaction
- GET /reactions/post/{post_id}: Reaction counts by type for a post
- GET /reactions/user/{user_id}/post/{post_id}: A user's reaction to a post
- GET /reactions/stats/{user_id}: A user's reaction mix and personality label
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from clipfeed import reactions
from clipfeed.api.models import AddReactionRequest
from clipfeed.api.responses import wrap_response

router = APIRouter(prefix="/reactions", tags=["reactions"])


@router.post("/add")
async def add_reaction(request: Request, body: AddReactionRequest):
    """Apply a reaction.

    Returns:
        Response envelope with action (added/updated/removed), reaction_type
        and the user's updated wisdom/aura scores
    """
    db = request.app.state.db
    result = reactions.add_reaction(
        db, body.user_id, body.post_id, body.reaction_type, datetime.now(timezone.utc)
    )
    return wrap_response(result)


@router.get("/post/{post_id}")
async def get_post_reactions(request: Request, post_id: int):
    db = request.app.state.db
    return wrap_response(reactions.get_post_reaction_counts(db, post_id))


@router.get("/user/{user_id}/post/{post_id}")
async def get_user_reaction(request: Request, user_id: int, post_id: int):
    db = request.app.state.db
    return wrap_response(reactions.get_user_reaction(db, user_id, post_id))


@router.get("/stats/{user_id}")
async def get_reaction_stats(request: Request, user_id: int):
    db = request.app.state.db
    return wrap_response(reactions.get_reaction_stats(db, user_id))
