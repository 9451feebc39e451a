"""Feed API endpoints.

- GET /feed/personalized/{user_id}: Ranked, paginated feed for a user
- GET /feed/discover/{user_id}: Most engaging recent posts matching the user's passions
- GET /feed/trending: Engagement-per-hour ranking over the trending window
- POST /feed/track-interaction: Record a view/skip/share/... of a feed post
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request

from clipfeed import ranking
from clipfeed.api.models import PaginationParams, TrackInteractionRequest
from clipfeed.api.responses import wrap_response

router = APIRouter(prefix="/feed", tags=["feed"])


@router.get("/personalized/{user_id}")
async def get_personalized_feed(
    request: Request,
    user_id: int,
    pagination: PaginationParams = Depends()
):
    """Personalized feed scored by mood, time of day, passions, recency and engagement.

    Returns:
        Response envelope with posts, context, count, total_analyzed and
        warnings; meta.total is the number of candidates scored
    """
    db = request.app.state.db
    feed = ranking.build_personalized_feed(
        db,
        user_id,
        limit=pagination.limit,
        offset=pagination.offset,
        now=datetime.now(timezone.utc)
    )
    return wrap_response(feed, total=feed['total_analyzed'])


@router.get("/discover/{user_id}")
async def get_discovery_feed(
    request: Request,
    user_id: int,
    limit: int = Query(20, ge=1, le=100, description="Maximum number of posts")
):
    db = request.app.state.db
    return wrap_response(ranking.build_discovery_feed(db, user_id, limit=limit))


@router.get("/trending")
async def get_trending_feed(
    request: Request,
    limit: int = Query(20, ge=1, le=100, description="Maximum number of posts")
):
    db = request.app.state.db
    return wrap_response(ranking.build_trending_feed(db, limit=limit, now=datetime.now(timezone.utc)))


@router.post("/track-interaction")
async def track_interaction(request: Request, body: TrackInteractionRequest):
    db = request.app.state.db
    interaction = ranking.track_interaction(
        db,
        body.user_id,
        body.post_id,
        body.interaction_type,
        duration_seconds=body.duration_seconds,
        now=datetime.now(timezone.utc)
    )
    return wrap_response(interaction)
