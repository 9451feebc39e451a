"""Subscription API endpoints.

- GET /subscriptions/plans: Paid plans, cheapest first
- POST /subscriptions/subscribe: Start or replace a one-month subscription
- GET /subscriptions/user/{user_id}: A user's current plan
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Query, Request

from clipfeed import subscriptions
from clipfeed.api.models import SubscribeRequest
from clipfeed.api.responses import wrap_response

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get("/plans")
async def list_plans(
    request: Request,
    include_free: bool = Query(False, description="Include the free plan")
):
    db = request.app.state.db
    plans = subscriptions.list_plans(db, include_free=include_free)
    return wrap_response(plans, total=len(plans))


@router.post("/subscribe")
async def subscribe(request: Request, body: SubscribeRequest):
    db = request.app.state.db
    result = subscriptions.subscribe(db, body.user_id, body.plan_type, datetime.now(timezone.utc))
    return wrap_response(result)


@router.get("/user/{user_id}")
async def get_user_subscription(request: Request, user_id: int):
    db = request.app.state.db
    return wrap_response(subscriptions.get_user_subscription(db, user_id, datetime.now(timezone.utc)))
