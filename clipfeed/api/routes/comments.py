"""Comment API endpoints.

- POST /comments/create: Create a comment with its priority score
- GET /comments/post/{post_id}: Top-level comments with replies, sorted and paginated
- GET /comments/post/{post_id}/filtered: Comments narrowed by commenter standing
- PUT /comments/{comment_id}: Edit own comment
- DELETE /comments/{comment_id}: Delete own comment
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request

from clipfeed import priority
from clipfeed.api.models import (
    CreateCommentRequest,
    DeleteCommentRequest,
    PaginationParams,
    UpdateCommentRequest,
)
from clipfeed.api.responses import wrap_response

router = APIRouter(prefix="/comments", tags=["comments"])


@router.post("/create")
async def create_comment(request: Request, body: CreateCommentRequest):
    """Create a comment.

    Returns:
        Response envelope with comment, priority_score and the priority breakdown
    """
    db = request.app.state.db
    result = priority.create_comment(
        db,
        body.user_id,
        body.post_id,
        body.content,
        parent_comment_id=body.parent_comment_id,
        now=datetime.now(timezone.utc)
    )
    return wrap_response(result)


@router.get("/post/{post_id}")
async def get_post_comments(
    request: Request,
    post_id: int,
    sort: str = Query("priority", description="priority, recent or oldest"),
    pagination: PaginationParams = Depends()
):
    db = request.app.state.db
    result = priority.get_post_comments(
        db, post_id, sort=sort, limit=pagination.limit, offset=pagination.offset
    )
    return wrap_response(result, total=result['total'])


@router.get("/post/{post_id}/filtered")
async def get_filtered_comments(
    request: Request,
    post_id: int,
    filter: str = Query("all", description="all, die_hard, superfan, superfan_plus, premium or high_aura")
):
    db = request.app.state.db
    return wrap_response(priority.get_filtered_comments(db, post_id, filter))


@router.put("/{comment_id}")
async def update_comment(request: Request, comment_id: int, body: UpdateCommentRequest):
    db = request.app.state.db
    comment = priority.update_comment(
        db, comment_id, body.user_id, body.content, datetime.now(timezone.utc)
    )
    return wrap_response(comment)


@router.delete("/{comment_id}")
async def delete_comment(request: Request, comment_id: int, body: DeleteCommentRequest):
    db = request.app.state.db
    return wrap_response(priority.delete_comment(db, comment_id, body.user_id))
