"""Pydantic models for API request/response structures.

This module defines the standard response and error envelopes used across all API endpoints,
pagination parameters for list endpoints, and the request bodies of the write endpoints.

Response Structure:
    All successful responses use ResponseEnvelope with:
    - success: Always true
    - data: The actual response payload (any type)
    - meta: Metadata including timestamp, version, and optional total count

Error Structure:
    All error responses use ErrorEnvelope with:
    - success: Always false
    - error: ErrorDetail containing code, message and the offending field when known

Pagination:
    List endpoints accept PaginationParams as a dependency for limit/offset query parameters.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class MetaModel(BaseModel):
    """Metadata included in all successful responses.

    Attributes:
        timestamp: ISO 8601 formatted UTC timestamp of the response
        version: API version string (currently hardcoded as "1.0")
        total: Optional total count of items (used with pagination)
    """
    timestamp: str
    version: str
    total: Optional[int] = None


class ResponseEnvelope(BaseModel):
    """Standard response envelope for all successful API responses."""
    success: Literal[True] = True
    data: Any
    meta: MetaModel


class ErrorDetail(BaseModel):
    """Error details included in error responses.

    Attributes:
        code: Machine-readable error code (see backend/utils/errors.py for constants)
        message: Human-readable error message
        field: Request field that caused the error, when there is one
    """
    code: str
    message: str
    field: Optional[str] = None


class ErrorEnvelope(BaseModel):
    """Standard error envelope for all error responses."""
    success: Literal[False] = False
    error: ErrorDetail


class PaginationParams(BaseModel):
    """Query parameters for paginated list endpoints.

    This class is used as a FastAPI dependency to accept limit and offset
    query parameters with validation and defaults.

    Attributes:
        limit: Maximum number of items to return (default 20, max 100)
        offset: Number of items to skip (default 0, min 0)

    Example:
        from fastapi import Depends

        @router.get("/personalized/{user_id}")
        def personalized(user_id: int, pagination: PaginationParams = Depends()):
            # pagination.limit and pagination.offset are validated
            ...
    """
    limit: int = Field(default=20, ge=1, le=100, description="Maximum number of items to return")
    offset: int = Field(default=0, ge=0, description="Number of items to skip")


# Request bodies


class TrackInteractionRequest(BaseModel):
    user_id: int
    post_id: int
    interaction_type: Literal['view', 'long_view', 'skip', 'react', 'comment', 'share']
    duration_seconds: Optional[float] = Field(default=None, ge=0)


class FanInteractionRequest(BaseModel):
    owner_user_id: int
    interaction_type: Literal['comment', 'reaction', 'view', 'share', 'like']
    post_id: Optional[int] = None


class AddReactionRequest(BaseModel):
    user_id: int
    post_id: int
    reaction_type: Literal['laugh', 'support', 'care', 'thinking', 'applaud', 'fire']


class CreateCommentRequest(BaseModel):
    user_id: int
    post_id: int
    content: str = Field(min_length=1, max_length=5000)
    parent_comment_id: Optional[int] = None


class UpdateCommentRequest(BaseModel):
    user_id: int
    content: str = Field(min_length=1, max_length=5000)


class DeleteCommentRequest(BaseModel):
    user_id: int


class SubscribeRequest(BaseModel):
    user_id: int
    plan_type: str = Field(min_length=1)


class CreateFanGroupRequest(BaseModel):
    owner_user_id: int
    min_tier_required: str = Field(min_length=1)
    name: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    max_members: int = Field(default=500, ge=1)


class JoinFanGroupRequest(BaseModel):
    user_id: int
