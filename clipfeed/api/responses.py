"""Response utilities and error handling for the API.

This module provides:
- Error code to HTTP status code mappings
- wrap_response() utility for creating standard response envelopes
- error_response() for rendering an ErrorEnvelope as a JSONResponse

All API endpoints should use wrap_response() to return data. Domain errors
raised by the service modules (clipfeed.backend.utils.errors) are converted to
ErrorEnvelope format by the exception handlers in app.py.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse

from clipfeed.api.models import ErrorDetail, ErrorEnvelope, MetaModel
from clipfeed.backend.utils.errors import (
    FORBIDDEN,
    INTERNAL_ERROR,
    NOT_FOUND,
    REPOSITORY_UNAVAILABLE,
    VALIDATION_ERROR,
)

API_VERSION = "1.0"

# Error Code to HTTP Status Code Mapping
ERROR_STATUS_CODES: Dict[str, int] = {
    VALIDATION_ERROR: 422,
    NOT_FOUND: 404,
    FORBIDDEN: 403,
    REPOSITORY_UNAVAILABLE: 503,
    INTERNAL_ERROR: 500,
}


def wrap_response(data: Any, total: Optional[int] = None) -> Dict[str, Any]:
    """Wrap data in the standard response envelope.

    Args:
        data: The response payload (any JSON-serializable type)
        total: Optional total count of items (used with pagination)

    Returns:
        Dict with response envelope structure:
        {
            "success": true,
            "data": <data>,
            "meta": {
                "timestamp": "<ISO 8601 UTC timestamp>",
                "version": "1.0",
                "total": <total if provided>
            }
        }
    """
    meta = MetaModel(
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=API_VERSION,
        total=total
    )

    return {
        "success": True,
        "data": data,
        "meta": meta.model_dump(exclude_none=True)
    }


def error_response(code: str, message: str, field: Optional[str] = None,
                   status_code: Optional[int] = None) -> JSONResponse:
    """Render an ErrorEnvelope with the status mapped from its code."""
    if status_code is None:
        status_code = ERROR_STATUS_CODES.get(code, 500)

    error_envelope = ErrorEnvelope(error=ErrorDetail(code=code, message=message, field=field))
    return JSONResponse(
        status_code=status_code,
        content=error_envelope.model_dump(exclude_none=True),
    )
