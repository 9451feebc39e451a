"""FastAPI application entry point with lifespan, CORS, and structured logging.

This module initializes the FastAPI application with:
- Lifespan context manager for database connection lifecycle
- CORS middleware for the web client dev server
- Structured logging (JSON) to logs/backend.log
- Exception handlers for consistent error responses
- Basic health check endpoints

The database connection is managed via the lifespan context manager and stored
in app.state.db for access by route handlers throughout the application lifecycle.

All API responses follow the standard envelope format defined in clipfeed.api.models.

Usage:
    uvicorn clipfeed.api.app:app --reload
"""

import os
import sqlite3
import traceback
from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from clipfeed.api.responses import error_response
from clipfeed.api.routes import chat, comments, fans, feed, reactions, subscriptions
from clipfeed.backend.db.connection import get_db_path, open_connection
from clipfeed.backend.utils.errors import (
    ClipFeedError,
    INTERNAL_ERROR,
    NOT_FOUND,
    REPOSITORY_UNAVAILABLE,
    VALIDATION_ERROR,
)
from clipfeed.backend.utils.logging_config import get_logger, setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for database connection lifecycle.

    Acquires a database connection on startup and stores it in app.state.db
    for access by route handlers. Closes the connection on shutdown.
    """
    logger = get_logger(__name__)
    db_path = get_db_path()

    try:
        app.state.db = open_connection(db_path)
        logger.info("database_connection_acquired", db_path=db_path)

        yield

    finally:
        if getattr(app.state, 'db', None) is not None:
            app.state.db.close()
            app.state.db = None
            logger.info("database_connection_closed")


# Initialize logging before creating the app
setup_logging(log_dir=os.environ.get('LOG_DIR', 'logs'), log_filename="backend.log")

app = FastAPI(
    title="ClipFeed API",
    description="Personalized feed ranking, fan tiers and comment priority for a short-clip social platform",
    version="1.0.0",
    lifespan=lifespan,
)

cors_origins = os.environ.get(
    'CORS_ORIGINS',
    'http://localhost:5173'
).split(',')

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger = get_logger(__name__)
logger.info("fastapi_app_initialized", cors_origins=cors_origins)

app.include_router(feed.router)
app.include_router(fans.router)
app.include_router(reactions.router)
app.include_router(comments.router)
app.include_router(subscriptions.router)
app.include_router(chat.router)

# Exception Handlers
# These handlers convert exceptions to the standard ErrorEnvelope format


@app.exception_handler(ClipFeedError)
async def clipfeed_error_handler(request: Request, exc: ClipFeedError) -> JSONResponse:
    """Handle domain errors raised by the service modules.

    NotFoundError -> 404, InvalidInputError -> 422, ForbiddenError -> 403,
    RepositoryUnavailableError -> 503.
    """
    logger = get_logger(__name__)
    logger.warning(
        "domain_error",
        path=request.url.path,
        code=exc.code,
        message=exc.message,
        field=exc.field
    )
    return error_response(exc.code, exc.message, field=exc.field)


@app.exception_handler(sqlite3.Error)
async def repository_error_handler(request: Request, exc: sqlite3.Error) -> JSONResponse:
    """Handle data store failures without leaking the database message."""
    logger = get_logger(__name__)
    logger.error(
        "repository_unavailable",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__
    )
    return error_response(REPOSITORY_UNAVAILABLE, "The data store is temporarily unavailable")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle FastAPI request validation errors (422).

    Converts Pydantic validation errors into the standard ErrorEnvelope format,
    naming the first offending field.
    """
    logger = get_logger(__name__)
    errors = exc.errors()
    logger.warning("validation_error", path=request.url.path, errors=errors)

    first = errors[0] if errors else {}
    location = [str(part) for part in first.get('loc', ()) if part not in ('body', 'query', 'path')]
    field = '.'.join(location) or None

    message = f"Request validation failed: {first.get('msg', 'invalid request')}"
    if field:
        message = f"{message} ({field})"

    return error_response(VALIDATION_ERROR, message, field=field)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTPException with error envelope format.

    Routes HTTPException raised by FastAPI or Starlette (405 Method Not
    Allowed and the like) into the standard ErrorEnvelope structure.
    """
    logger = get_logger(__name__)
    logger.warning("http_exception", path=request.url.path, status=exc.status_code)

    code_map = {404: NOT_FOUND, 422: VALIDATION_ERROR}
    code = code_map.get(exc.status_code, INTERNAL_ERROR)
    message = str(exc.detail) if exc.detail else "An error occurred"

    return error_response(code, message, status_code=exc.status_code)


@app.exception_handler(404)
async def not_found_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle 404 Not Found errors for unknown routes."""
    logger = get_logger(__name__)
    logger.warning("not_found", path=request.url.path)

    return error_response(NOT_FOUND, f"Resource not found: {request.url.path}")


@app.exception_handler(500)
async def internal_server_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle 500 Internal Server Error.

    Converts uncaught server errors into the standard ErrorEnvelope format.
    """
    logger = get_logger(__name__)
    logger.error(
        "internal_server_error",
        path=request.url.path,
        error=str(exc),
        traceback=traceback.format_exc(),
    )

    return error_response(INTERNAL_ERROR, "An internal server error occurred")


@app.get("/")
async def root() -> Dict[str, str]:
    """Root endpoint for basic health check.

    Example:
        GET / -> {"status": "ok", "message": "ClipFeed API"}
    """
    return {
        "status": "ok",
        "message": "ClipFeed API"
    }


@app.get("/health")
async def health() -> Dict[str, str]:
    """Health check endpoint.

    Example:
        GET /health -> {"status": "healthy"}
    """
    return {"status": "healthy"}
