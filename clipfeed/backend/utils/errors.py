"""Error Handling Utilities

This module provides the domain exceptions raised by the scoring engines, retry
logic with exponential backoff for transient repository failures, and warning
collection for non-fatal events while building a feed.

Error tiers:
    Tier 1: Domain errors (NotFoundError, InvalidInputError, ForbiddenError)
            surfaced to the caller with a stable code.
    Tier 2: Retry with backoff for transient store errors (database is locked).
    Tier 3: Degradation, recorded in a WarningsCollector instead of failing.
    Tier 4: RepositoryUnavailableError when the store cannot be reached.
"""

import json
import time
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple, Type, TypeVar, Any


T = TypeVar('T')


# Error Code Constants
# These codes are returned in the ErrorEnvelope.error.code field
VALIDATION_ERROR = "VALIDATION_ERROR"  # Missing/invalid field or parameter (422)
NOT_FOUND = "NOT_FOUND"  # Referenced user/post/owner does not exist (404)
FORBIDDEN = "FORBIDDEN"  # Tier/subscription gating or ownership violation (403)
REPOSITORY_UNAVAILABLE = "REPOSITORY_UNAVAILABLE"  # Data store read/write failed (503)
INTERNAL_ERROR = "INTERNAL_ERROR"  # Anything else (500)


class ClipFeedError(Exception):
    """Base class for errors that map onto a stable API error code.

    Attributes:
        code: Machine-readable error code
        message: Human-readable description safe to show to the caller
        field: Name of the offending input field, when there is one
    """
    code = INTERNAL_ERROR

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class NotFoundError(ClipFeedError):
    code = NOT_FOUND


class InvalidInputError(ClipFeedError):
    code = VALIDATION_ERROR


class ForbiddenError(ClipFeedError):
    code = FORBIDDEN


class RepositoryUnavailableError(ClipFeedError):
    code = REPOSITORY_UNAVAILABLE


def retry_with_backoff(
    fn: Callable[[], T],
    max_retries: int = 3,
    base_delay: float = 0.05,
    max_delay: float = 1.0,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,)
) -> T:
    """Execute a callable with exponential backoff retry logic.

    Implements Tier 2 error handling: retry transient store failures (for example
    SQLite's "database is locked") with exponential backoff.

    Args:
        fn: Callable to execute (should take no arguments)
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds (default: 0.05)
        max_delay: Maximum delay cap in seconds (default: 1.0)
        retryable_exceptions: Tuple of exception types to retry on (default: all exceptions)

    Returns:
        The result of fn() on successful execution

    Raises:
        The final exception if all retries are exhausted, or immediately if the exception
        type is not in retryable_exceptions

    Backoff schedule (base_delay=0.05, max_delay=1.0):
        - Attempt 1: immediate
        - Attempt 2: wait 0.05s (base_delay * 2^0)
        - Attempt 3: wait 0.1s (base_delay * 2^1)
        - Attempt 4: wait 0.2s (base_delay * 2^2)
        - etc., capped at max_delay
    """
    last_exception = None

    for attempt in range(max_retries + 1):
        try:
            return fn()
        except Exception as e:
            if not isinstance(e, retryable_exceptions):
                raise

            last_exception = e

            if attempt >= max_retries:
                raise

            delay = min(base_delay * (2 ** attempt), max_delay)
            time.sleep(delay)

    if last_exception:
        raise last_exception
    raise RuntimeError("Unreachable code")


# Supported warning types (Tier 3: Degradation)
WARNING_TYPE_ENGAGEMENT_UNAVAILABLE = "engagement_unavailable"
WARNING_TYPE_REACTION_RULES_UNAVAILABLE = "reaction_rules_unavailable"
WARNING_TYPE_NOTIFICATION_FAILED = "notification_failed"

VALID_WARNING_TYPES = {
    WARNING_TYPE_ENGAGEMENT_UNAVAILABLE,
    WARNING_TYPE_REACTION_RULES_UNAVAILABLE,
    WARNING_TYPE_NOTIFICATION_FAILED,
}


class WarningsCollector:
    """Thread-safe collector for non-fatal warnings raised while serving a request.

    Accumulates warning events with type, message, timestamp, and context.
    Feed pipelines return the collected list so clients can see which posts
    were scored on degraded data.

    Example:
        >>> collector = WarningsCollector()
        >>> collector.append(
        ...     "engagement_unavailable",
        ...     "Engagement lookup failed for post 42",
        ...     {"post_id": 42}
        ... )
        >>> collector.to_list()[0]["type"]
        'engagement_unavailable'
    """

    def __init__(self):
        self._warnings: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def append(self, warning_type: str, message: str, context: Dict[str, Any]) -> None:
        """Add a warning with type, message, timestamp, and context.

        Raises:
            ValueError: If warning_type is not in VALID_WARNING_TYPES
        """
        if warning_type not in VALID_WARNING_TYPES:
            raise ValueError(
                f"Invalid warning_type '{warning_type}'. "
                f"Must be one of: {', '.join(sorted(VALID_WARNING_TYPES))}"
            )

        warning = {
            "type": warning_type,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "context": context
        }

        with self._lock:
            self._warnings.append(warning)

    def __len__(self) -> int:
        with self._lock:
            return len(self._warnings)

    def to_list(self) -> List[Dict[str, Any]]:
        """Return a copy of the collected warnings."""
        with self._lock:
            return list(self._warnings)

    def to_json(self) -> Optional[str]:
        """Serialize warnings to JSON array string, or None if no warnings collected."""
        with self._lock:
            if not self._warnings:
                return None
            return json.dumps(self._warnings)
