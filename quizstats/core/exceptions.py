# ============================================================================
# Custom Exceptions
# ============================================================================
from contextlib import contextmanager
from typing import Iterator, Optional
import logging

logger = logging.getLogger(__name__)

class QuizStatsException(Exception):
    """Base exception for QuizStats"""
    def __init__(
        self,
        detail: str,
        status_code: int = 400,
        error_code: Optional[str] = None
    ):
        self.detail = detail
        self.status_code = status_code
        self.error_code = error_code or "QUIZSTATS_ERROR"
        super().__init__(self.detail)

class InvalidInput(QuizStatsException):
    def __init__(self, message: str):
        super().__init__(
            detail=message,
            status_code=400,
            error_code="INVALID_INPUT"
        )

class NotFound(QuizStatsException):
    def __init__(self, resource: str, resource_id=None):
        message = f"{resource} not found" if resource_id is None else f"{resource} not found: {resource_id}"
        super().__init__(
            detail=message,
            status_code=404,
            error_code="NOT_FOUND"
        )
        self.resource = resource
        self.resource_id = resource_id

class Conflict(QuizStatsException):
    def __init__(self, message: str, error_code: str = "CONFLICT"):
        super().__init__(
            detail=message,
            status_code=409,
            error_code=error_code
        )

class AlreadyCompleted(Conflict):
    def __init__(self, session_id):
        super().__init__(
            f"Answer session {session_id} is already completed",
            error_code="SESSION_ALREADY_COMPLETED"
        )
        self.session_id = session_id

class UnresolvedReference(NotFound, Conflict):
    """A session cannot be started because its user or question does not resolve."""
    def __init__(self, resource: str, resource_id):
        QuizStatsException.__init__(
            self,
            detail=f"Cannot start session: {resource} {resource_id} does not exist",
            status_code=404,
            error_code="UNRESOLVED_REFERENCE"
        )
        self.resource = resource
        self.resource_id = resource_id

class UpstreamFailure(QuizStatsException):
    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        message = f"Upstream failure during {operation}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(
            detail=message,
            status_code=502,
            error_code="UPSTREAM_FAILURE"
        )
        self.operation = operation

@contextmanager
def upstream(operation: str) -> Iterator[None]:
    """Wrap collaborator errors that are not already QuizStats errors."""
    try:
        yield
    except QuizStatsException:
        raise
    except Exception as e:
        logger.error(f"{operation} failed: {e}")
        raise UpstreamFailure(operation, e) from e

def require(value, name: str):
    """Reject a missing required identifier before any I/O happens."""
    if value is None:
        raise InvalidInput(f"{name} must not be null")
    return value

def require_text(value: Optional[str], name: str) -> str:
    if value is None or not value.strip():
        raise InvalidInput(f"{name} must not be empty")
    return value

def require_positive(value: int, name: str = "limit") -> int:
    if value is None or value <= 0:
        raise InvalidInput(f"{name} must be greater than 0")
    return value
