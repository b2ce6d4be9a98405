from typing import Optional


class AssistantRequestError(Exception):
    """Base class for every error raised by assistant request operations."""

    code = "assistant_request_error"

    def __init__(self, message: str, *, request_id: Optional[int] = None):
        self.message = message
        self.request_id = request_id
        super().__init__(message)


class ValidationError(AssistantRequestError):
    code = "validation_error"

    def __init__(self, message: str, *, field: Optional[str] = None, request_id: Optional[int] = None):
        self.field = field
        super().__init__(message, request_id=request_id)


class ConflictError(AssistantRequestError):
    """The request was not in the state the transition expected.

    Raised when a guarded update matched no rows: another actor got there
    first, or the transition is not legal from the current state.
    """

    code = "conflict"

    def __init__(
        self,
        message: str,
        *,
        request_id: Optional[int] = None,
        current_status: Optional[str] = None,
    ):
        self.current_status = current_status
        super().__init__(message, request_id=request_id)


class NotFoundError(AssistantRequestError):
    code = "not_found"

    def __init__(self, request_id: int):
        super().__init__(f"Assistant request {request_id} not found", request_id=request_id)


class PermissionDeniedError(AssistantRequestError, PermissionError):
    code = "permission_denied"

    def __init__(self, action: str, *, user_id: Optional[str] = None, request_id: Optional[int] = None):
        self.action = action
        self.user_id = user_id
        who = user_id or "anonymous"
        super().__init__(f"User {who} may not {action} this request", request_id=request_id)


__all__ = [
    "AssistantRequestError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "PermissionDeniedError",
]
