"""Workflow exceptions and user-facing error messages."""

from fastapi import status

# Store error codes, matching the hosted document store's vocabulary
PERMISSION_DENIED = "permission-denied"
NOT_FOUND = "not-found"
UNAVAILABLE = "unavailable"
DEADLINE_EXCEEDED = "deadline-exceeded"
RESOURCE_EXHAUSTED = "resource-exhausted"
INVALID_ARGUMENT = "invalid-argument"
FAILED_PRECONDITION = "failed-precondition"

DEFAULT_MESSAGE = "Something went wrong. Please try again."

FRIENDLY_MESSAGES: dict[str, str] = {
    PERMISSION_DENIED: "You don't have permission to access this data.",
    NOT_FOUND: "Data not found.",
    UNAVAILABLE: "Service is temporarily unavailable. Please retry.",
    DEADLINE_EXCEEDED: "Request timed out. Please retry.",
    RESOURCE_EXHAUSTED: "Quota exceeded. Please try again later.",
    INVALID_ARGUMENT: "Invalid request. Please reload and try again.",
    FAILED_PRECONDITION: "The data store rejected this request. Please reload and try again.",
}


class StoreError(Exception):
    """Raised by a document store adapter."""

    def __init__(self, code: str, message: str = ""):
        self.code = code
        self.message = message or code
        super().__init__(self.message)


class WorkflowError(Exception):
    """Base exception for workflow errors surfaced to the caller."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, error_type: str = "workflow_error"):
        self.message = message
        self.error_type = error_type
        super().__init__(message)


class ValidationError(WorkflowError):
    """A required field is missing or malformed. Raised before any store call."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, "validation_error")
        self.field = field


class NotAuthenticatedError(WorkflowError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Please sign in to continue."):
        super().__init__(message, "not_authenticated")


class PermissionDeniedError(WorkflowError):
    """The caller lacks rights to read or write a record. Terminal, never retried."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = FRIENDLY_MESSAGES[PERMISSION_DENIED]):
        super().__init__(message, "permission_denied")


class NotFoundError(WorkflowError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = FRIENDLY_MESSAGES[NOT_FOUND]):
        super().__init__(message, "not_found")


class UnavailableError(WorkflowError):
    """Transient failure: service unavailable, timeout or quota. Retry is manual."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = FRIENDLY_MESSAGES[UNAVAILABLE]):
        super().__init__(message, "unavailable")


class InvalidTransitionError(WorkflowError):
    """Raised when a status change is not in the entity's transition table."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, entity: str, current: str, target: str, allowed: list[str]):
        super().__init__(
            f"Cannot move {entity} from '{current}' to '{target}'. "
            f"Allowed from '{current}': {allowed}",
            "invalid_transition",
        )
        self.entity = entity
        self.current = current
        self.target = target


def nice_error(err: BaseException, fallback: str = DEFAULT_MESSAGE) -> str:
    """Short human-readable message for any error raised by a store call."""
    if isinstance(err, WorkflowError):
        return err.message
    code = getattr(err, "code", "")
    return FRIENDLY_MESSAGES.get(code, fallback)


def from_store_error(err: StoreError, fallback: str = DEFAULT_MESSAGE) -> WorkflowError:
    """Translate a store failure into the workflow error taxonomy."""
    message = nice_error(err, fallback)
    if err.code == PERMISSION_DENIED:
        return PermissionDeniedError(message)
    if err.code == NOT_FOUND:
        return NotFoundError(message)
    if err.code in (UNAVAILABLE, DEADLINE_EXCEEDED, RESOURCE_EXHAUSTED):
        return UnavailableError(message)
    return WorkflowError(message, "store_error")
