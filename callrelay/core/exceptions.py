"""Error taxonomy shared by the webhook pipeline, storage and call services."""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Standardized error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    PROVIDER_RATE_LIMITED = "PROVIDER_RATE_LIMITED"
    PROVIDER_AUTH_FAILED = "PROVIDER_AUTH_FAILED"
    PROVIDER_CONFLICT = "PROVIDER_CONFLICT"
    STORAGE_ERROR = "STORAGE_ERROR"
    FORWARD_FAILED = "FORWARD_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class CallRelayError(Exception):
    """Base exception carrying an HTTP status and a stable error code."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON error body."""
        body: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code.value,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(CallRelayError):
    """Malformed or missing input."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
    ):
        super().__init__(
            message=message,
            status_code=400,
            code=ErrorCode.VALIDATION_ERROR,
            details={"field": field} if field else None,
        )
        self.field = field


class AuthError(CallRelayError):
    """Signature or authentication failure."""

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(
            message=message,
            status_code=401,
            code=ErrorCode.INVALID_SIGNATURE,
        )


class NotFoundError(CallRelayError):
    """Resource not found."""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            message=f"{resource_type} not found: {resource_id}",
            status_code=404,
            code=ErrorCode.RESOURCE_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class InvalidStateError(CallRelayError):
    """Requested operation is not allowed from the record's current state."""

    def __init__(self, call_id: str, current_status: str, operation: str):
        super().__init__(
            message=f"Cannot {operation} call {call_id} in status '{current_status}'",
            status_code=409,
            code=ErrorCode.INVALID_STATE_TRANSITION,
            details={"call_id": call_id, "status": current_status},
        )
        self.call_id = call_id
        self.current_status = current_status


class ProviderError(CallRelayError):
    """The voice provider rejected a request or could not be reached."""

    # Upstream statuses passed through unchanged; anything else becomes 502
    PASSTHROUGH_STATUSES = frozenset({400, 401, 404, 409, 429})

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        code: ErrorCode = ErrorCode.PROVIDER_ERROR,
    ):
        if upstream_status in self.PASSTHROUGH_STATUSES:
            status_code = upstream_status
        else:
            status_code = 502
        super().__init__(
            message=message,
            status_code=status_code,
            code=code,
            details={"upstream_status": upstream_status} if upstream_status else None,
        )
        self.upstream_status = upstream_status


class ProviderRateLimitError(ProviderError):
    """Provider returned 429."""

    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(message, upstream_status=429, code=ErrorCode.PROVIDER_RATE_LIMITED)


class ProviderAuthError(ProviderError):
    """Provider rejected our credentials."""

    def __init__(self, message: str = "Authentication failed. Please check your API key."):
        super().__init__(message, upstream_status=401, code=ErrorCode.PROVIDER_AUTH_FAILED)


class ProviderConflictError(ProviderError):
    """Provider reported a scheduling conflict."""

    def __init__(
        self,
        message: str = "Scheduling conflict detected. Please choose another time.",
    ):
        super().__init__(message, upstream_status=400, code=ErrorCode.PROVIDER_CONFLICT)


class StorageError(CallRelayError):
    """Key/value backend failure."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=500,
            code=ErrorCode.STORAGE_ERROR,
        )


class ForwardError(CallRelayError):
    """Downstream target unreachable or rejected the event after retries."""

    def __init__(
        self,
        message: str = "Failed to forward webhook",
        upstream_status: Optional[int] = None,
        attempts: int = 0,
    ):
        super().__init__(
            message=message,
            status_code=502,
            code=ErrorCode.FORWARD_FAILED,
        )
        self.upstream_status = upstream_status
        self.attempts = attempts
