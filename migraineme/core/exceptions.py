"""Custom exception classes for MigraineMe."""

from typing import Any, Optional


class MigraineMeException(Exception):
    """Base exception for MigraineMe."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class NotFoundError(MigraineMeException):
    """Resource not found error."""

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            code="NOT_FOUND",
            status_code=404,
            details={"resource": resource, "identifier": str(identifier)},
        )


class ValidationError(MigraineMeException):
    """Input validation error."""

    def __init__(self, field: str, message: str):
        super().__init__(
            message=f"Validation error on {field}: {message}",
            code="VALIDATION_ERROR",
            status_code=422,
            details={"field": field},
        )


class ExternalServiceError(MigraineMeException):
    """Base class for external service errors."""

    def __init__(self, service: str, message: str):
        super().__init__(
            message=f"External service error ({service}): {message}",
            code="EXTERNAL_SERVICE_ERROR",
            status_code=502,
            details={"service": service},
        )


class SupabaseError(ExternalServiceError):
    """Non-2xx response from the Supabase REST, RPC or Auth endpoints."""

    def __init__(self, message: str, http_status: Optional[int] = None):
        super().__init__(service="Supabase", message=message)
        self.code = "SUPABASE_ERROR"
        self.reason = message
        self.http_status = http_status
        if http_status is not None:
            self.details["http_status"] = http_status


class CityResolutionError(ExternalServiceError):
    """Could not resolve a city for the weather screens."""

    def __init__(self, message: str):
        super().__init__(service="CityResolver", message=message)
        self.code = "CITY_RESOLUTION_ERROR"
        self.reason = message


class USDAServiceError(ExternalServiceError):
    """USDA FoodData Central lookup failed."""

    def __init__(self, message: str):
        super().__init__(service="USDA", message=message)
        self.code = "USDA_SERVICE_ERROR"


class AuthenticationError(MigraineMeException):
    """Authentication required or failed."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            code="AUTHENTICATION_ERROR",
            status_code=401,
        )


class AuthorizationError(MigraineMeException):
    """Permission denied error."""

    def __init__(
        self,
        message: str = "Permission denied",
        code: str = "AUTHORIZATION_ERROR",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=403,
            details=details,
        )


class PermissionMissing(AuthorizationError):
    """A platform permission (usage stats, microphone, location, ...) is not granted."""

    def __init__(self, permission: str):
        super().__init__(
            message=f"Platform permission not granted: {permission}",
            code="PERMISSION_MISSING",
            details={"permission": permission},
        )


class JobStateConflict(MigraineMeException):
    """A scheduled job is not in a state that allows the requested action."""

    def __init__(self, name: str, state: str):
        super().__init__(
            message=f"Job {name} is {state}",
            code="JOB_STATE_CONFLICT",
            status_code=409,
            details={"job": name, "state": state},
        )
