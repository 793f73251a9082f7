from migraineme.core.exceptions import (
    MigraineMeException,
    NotFoundError,
    ValidationError,
    ExternalServiceError,
    SupabaseError,
    CityResolutionError,
    USDAServiceError,
    AuthenticationError,
    AuthorizationError,
    PermissionMissing,
    JobStateConflict,
)

__all__ = [
    "MigraineMeException",
    "NotFoundError",
    "ValidationError",
    "ExternalServiceError",
    "SupabaseError",
    "CityResolutionError",
    "USDAServiceError",
    "AuthenticationError",
    "AuthorizationError",
    "PermissionMissing",
    "JobStateConflict",
]
