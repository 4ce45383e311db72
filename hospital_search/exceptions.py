"""Application exception hierarchy.

All custom exceptions inherit from HospitalSearchError.
Each exception has an error code for structured error handling.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for structured error handling."""

    # General errors (1xxx)
    INTERNAL_ERROR = "HSP-1000"
    CONFIGURATION_ERROR = "HSP-1001"
    VALIDATION_ERROR = "HSP-1002"
    UNAUTHORIZED = "HSP-1003"

    # External service errors (2xxx)
    EXTERNAL_SERVICE_ERROR = "HSP-2000"
    QUOTA_EXCEEDED = "HSP-2001"
    PROVIDER_NOT_CONFIGURED = "HSP-2002"
    INVALID_PROVIDER_RESPONSE = "HSP-2003"

    # Database errors (3xxx)
    DATABASE_ERROR = "HSP-3000"
    HOSPITAL_NOT_FOUND = "HSP-3001"

    # Indexing errors (4xxx)
    INDEXING_ERROR = "HSP-4000"
    INDEXING_IN_PROGRESS = "HSP-4001"


class HospitalSearchError(Exception):
    """Base exception for all hospital search errors.

    Attributes:
        message: Human-readable error message.
        code: Structured error code.
        details: Additional error context.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
            }
        }


class ConfigurationError(HospitalSearchError):
    """Configuration or environment error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class ValidationError(HospitalSearchError):
    """Input validation error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details)


class UnauthorizedError(HospitalSearchError):
    """Caller failed a shared-secret check."""

    def __init__(
        self,
        message: str = "Unauthorized",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.UNAUTHORIZED, details)


class ExternalServiceError(HospitalSearchError):
    """A named upstream dependency failed.

    Attributes:
        service: Name of the failing service (e.g. "gemini").
    """

    def __init__(
        self,
        message: str,
        service: str,
        code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.service = service
        super().__init__(message, code, {"service": service, **(details or {})})


class QuotaExceededError(ExternalServiceError):
    """Upstream rate limit or credit exhaustion."""

    def __init__(
        self,
        message: str,
        service: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, service, ErrorCode.QUOTA_EXCEEDED, details)


class DatabaseError(HospitalSearchError):
    """Persistence layer read or write failure."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.DATABASE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class HospitalNotFoundError(DatabaseError):
    """Requested hospital does not exist."""

    def __init__(
        self,
        hospital_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            f"Hospital not found: {hospital_id}",
            ErrorCode.HOSPITAL_NOT_FOUND,
            {"hospital_id": hospital_id, **(details or {})},
        )


class IndexingError(HospitalSearchError):
    """Indexing run error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INDEXING_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class IndexingInProgressError(IndexingError):
    """Another indexing run already holds the indexer."""

    def __init__(self, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            "An indexing run is already in progress",
            ErrorCode.INDEXING_IN_PROGRESS,
            details,
        )
