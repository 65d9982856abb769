from typing import Optional


class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass


class SyncEngineError(BaseServiceError):
    """
    Base exception for the synchronization engine.

    Every subclass carries a stable ``code`` that the HTTP boundary and the
    job records use instead of the class name.
    """
    code = "SYNC_ERROR"
    transient = False

    def __init__(
        self,
        message: str = "",
        *,
        platform: Optional[str] = None,
        sku: Optional[str] = None,
        status_code: Optional[int] = None,
        attempts: Optional[int] = None,
    ):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.platform = platform
        self.sku = sku
        self.status_code = status_code
        self.attempts = attempts

    def to_dict(self) -> dict:
        data = {"code": self.code, "message": self.message}
        if self.platform:
            data["platform"] = self.platform
        if self.sku:
            data["sku"] = self.sku
        if self.attempts:
            data["attempts"] = self.attempts
        return data

    def __str__(self) -> str:
        if self.attempts and self.attempts > 1:
            return f"{self.message} (after {self.attempts} attempts)"
        return self.message


class MappingNotFound(SyncEngineError):
    """No mapping, or no platform reference, exists for the SKU."""
    code = "MAPPING_NOT_FOUND"


class AuthFailure(SyncEngineError):
    """Credential acquisition failed. Fatal to the enclosing job."""
    code = "AUTH_FAILURE"


class UnauthorizedError(SyncEngineError):
    """A downstream call answered 401. Consumed by the credential layer."""
    code = "UNAUTHORIZED"


class RateLimitExceeded(SyncEngineError):
    """Local bucket still empty after one wait cycle, or remote 429."""
    code = "RATE_LIMIT_EXCEEDED"
    transient = True


class TransientRemoteError(SyncEngineError):
    """Timeouts, connection failures and 5xx responses."""
    code = "TRANSIENT_REMOTE_ERROR"
    transient = True


class PlatformAPIError(SyncEngineError):
    """Non-transient remote rejection (4xx other than 401/429, GraphQL errors)."""
    code = "PLATFORM_API_ERROR"


class ValidationError(SyncEngineError):
    """Raised when input data validation fails. Never retried."""
    code = "VALIDATION_ERROR"


class PartialFailure(SyncEngineError):
    """Some platforms of a scope=both adjustment succeeded and others did not."""
    code = "PARTIAL_FAILURE"

    def __init__(self, message: str = "", *, outcomes=None, **kwargs):
        super().__init__(message, **kwargs)
        self.outcomes = outcomes or {}


class JobConflictError(SyncEngineError):
    """A job of the same exclusive type is already running."""
    code = "JOB_CONFLICT"


class JobNotFoundError(SyncEngineError):
    code = "JOB_NOT_FOUND"


class DatabaseError(Exception):
    """Exception raised for database-related errors."""
    pass


def is_transient(exc: BaseException) -> bool:
    """Retry classification used by the retry policy."""
    return isinstance(exc, SyncEngineError) and exc.transient
