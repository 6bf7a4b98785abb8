"""Error taxonomy and classification for spend-monitor.

Every error raised by the core is a ``SpendMonitorError`` tagged with an
``ErrorKind``, a ``retryable`` flag and a structured ``context`` mapping.
Classification is a pure function over those fields and over the provider
``code``/``status_code`` set at the integration boundary; error messages are
never inspected.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import StrEnum
from typing import ClassVar, Final, override

__all__ = [
    "DEFAULT_PUSH_REJECTION_CODES",
    "RETRYABLE_ERROR_CODES",
    "RETRYABLE_STATUS_CODES",
    "CircuitOpenError",
    "ConfigurationError",
    "ErrorKind",
    "ExternalServiceError",
    "NetworkError",
    "NotificationError",
    "PushNotificationError",
    "SpendMonitorError",
    "ValidationError",
    "is_push_rejection",
    "is_retryable_error",
    "is_retryable_provider_failure",
]


RETRYABLE_ERROR_CODES: Final[frozenset[str]] = frozenset(
    {
        "ThrottlingException",
        "TooManyRequestsException",
        "ServiceUnavailableException",
        "InternalServerErrorException",
        "TimeoutError",
        "NetworkingError",
        "ECONNRESET",
        "ENOTFOUND",
        "ECONNREFUSED",
        "ETIMEDOUT",
        "Throttling",
        "ServiceUnavailable",
        "InternalServerError",
        "RequestTimeout",
        "InternalError",
    }
)

RETRYABLE_STATUS_CODES: Final[frozenset[int]] = frozenset({429, 500, 502, 503, 504})

# Provider codes that mean "the push channel rejected this message"
DEFAULT_PUSH_REJECTION_CODES: Final[frozenset[str]] = frozenset(
    {
        "EndpointDisabled",
        "PlatformApplicationDisabled",
        "InvalidPlatformPayload",
        "PayloadTooLarge",
    }
)


class ErrorKind(StrEnum):
    """Closed set of error variants."""

    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    NOTIFICATION = "notification"
    PUSH_NOTIFICATION = "push_notification"
    CIRCUIT_OPEN = "circuit_open"
    EXTERNAL_SERVICE = "external_service"
    NETWORK = "network"


class SpendMonitorError(Exception):
    """Base class for all spend-monitor errors.

    Attributes:
        kind: Error variant
        retryable: Whether retrying the failed operation may succeed
        context: Structured diagnostic fields (operation, dependency, attempts, ...)
    """

    kind: ClassVar[ErrorKind]
    default_retryable: ClassVar[bool] = False

    def __init__(
        self,
        message: str,
        *,
        retryable: bool | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.message: str = message
        self.retryable: bool = self.default_retryable if retryable is None else retryable
        self.context: dict[str, object] = dict(context or {})

    def to_dict(self) -> dict[str, object]:
        """Serialize error for structured logging."""
        return {
            "error": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
            "context": dict(self.context),
        }


class ConfigurationError(SpendMonitorError):
    """Configuration is missing or invalid."""

    kind = ErrorKind.CONFIGURATION


class ValidationError(SpendMonitorError):
    """Input failed validation before reaching any provider."""

    kind = ErrorKind.VALIDATION


class NotificationError(SpendMonitorError):
    """Alert delivery failed; retryability depends on the underlying cause."""

    kind = ErrorKind.NOTIFICATION


class PushNotificationError(SpendMonitorError):
    """Push-specific failure such as an oversized payload or a bad credential."""

    kind = ErrorKind.PUSH_NOTIFICATION


class CircuitOpenError(SpendMonitorError):
    """Call rejected by an open circuit breaker; the operation never ran."""

    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(self, dependency: str, retry_after: float) -> None:
        super().__init__(
            f"Circuit breaker for '{dependency}' is open",
            context={"dependency": dependency, "retry_after_seconds": round(retry_after, 3)},
        )
        self.dependency: str = dependency
        self.retry_after: float = retry_after


class ExternalServiceError(SpendMonitorError):
    """Failure reported by an external provider.

    Retryability is derived from the provider error ``code`` and HTTP
    ``status_code`` unless given explicitly.
    """

    kind = ErrorKind.EXTERNAL_SERVICE

    def __init__(
        self,
        service: str,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        retryable: bool | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        if retryable is None:
            retryable = is_retryable_provider_failure(code, status_code)
        merged: dict[str, object] = {"service": service, "code": code, "status_code": status_code}
        merged.update(context or {})
        super().__init__(message, retryable=retryable, context=merged)
        self.service: str = service
        self.code: str | None = code
        self.status_code: int | None = status_code

    @override
    def __str__(self) -> str:
        if self.code:
            return f"{self.service} error {self.code}: {self.message}"
        return f"{self.service} error: {self.message}"


class NetworkError(ExternalServiceError):
    """Provider could not be reached."""

    kind = ErrorKind.NETWORK

    def __init__(self, service: str, message: str, *, context: Mapping[str, object] | None = None) -> None:
        super().__init__(service, message, code="NetworkingError", retryable=True, context=context)


def is_retryable_provider_failure(code: str | None, status_code: int | None) -> bool:
    """Classify a provider failure from its structured fields.

    Args:
        code: Provider error code, if reported
        status_code: HTTP status code, if reported

    Returns:
        True for throttling, server-side and network codes or statuses. False
        for any other known code or status. A failure with neither field is
        presumed transient.
    """
    if code is not None and code in RETRYABLE_ERROR_CODES:
        return True
    if status_code is not None and status_code in RETRYABLE_STATUS_CODES:
        return True
    return code is None and status_code is None


def is_retryable_error(exc: BaseException) -> bool:
    """Default error classifier for ``RetryExecutor``.

    Args:
        exc: Error raised by an attempt

    Returns:
        True if another attempt may succeed
    """
    match exc:
        case SpendMonitorError():
            return exc.retryable
        case TimeoutError() | ConnectionError():
            return True
        case _:
            return False


def is_push_rejection(exc: BaseException, codes: Iterable[str] = DEFAULT_PUSH_REJECTION_CODES) -> bool:
    """Decide whether a delivery failure is attributable to push content.

    Args:
        exc: Error raised by the publish call
        codes: Provider error codes that denote a push-channel rejection

    Returns:
        True if a push-free retry may succeed
    """
    match exc:
        case PushNotificationError():
            return True
        case ExternalServiceError(code=str() as code):
            return code in frozenset(codes)
        case _:
            return False
