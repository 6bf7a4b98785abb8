"""Push-notification device endpoint lifecycle.

Registrations live in the provider's endpoint store; this module only
references them by their opaque endpoint ref. Every provider call runs through
a ``ResilientCaller`` (retry around the provider's circuit breaker). Token
format errors are raised before any provider call is made.
"""

import json
import logging
import re
import secrets
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Final

from spend_monitor.core.errors import CircuitOpenError, ValidationError
from spend_monitor.core.resilience import ResilientCaller
from spend_monitor.types.models import CleanupResult, DeviceRegistration
from spend_monitor.types.protocols import MetricsSink, PushPlatform
from spend_monitor.utils.metrics import timed_operation
from spend_monitor.utils.sanitization import mask_device_token

__all__ = [
    "DEVICE_TOKEN_PATTERN",
    "VALIDATION_USER_DATA",
    "DeviceLifecycleManager",
    "is_valid_device_token",
    "validate_device_token",
]

logger = logging.getLogger(__name__)

DEVICE_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[0-9a-fA-F]{64}$")

# CustomUserData stamped on disposable configuration-check endpoints
VALIDATION_USER_DATA: Final[str] = json.dumps({"purpose": "configuration-check"})


def is_valid_device_token(token: object) -> bool:
    """Check push device token format (64 hex characters, any case)."""
    return isinstance(token, str) and DEVICE_TOKEN_PATTERN.fullmatch(token) is not None


def validate_device_token(token: object) -> str:
    """Return ``token`` if well-formed.

    Raises:
        ValidationError: If the token is not exactly 64 hex characters
    """
    if not is_valid_device_token(token):
        length = len(token) if isinstance(token, str) else None
        msg = "Invalid device token format: expected 64 hexadecimal characters"
        raise ValidationError(msg, context={"token_length": length})
    return str(token)


class DeviceLifecycleManager:
    """Creates, refreshes and removes push endpoint registrations."""

    def __init__(
        self,
        platform: PushPlatform,
        caller: ResilientCaller,
        *,
        metrics: MetricsSink | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._platform: PushPlatform = platform
        self._caller: ResilientCaller = caller
        self._metrics: MetricsSink | None = metrics
        self._clock: Callable[[], datetime] = clock
        self._validation_refs: set[str] = set()

    async def register_device(self, token: str, user_id: str | None = None) -> DeviceRegistration:
        """Register a device for push notifications.

        Endpoint creation is idempotent on the provider side: registering a
        token that already has an endpoint returns that endpoint, which is
        re-enabled if the provider had disabled it.

        Args:
            token: 64-character hex device token
            user_id: Optional application user identifier

        Returns:
            Active registration

        Raises:
            ValidationError: If the token is malformed (no provider call is made)
        """
        token = validate_device_token(token)
        now = self._clock()
        user_data = json.dumps({"userId": user_id, "registrationDate": now.isoformat()})

        with timed_operation(self._metrics, "RegisterDevice"):
            endpoint_ref = await self._caller.call(
                lambda: self._platform.create_endpoint(token, user_data),
                "CreatePlatformEndpoint",
            )
            attributes = await self._caller.call(
                lambda: self._platform.get_endpoint_attributes(endpoint_ref),
                "GetEndpointAttributes",
            )
            if not attributes.enabled or attributes.token != token:
                logger.info(
                    "Refreshing existing endpoint %s",
                    endpoint_ref,
                    extra={"endpoint": endpoint_ref, "was_enabled": attributes.enabled},
                )
                await self._caller.call(
                    lambda: self._platform.set_endpoint_attributes(endpoint_ref, token=token, enabled=True),
                    "SetEndpointAttributes",
                )

        logger.info(
            "Registered device %s as %s",
            mask_device_token(token),
            endpoint_ref,
            extra={"endpoint": endpoint_ref, "user_id": user_id},
        )
        return DeviceRegistration(
            device_token=token,
            endpoint_ref=endpoint_ref,
            user_id=user_id,
            registered_at=now,
            updated_at=now,
            active=True,
        )

    async def update_token(self, endpoint_ref: str, new_token: str) -> None:
        """Rotate the token of an existing endpoint in place.

        Raises:
            ValidationError: If ``new_token`` is malformed or ``endpoint_ref`` is empty
        """
        new_token = validate_device_token(new_token)
        if not endpoint_ref:
            raise ValidationError("Endpoint reference must not be empty")

        with timed_operation(self._metrics, "UpdateDeviceToken"):
            await self._caller.call(
                lambda: self._platform.set_endpoint_attributes(endpoint_ref, token=new_token, enabled=True),
                "SetEndpointAttributes",
            )
        logger.info(
            "Updated endpoint %s to token %s",
            endpoint_ref,
            mask_device_token(new_token),
            extra={"endpoint": endpoint_ref},
        )

    async def remove_device(self, endpoint_ref: str) -> None:
        """Delete a registration on explicit request."""
        if not endpoint_ref:
            raise ValidationError("Endpoint reference must not be empty")
        with timed_operation(self._metrics, "RemoveDevice"):
            await self._caller.call(lambda: self._platform.delete_endpoint(endpoint_ref), "DeleteEndpoint")
        logger.info("Removed endpoint %s", endpoint_ref, extra={"endpoint": endpoint_ref})

    async def remove_invalid_tokens(self, endpoint_refs: Iterable[str]) -> list[str]:
        """Delete endpoints that are disabled, malformed or unreadable.

        Items are processed sequentially and each failure is isolated, so one
        broken endpoint never aborts the batch.

        Returns:
            Refs that were deleted, in input order
        """
        removed, _, _ = await self._remove_invalid(endpoint_refs)
        return removed

    async def process_feedback(self) -> CleanupResult:
        """List every endpoint of the platform application and clean invalid ones.

        Configuration-check endpoints are left alone and not counted as scanned.

        Raises:
            SpendMonitorError: If the endpoint listing itself fails
        """
        with timed_operation(self._metrics, "ProcessFeedback"):
            endpoint_refs = await self._caller.call(self._platform.list_endpoints, "ListEndpoints")
            removed, errors, skipped = await self._remove_invalid(endpoint_refs)

        scanned = len(endpoint_refs) - skipped
        logger.info(
            "Feedback processing removed %d of %d endpoints",
            len(removed),
            scanned,
            extra={"removed": len(removed), "scanned": scanned, "errors": len(errors)},
        )
        return CleanupResult(removed_refs=tuple(removed), scanned=scanned, errors=tuple(errors))

    async def validate_config(self) -> bool:
        """Check platform configuration with a disposable endpoint round-trip.

        Each run registers a fresh random token tagged with
        ``VALIDATION_USER_DATA``. The endpoint is deleted only when it carries
        that tag; should the provider hand back somebody else's registration,
        it is kept.

        Returns:
            True only if creating, reading and deleting the endpoint succeed
        """
        token = secrets.token_hex(32)
        with timed_operation(self._metrics, "ValidateConfig") as timer:
            try:
                endpoint_ref = await self._caller.call(
                    lambda: self._platform.create_endpoint(token, VALIDATION_USER_DATA),
                    "CreatePlatformEndpoint",
                )
                attributes = await self._caller.call(
                    lambda: self._platform.get_endpoint_attributes(endpoint_ref),
                    "GetEndpointAttributes",
                )
                if attributes.custom_user_data != VALIDATION_USER_DATA:
                    logger.warning(
                        "Configuration check returned existing endpoint %s, leaving it in place",
                        endpoint_ref,
                        extra={"endpoint": endpoint_ref},
                    )
                    return True
                self._validation_refs.add(endpoint_ref)
                await self._caller.call(lambda: self._platform.delete_endpoint(endpoint_ref), "DeleteEndpoint")
            except Exception as exc:
                timer.mark_failed()
                logger.error(
                    "Platform configuration validation failed: %s",
                    exc,
                    extra={"dependency": self._caller.dependency, "error_type": type(exc).__name__},
                )
                return False
        return True

    async def _remove_invalid(self, endpoint_refs: Iterable[str]) -> tuple[list[str], list[str], int]:
        removed: list[str] = []
        errors: list[str] = []
        skipped = 0

        with timed_operation(self._metrics, "RemoveInvalidTokens"):
            for endpoint_ref in endpoint_refs:
                if endpoint_ref in self._validation_refs:
                    skipped += 1
                    continue
                try:
                    attributes = await self._caller.call(
                        lambda ref=endpoint_ref: self._platform.get_endpoint_attributes(ref),
                        "GetEndpointAttributes",
                    )
                except CircuitOpenError as exc:
                    # Never ran, so nothing is known about this endpoint
                    errors.append(f"Skipped endpoint {endpoint_ref}: {exc}")
                    continue
                except Exception as exc:
                    # A configuration check may have deleted it while we waited
                    if endpoint_ref in self._validation_refs:
                        skipped += 1
                        continue
                    reason = f"attributes unavailable ({type(exc).__name__})"
                else:
                    if attributes.custom_user_data == VALIDATION_USER_DATA:
                        skipped += 1
                        continue
                    if not attributes.enabled:
                        reason = "disabled"
                    elif not is_valid_device_token(attributes.token):
                        reason = "invalid token"
                    else:
                        continue

                try:
                    await self._caller.call(
                        lambda ref=endpoint_ref: self._platform.delete_endpoint(ref),
                        "DeleteEndpoint",
                    )
                except Exception as exc:
                    errors.append(f"Failed to delete endpoint {endpoint_ref}: {exc}")
                    logger.warning(
                        "Failed to delete invalid endpoint %s: %s",
                        endpoint_ref,
                        exc,
                        extra={"endpoint": endpoint_ref, "reason": reason},
                    )
                    continue

                removed.append(endpoint_ref)
                logger.info(
                    "Removed invalid endpoint %s (%s)",
                    endpoint_ref,
                    reason,
                    extra={"endpoint": endpoint_ref, "reason": reason},
                )

        return removed, errors, skipped
