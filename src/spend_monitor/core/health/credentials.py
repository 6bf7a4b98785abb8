"""Push credential (certificate) health probe."""

import logging
import math
from collections.abc import Callable
from datetime import UTC, datetime

from spend_monitor.core.config import PushConfig
from spend_monitor.core.resilience import ResilientCaller
from spend_monitor.types.models import CredentialHealth, PlatformAttributes
from spend_monitor.types.protocols import PushPlatform

__all__ = ["CredentialProbe", "assess_credential", "days_until_expiration"]

logger = logging.getLogger(__name__)


def days_until_expiration(
    attributes: PlatformAttributes,
    *,
    now: datetime,
    lifetime_days: int,
) -> int | None:
    """Days left before the push credential expires.

    Uses the provider-reported expiry when present, otherwise estimates
    ``lifetime_days`` from the platform application's creation time.
    Returns None when neither is known.
    """
    if attributes.credential_expires_at is not None:
        return math.floor((attributes.credential_expires_at - now).total_seconds() / 86400)
    if attributes.created_at is not None:
        age_days = math.floor((now - attributes.created_at).total_seconds() / 86400)
        return lifetime_days - age_days
    return None


def assess_credential(attributes: PlatformAttributes, *, now: datetime, settings: PushConfig) -> CredentialHealth:
    """Turn platform attributes into a credential health verdict."""
    warnings: list[str] = []
    errors: list[str] = []

    if not attributes.enabled:
        errors.append("Platform application is disabled")

    days = days_until_expiration(attributes, now=now, lifetime_days=settings.credential_lifetime_days)
    if days is None:
        warnings.append("Credential expiration date is unknown")
    elif days < 0:
        errors.append(f"Push credential expired {-days} days ago")
    elif days < settings.credential_error_days:
        errors.append(f"Push credential expires in {days} days")
    elif days < settings.credential_warning_days:
        warnings.append(f"Push credential expires in {days} days")

    return CredentialHealth(
        is_valid=not errors,
        days_until_expiration=days,
        warnings=tuple(warnings),
        errors=tuple(errors),
    )


class CredentialProbe:
    """Reads platform attributes and reports credential validity and expiry."""

    def __init__(
        self,
        platform: PushPlatform,
        caller: ResilientCaller,
        settings: PushConfig,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._platform: PushPlatform = platform
        self._caller: ResilientCaller = caller
        self._settings: PushConfig = settings
        self._clock: Callable[[], datetime] = clock

    async def check(self) -> CredentialHealth:
        attributes = await self._caller.call(self._platform.get_platform_attributes, "GetPlatformAttributes")
        health = assess_credential(attributes, now=self._clock(), settings=self._settings)
        logger.info(
            "Credential health for %s: valid=%s days_until_expiration=%s",
            self._settings.bundle_id,
            health.is_valid,
            health.days_until_expiration,
            extra={
                "bundle_id": self._settings.bundle_id,
                "warnings": len(health.warnings),
                "errors": len(health.errors),
            },
        )
        return health
