"""boto3-backed notification provider.

Implements both provider protocols against one SNS client: topic publishing
for the bulk-text channels and platform-endpoint operations for push. boto3
is synchronous, so each call runs in a worker thread. botocore's own retries
are disabled because retrying belongs to the core's RetryExecutor.

Every botocore failure is translated into the core error taxonomy here, with
the provider error code and HTTP status carried as structured fields.
"""

import asyncio
import logging
import re
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Final

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    HTTPClientError,
    NoCredentialsError,
    ParamValidationError,
)
from botocore.exceptions import ConnectionError as BotoConnectionError

from spend_monitor.core.config import ProviderConfig
from spend_monitor.core.errors import (
    ConfigurationError,
    ExternalServiceError,
    NetworkError,
    SpendMonitorError,
    ValidationError,
)
from spend_monitor.types.models import EndpointAttributes, PlatformAttributes

__all__ = ["SERVICE_NAME", "SNSProvider", "translate_boto_error"]

logger = logging.getLogger(__name__)

SERVICE_NAME: Final[str] = "sns"

# Documented shape of the error returned when the token already has an endpoint
_EXISTING_ENDPOINT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"Endpoint (arn:aws:sns:\S+) already exists with the same [Tt]oken"
)


def translate_boto_error(exc: Exception, operation: str) -> SpendMonitorError:
    """Map a botocore exception onto the core error taxonomy."""
    context = {"operation": operation}
    match exc:
        case ClientError():
            error: Mapping[str, str] = exc.response.get("Error", {})  # pyright: ignore[reportAssignmentType]
            status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            return ExternalServiceError(
                SERVICE_NAME,
                error.get("Message") or str(exc),
                code=error.get("Code"),
                status_code=status,
                context=context,
            )
        case BotoConnectionError() | HTTPClientError():
            return NetworkError(SERVICE_NAME, str(exc), context=context)
        case NoCredentialsError():
            return ConfigurationError(f"No credentials available for {SERVICE_NAME}: {exc}", context=context)
        case ParamValidationError():
            return ValidationError(f"Invalid {SERVICE_NAME} request: {exc}", context=context)
        case _:
            return ExternalServiceError(SERVICE_NAME, str(exc), code=type(exc).__name__, context=context)


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.warning("Unparseable timestamp attribute: %s", value)
        return None


class SNSProvider:
    """NotificationPublisher and PushPlatform backed by an SNS client."""

    def __init__(
        self,
        settings: ProviderConfig,
        *,
        platform_application_arn: str | None = None,
        client: object | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            settings: Region, endpoint override and timeouts
            platform_application_arn: Push platform application; push operations
                raise ConfigurationError without it
            client: Pre-built SNS client (tests pass a stubbed client)
        """
        self._platform_application_arn: str | None = platform_application_arn
        self._client = client or boto3.client(  # pyright: ignore[reportUnknownMemberType]
            "sns",
            region_name=settings.region,
            endpoint_url=settings.endpoint_url,
            config=Config(
                connect_timeout=settings.connect_timeout_seconds,
                read_timeout=settings.read_timeout_seconds,
                retries={"max_attempts": 1, "mode": "standard"},
            ),
        )

    async def _call[T](self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(fn)
        except (ClientError, BotoCoreError) as exc:
            raise translate_boto_error(exc, operation) from exc

    def _require_platform(self) -> str:
        if self._platform_application_arn is None:
            raise ConfigurationError("Push platform application is not configured")
        return self._platform_application_arn

    async def publish(
        self,
        topic: str,
        message: str,
        *,
        subject: str,
        structured: bool = True,
    ) -> str:
        kwargs: dict[str, str] = {"TopicArn": topic, "Message": message, "Subject": subject}
        if structured:
            kwargs["MessageStructure"] = "json"
        response = await self._call("Publish", lambda: self._client.publish(**kwargs))  # pyright: ignore[reportAttributeAccessIssue, reportUnknownLambdaType]
        return str(response["MessageId"])  # pyright: ignore[reportUnknownArgumentType]

    async def create_endpoint(self, token: str, custom_user_data: str | None = None) -> str:
        platform_arn = self._require_platform()
        kwargs: dict[str, str] = {"PlatformApplicationArn": platform_arn, "Token": token}
        if custom_user_data is not None:
            kwargs["CustomUserData"] = custom_user_data
        try:
            response = await self._call(
                "CreatePlatformEndpoint",
                lambda: self._client.create_platform_endpoint(**kwargs),  # pyright: ignore[reportAttributeAccessIssue, reportUnknownLambdaType]
            )
        except ExternalServiceError as exc:
            existing = _EXISTING_ENDPOINT_PATTERN.search(exc.message) if exc.code == "InvalidParameter" else None
            if existing is None:
                raise
            logger.debug("Endpoint already registered: %s", existing.group(1))
            return existing.group(1)
        return str(response["EndpointArn"])  # pyright: ignore[reportUnknownArgumentType]

    async def get_endpoint_attributes(self, endpoint_ref: str) -> EndpointAttributes:
        response = await self._call(
            "GetEndpointAttributes",
            lambda: self._client.get_endpoint_attributes(EndpointArn=endpoint_ref),  # pyright: ignore[reportAttributeAccessIssue, reportUnknownLambdaType]
        )
        attributes: Mapping[str, str] = response.get("Attributes", {})  # pyright: ignore[reportUnknownMemberType]
        return EndpointAttributes(
            enabled=attributes.get("Enabled", "false").lower() == "true",
            token=attributes.get("Token"),
            custom_user_data=attributes.get("CustomUserData"),
        )

    async def set_endpoint_attributes(self, endpoint_ref: str, *, token: str, enabled: bool = True) -> None:
        _ = await self._call(
            "SetEndpointAttributes",
            lambda: self._client.set_endpoint_attributes(  # pyright: ignore[reportAttributeAccessIssue, reportUnknownLambdaType]
                EndpointArn=endpoint_ref,
                Attributes={"Token": token, "Enabled": "true" if enabled else "false"},
            ),
        )

    async def delete_endpoint(self, endpoint_ref: str) -> None:
        _ = await self._call(
            "DeleteEndpoint",
            lambda: self._client.delete_endpoint(EndpointArn=endpoint_ref),  # pyright: ignore[reportAttributeAccessIssue, reportUnknownLambdaType]
        )

    async def list_endpoints(self) -> list[str]:
        platform_arn = self._require_platform()

        def collect() -> list[str]:
            paginator = self._client.get_paginator("list_endpoints_by_platform_application")  # pyright: ignore[reportAttributeAccessIssue, reportUnknownVariableType]
            refs: list[str] = []
            for page in paginator.paginate(PlatformApplicationArn=platform_arn):  # pyright: ignore[reportUnknownVariableType]
                refs.extend(endpoint["EndpointArn"] for endpoint in page.get("Endpoints", []))  # pyright: ignore[reportUnknownArgumentType]
            return refs

        return await self._call("ListEndpointsByPlatformApplication", collect)

    async def get_platform_attributes(self) -> PlatformAttributes:
        platform_arn = self._require_platform()
        response = await self._call(
            "GetPlatformApplicationAttributes",
            lambda: self._client.get_platform_application_attributes(PlatformApplicationArn=platform_arn),  # pyright: ignore[reportAttributeAccessIssue, reportUnknownLambdaType]
        )
        attributes: Mapping[str, str] = response.get("Attributes", {})  # pyright: ignore[reportUnknownMemberType]
        return PlatformAttributes(
            enabled=attributes.get("Enabled", "false").lower() == "true",
            credential_expires_at=_parse_timestamp(attributes.get("AppleCertificateExpiryDate")),
        )
