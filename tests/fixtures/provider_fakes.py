"""In-memory provider fakes and deterministic time sources for tests."""

from __future__ import annotations

import asyncio
import json
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from spend_monitor.core.errors import ExternalServiceError
from spend_monitor.types.models import EndpointAttributes, PlatformAttributes

VALID_TOKEN = "a1b2c3d4" * 8
OTHER_TOKEN = "ffeeddcc" * 8
FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def not_found(operation: str = "GetEndpointAttributes") -> ExternalServiceError:
    return ExternalServiceError(
        "fake",
        "Endpoint does not exist",
        code="NotFound",
        status_code=404,
        context={"operation": operation},
    )


def throttled() -> ExternalServiceError:
    return ExternalServiceError("fake", "Rate exceeded", code="Throttling", status_code=400)


class FailureQueue:
    """Per-operation queue of errors raised before the fake does real work."""

    def __init__(self) -> None:
        self._pending: dict[str, list[Exception]] = defaultdict(list)

    def add(self, operation: str, *errors: Exception) -> None:
        self._pending[operation].extend(errors)

    def pop(self, operation: str) -> None:
        pending = self._pending.get(operation)
        if pending:
            raise pending.pop(0)


@dataclass
class PublishedMessage:
    topic: str
    message: str
    subject: str
    structured: bool

    @property
    def channels(self) -> dict[str, str]:
        decoded: dict[str, str] = json.loads(self.message)
        return decoded


class FakePublisher:
    """Records every publish; raises queued errors first."""

    def __init__(self) -> None:
        self.published: list[PublishedMessage] = []
        self.calls: int = 0
        self.failures: FailureQueue = FailureQueue()

    async def publish(self, topic: str, message: str, *, subject: str, structured: bool = True) -> str:
        self.calls += 1
        self.failures.pop("publish")
        self.published.append(PublishedMessage(topic, message, subject, structured))
        return f"msg-{len(self.published)}"


@dataclass
class FakePushPlatform:
    """Endpoint store keyed by endpoint ref."""

    endpoints: dict[str, EndpointAttributes] = field(default_factory=dict)
    platform: PlatformAttributes = field(default_factory=lambda: PlatformAttributes(enabled=True))
    failures: FailureQueue = field(default_factory=FailureQueue)
    calls: list[tuple[str, str]] = field(default_factory=list)
    _counter: int = 0

    def add_endpoint(self, token: str | None, *, enabled: bool = True) -> str:
        self._counter += 1
        ref = f"endpoint/{self._counter}"
        self.endpoints[ref] = EndpointAttributes(enabled=enabled, token=token)
        return ref

    async def create_endpoint(self, token: str, custom_user_data: str | None = None) -> str:
        self.calls.append(("create_endpoint", token))
        self.failures.pop("create_endpoint")
        for ref, attributes in self.endpoints.items():
            if attributes.token == token:
                return ref
        ref = self.add_endpoint(token)
        self.endpoints[ref] = EndpointAttributes(enabled=True, token=token, custom_user_data=custom_user_data)
        return ref

    async def get_endpoint_attributes(self, endpoint_ref: str) -> EndpointAttributes:
        self.calls.append(("get_endpoint_attributes", endpoint_ref))
        self.failures.pop("get_endpoint_attributes")
        if endpoint_ref not in self.endpoints:
            raise not_found()
        return self.endpoints[endpoint_ref]

    async def set_endpoint_attributes(self, endpoint_ref: str, *, token: str, enabled: bool = True) -> None:
        self.calls.append(("set_endpoint_attributes", endpoint_ref))
        self.failures.pop("set_endpoint_attributes")
        current = self.endpoints.get(endpoint_ref)
        if current is None:
            raise not_found("SetEndpointAttributes")
        self.endpoints[endpoint_ref] = EndpointAttributes(
            enabled=enabled, token=token, custom_user_data=current.custom_user_data
        )

    async def delete_endpoint(self, endpoint_ref: str) -> None:
        self.calls.append(("delete_endpoint", endpoint_ref))
        self.failures.pop("delete_endpoint")
        _ = self.endpoints.pop(endpoint_ref, None)

    async def list_endpoints(self) -> list[str]:
        self.calls.append(("list_endpoints", ""))
        self.failures.pop("list_endpoints")
        return list(self.endpoints)

    async def get_platform_attributes(self) -> PlatformAttributes:
        self.calls.append(("get_platform_attributes", ""))
        self.failures.pop("get_platform_attributes")
        return self.platform

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@dataclass
class FakeProvider(FakePushPlatform):
    """Both provider roles in one object, like the real plugin."""

    published: list[PublishedMessage] = field(default_factory=list)

    async def publish(self, topic: str, message: str, *, subject: str, structured: bool = True) -> str:
        self.calls.append(("publish", topic))
        self.failures.pop("publish")
        self.published.append(PublishedMessage(topic, message, subject, structured))
        return f"msg-{len(self.published)}"


@dataclass
class YieldingPushPlatform(FakePushPlatform):
    """Gives control back to the event loop before every endpoint call.

    Concurrent callers interleave the way they would against a real network.
    """

    async def create_endpoint(self, token: str, custom_user_data: str | None = None) -> str:
        await asyncio.sleep(0)
        return await super().create_endpoint(token, custom_user_data)

    async def get_endpoint_attributes(self, endpoint_ref: str) -> EndpointAttributes:
        await asyncio.sleep(0)
        return await super().get_endpoint_attributes(endpoint_ref)

    async def set_endpoint_attributes(self, endpoint_ref: str, *, token: str, enabled: bool = True) -> None:
        await asyncio.sleep(0)
        await super().set_endpoint_attributes(endpoint_ref, token=token, enabled=enabled)

    async def delete_endpoint(self, endpoint_ref: str) -> None:
        await asyncio.sleep(0)
        await super().delete_endpoint(endpoint_ref)

    async def list_endpoints(self) -> list[str]:
        await asyncio.sleep(0)
        return await super().list_endpoints()

    async def get_platform_attributes(self) -> PlatformAttributes:
        await asyncio.sleep(0)
        return await super().get_platform_attributes()


@dataclass
class MetricObservation:
    name: str
    duration_ms: float
    success: bool
    dimensions: dict[str, str]


class RecordingMetricsSink:
    def __init__(self) -> None:
        self.observations: list[MetricObservation] = []

    def record(
        self,
        name: str,
        duration_ms: float,
        *,
        success: bool,
        dimensions: Mapping[str, str] | None = None,
    ) -> None:
        self.observations.append(MetricObservation(name, duration_ms, success, dict(dimensions or {})))

    def named(self, name: str) -> list[MetricObservation]:
        return [observation for observation in self.observations if observation.name == name]


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now: float = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
