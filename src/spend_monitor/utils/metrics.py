"""Operation timing and metric observations.

Each device, dispatch and health operation emits one named duration plus a
success flag. Where the observations end up is the sink's business; the
default sink writes them to the log.
"""

import logging
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field

from spend_monitor.types.protocols import MetricsSink

__all__ = ["LoggingMetricsSink", "OperationTimer", "timed_operation"]

logger = logging.getLogger(__name__)


class LoggingMetricsSink:
    """Metrics sink that emits one DEBUG record per observation."""

    def __init__(self, namespace: str = "SpendMonitor") -> None:
        self.namespace: str = namespace

    def record(
        self,
        name: str,
        duration_ms: float,
        *,
        success: bool,
        dimensions: Mapping[str, str] | None = None,
    ) -> None:
        logger.debug(
            "%s/%s %.1fms success=%s",
            self.namespace,
            name,
            duration_ms,
            success,
            extra={
                "metric": f"{self.namespace}.{name}",
                "duration_ms": round(duration_ms, 3),
                "success": success,
                "dimensions": dict(dimensions or {}),
            },
        )


@dataclass(slots=True)
class OperationTimer:
    """Handle yielded by ``timed_operation``."""

    name: str
    started: float = field(default_factory=time.perf_counter)
    success: bool = True
    dimensions: dict[str, str] = field(default_factory=dict)

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000

    def mark_failed(self) -> None:
        self.success = False


@contextmanager
def timed_operation(sink: MetricsSink | None, name: str) -> Iterator[OperationTimer]:
    """Time a block and record it on ``sink``.

    Success is recorded on normal exit unless ``mark_failed()`` was called;
    failure is recorded when an exception escapes, and the exception
    propagates.

    Example:
        >>> with timed_operation(sink, "RegisterDevice") as timer:
        ...     await manager.register_device(token)
    """
    timer = OperationTimer(name)
    try:
        yield timer
    except BaseException:
        timer.mark_failed()
        raise
    finally:
        if sink is not None:
            sink.record(name, timer.elapsed_ms, success=timer.success, dimensions=timer.dimensions)
