"""
Snapshot collection from vendor sources.

Key patterns:
- Protocol-based dependency injection for sources
- Generic Result type for expected failures
- Structured concurrency with asyncio.TaskGroup
- Per-source timeouts; one failing source never sinks the whole poll
"""

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Generic, Protocol

import structlog
from pydantic import BaseModel, Field
from typing_extensions import TypeVar

from sitewatch.domain.models import DeviceSnapshot

logger = structlog.get_logger(__name__)

# Generic Result type for explicit error handling
ValueT = TypeVar("ValueT")
ErrorT = TypeVar("ErrorT", bound=BaseException, default=Exception)


class Result(Generic[ValueT, ErrorT]):
    """
    Explicit error handling without exceptions for expected failures.

    When to use: when failure is expected business logic (a vendor outage, a
    rejected observation), not exceptional.
    """

    def __init__(self, value: ValueT | None = None, error: ErrorT | None = None) -> None:
        if value is not None and error is not None:
            raise ValueError("Result cannot have both value and error")
        if value is None and error is None:
            raise ValueError("Result must have either value or error")
        self._value: ValueT | None = value
        self._error: ErrorT | None = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT, ErrorT]":
        return cls(value=value)

    @classmethod
    def err(cls, error: ErrorT) -> "Result[ValueT, ErrorT]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self._error is None

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        if self._error:
            raise self._error
        return self._value  # type: ignore

    def unwrap_or(self, default: ValueT) -> ValueT:
        return self._value if self._error is None else default  # type: ignore

    def unwrap_err(self) -> ErrorT:
        if self._error is None:
            raise ValueError("Called unwrap_err() on an Ok value")
        return self._error


class ObservationSource(Protocol):
    """A vendor poller returning the current state of its devices."""

    source_name: str

    async def collect_snapshots(self) -> Result[list[DeviceSnapshot]]:
        """
        Poll the vendor once.

        Returns:
            Result[list[DeviceSnapshot]]: the snapshots, or the failure.
        """
        ...


class ObservationCollectorConfig(BaseModel):
    """Collector tuning with validation and sane defaults."""

    timeout_seconds: float = Field(
        default=15.0,
        gt=0.0,
        description="Timeout for one source poll in seconds.",
    )


class ObservationCollector:
    """
    Polls every registered source concurrently.

    Partial failures are logged and skipped; the poll only fails as a whole
    when every source failed.
    """

    def __init__(self, config: ObservationCollectorConfig) -> None:
        self.config = config
        self.sources: list[ObservationSource] = []
        self.logger = logger.bind(component="observation_collector")
        self._is_running: bool = False

    def add_source(self, source: ObservationSource) -> None:
        if not hasattr(source, "collect_snapshots"):
            raise TypeError(f"Source {source} must implement ObservationSource protocol")
        self.sources.append(source)
        self.logger.info("source_added", source=source.source_name)

    def remove_source(self, source: ObservationSource) -> None:
        self.sources.remove(source)
        self.logger.info("source_removed", source=source.source_name)

    @property
    def is_running(self) -> bool:
        return self._is_running

    @asynccontextmanager
    async def collection_session(self) -> AsyncIterator["ObservationCollector"]:
        """Marks the collector running for the duration of the block."""
        self.logger.info("collection_session_started")
        self._is_running = True
        try:
            yield self
        finally:
            self._is_running = False
            self.logger.info("collection_session_ended")

    async def _poll(self, source: ObservationSource) -> Result[list[DeviceSnapshot]]:
        try:
            return await asyncio.wait_for(
                source.collect_snapshots(), timeout=self.config.timeout_seconds
            )
        except TimeoutError as e:
            self.logger.warning("source_collection_timeout", source=source.source_name)
            return Result.err(e)
        except Exception as e:
            self.logger.exception(
                "unexpected_source_collection_error", source=source.source_name, error=str(e)
            )
            return Result.err(e)

    async def collect_once(self) -> Result[list[DeviceSnapshot]]:
        if not self._is_running:
            raise RuntimeError("Collector not running - use collection_session()")

        start_time = time.perf_counter()
        snapshots: list[DeviceSnapshot] = []

        async with asyncio.TaskGroup() as task_group:
            tasks = [
                (source, task_group.create_task(self._poll(source))) for source in self.sources
            ]

        successful = 0
        last_error: Exception | None = None
        for source, task in tasks:
            result = task.result()
            if result.is_ok():
                snapshots.extend(result.unwrap())
                successful += 1
            else:
                last_error = result.unwrap_err()
                self.logger.warning(
                    "source_collection_failed", source=source.source_name, error=str(last_error)
                )

        self.logger.info(
            "snapshot_collection_completed",
            total_snapshots=len(snapshots),
            successful_sources=successful,
            total_sources=len(self.sources),
            duration_seconds=round(time.perf_counter() - start_time, 3),
        )

        if self.sources and successful == 0 and last_error is not None:
            return Result.err(last_error)
        return Result.ok(snapshots)
