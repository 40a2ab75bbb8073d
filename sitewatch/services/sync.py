"""
Sync loop that ties vendor polling to the health engine.

One cycle:
1. Poll every observation source concurrently
2. Register sites/devices and apply their statuses
3. Report what was applied, rejected and emitted
"""

import asyncio
from collections.abc import AsyncIterator
from datetime import UTC, datetime

import structlog
from pydantic import BaseModel, Field

from sitewatch.config import AppConfig, get_config
from sitewatch.services.collector import (
    ObservationCollector,
    ObservationCollectorConfig,
    ObservationSource,
)
from sitewatch.services.health_engine import FleetHealthService

logger = structlog.get_logger(__name__)


class SyncReport(BaseModel):
    """Outcome of one sync cycle."""

    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    snapshots: int = 0
    applied: int = 0
    rejected: int = 0
    events: int = 0
    duration_seconds: float = 0.0
    errors: list[str] = Field(default_factory=list)


class FleetSyncService:
    """Runs sync cycles on an interval."""

    def __init__(self, health: FleetHealthService, config: AppConfig | None = None) -> None:
        self.config = config or get_config()
        self.health = health
        self.collector = ObservationCollector(
            ObservationCollectorConfig(
                timeout_seconds=self.config.monitoring.collection_timeout_seconds
            )
        )
        self.logger = logger.bind(component="fleet_sync")
        self._is_running = False

    def add_source(self, source: ObservationSource) -> None:
        self.collector.add_source(source)

    async def run_sync_cycle(self) -> SyncReport | None:
        """Poll once and apply. Returns None when no source could be polled."""
        report = SyncReport()
        self.logger.info("sync_cycle_starting", sources=len(self.collector.sources))

        async with self.collector.collection_session():
            snapshots_result = await self.collector.collect_once()

        if snapshots_result.is_err():
            self.logger.warning("no_snapshots_collected", error=str(snapshots_result.unwrap_err()))
            return None

        snapshots = snapshots_result.unwrap()
        report.snapshots = len(snapshots)

        for result in await self.health.sync_snapshots(snapshots):
            if result.is_ok():
                report.applied += 1
                report.events += len(result.unwrap())
            else:
                report.rejected += 1
                report.errors.append(str(result.unwrap_err()))

        report.duration_seconds = round(
            (datetime.now(UTC) - report.started_at).total_seconds(), 3
        )
        self.logger.info(
            "sync_cycle_completed",
            snapshots=report.snapshots,
            applied=report.applied,
            rejected=report.rejected,
            events=report.events,
            duration_seconds=report.duration_seconds,
        )
        return report

    async def run_continuous_sync(self) -> AsyncIterator[SyncReport]:
        """Yield a report per successful cycle until stop() is called."""
        interval = self.config.monitoring.poll_interval_seconds
        self.logger.info("continuous_sync_starting", interval=interval)
        self._is_running = True

        try:
            while self._is_running:
                cycle_start = datetime.now(UTC)
                report = await self.run_sync_cycle()
                if report:
                    yield report

                elapsed = (datetime.now(UTC) - cycle_start).total_seconds()
                sleep_time = max(0.0, interval - elapsed)
                if sleep_time > 0:
                    await asyncio.sleep(sleep_time)
                else:
                    self.logger.warning(
                        "sync_slower_than_interval",
                        elapsed_seconds=round(elapsed, 3),
                        interval_seconds=interval,
                    )
        except asyncio.CancelledError:
            self.logger.info("continuous_sync_cancelled")
            raise
        finally:
            self._is_running = False

    async def stop(self) -> None:
        self.logger.info("stopping_sync_service")
        self._is_running = False
