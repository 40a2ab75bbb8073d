"""
Terminal dashboard built with rich.

FleetDashboard keeps the last state it managed to load. When a refresh fails
because a collaborator is down, it keeps showing that state marked as stale
instead of failing to render.
"""

from datetime import UTC, datetime

import structlog
from pydantic import BaseModel, Field
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table

from sitewatch.domain.models import (
    EventFilter,
    EventRow,
    FleetStats,
    HealthStatus,
    HostRow,
    Severity,
    StatusFilter,
)
from sitewatch.errors import DependencyError
from sitewatch.services.health_engine import FleetHealthService

logger = structlog.get_logger(__name__)

STATUS_STYLES = {
    HealthStatus.ONLINE: "green",
    HealthStatus.UNSTABLE: "yellow",
    HealthStatus.OFFLINE: "red",
    HealthStatus.UNKNOWN: "dim",
}

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.WARNING: "yellow",
    Severity.INFO: "cyan",
}


def _status(status: HealthStatus) -> str:
    style = STATUS_STYLES[status]
    return f"[{style}]{status.value}[/{style}]"


def stats_table(stats: FleetStats) -> Table:
    table = Table(title="Overall Status (Hosts)")
    table.add_column("Total", justify="right")
    for status in HealthStatus:
        table.add_column(_status(status), justify="right")
    table.add_row(
        str(stats.total),
        str(stats.online),
        str(stats.offline),
        str(stats.unstable),
        str(stats.unknown),
    )
    return table


def hosts_table(rows: list[HostRow]) -> Table:
    table = Table(title="Primary Hosts")
    for column in ("Site", "Host", "IP", "Status", "Links", "WAN 1", "WAN 2", "Last seen"):
        table.add_column(column)
    for row in rows:
        table.add_row(
            row.site_name,
            row.host_name,
            row.ip_address or "-",
            _status(row.status),
            _status(row.link_status),
            _status(row.wan1_status),
            _status(row.wan2_status),
            row.last_seen_at.strftime("%Y-%m-%d %H:%M:%S UTC") if row.last_seen_at else "-",
        )
    return table


def events_table(rows: list[EventRow]) -> Table:
    table = Table(title="Events")
    for column in ("When", "Severity", "Site", "Device", "Title"):
        table.add_column(column)
    for row in rows:
        style = SEVERITY_STYLES[row.severity]
        table.add_row(
            row.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            f"[{style}]{row.severity.value}[/{style}]",
            row.site_name,
            row.device_name,
            row.title,
        )
    return table


class DashboardState(BaseModel):
    stats: FleetStats = Field(default_factory=FleetStats)
    hosts: list[HostRow] = Field(default_factory=list)
    events: list[EventRow] = Field(default_factory=list)
    refreshed_at: datetime | None = None
    stale: bool = False
    error: str | None = None


class FleetDashboard:
    """Summary, host list and event feed for one terminal screen."""

    def __init__(
        self,
        health: FleetHealthService,
        status_filter: StatusFilter = "ALL",
        event_filter: EventFilter | None = None,
    ) -> None:
        self.health = health
        self.status_filter = status_filter
        self.event_filter = event_filter
        self.state = DashboardState()
        self.logger = logger.bind(component="fleet_dashboard")

    async def refresh(self) -> DashboardState:
        try:
            stats = await self.health.fleet_stats()
            hosts = await self.health.list_hosts(self.status_filter)
            events = await self.health.list_events(self.event_filter)
        except DependencyError as e:
            self.logger.warning("dashboard_refresh_failed", error=str(e))
            self.state = self.state.model_copy(
                update={"stale": True, "error": "Data temporarily unavailable"}
            )
            return self.state

        self.state = DashboardState(
            stats=stats, hosts=hosts, events=events, refreshed_at=datetime.now(UTC)
        )
        return self.state

    def renderable(self) -> Panel:
        state = self.state
        subtitle = f"Monitoring {state.stats.total} primary hosts"
        if state.stale:
            subtitle += f" - {state.error} (showing last known state)"
        return Panel(
            Group(stats_table(state.stats), hosts_table(state.hosts), events_table(state.events)),
            title="Site Watch",
            subtitle=subtitle,
        )

    def render(self, console: Console | None = None) -> None:
        (console or Console()).print(self.renderable())
