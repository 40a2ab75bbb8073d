"""
Query and filter layer.

Side-effect free predicates and row builders shared by every presentation
surface (terminal dashboard, JSON export) and by the store's feed query.
"""

from collections.abc import Iterable, Mapping

from sitewatch.domain.models import (
    Device,
    DeviceEvent,
    EventFilter,
    EventRow,
    FleetStats,
    HealthStatus,
    HostRow,
    Severity,
    SeverityFilter,
    Site,
    StatusFilter,
)
from sitewatch.domain.status import aggregate_device_links
from sitewatch.errors import ValidationError

UNKNOWN_SITE = "Unknown site"
UNKNOWN_DEVICE = "Unknown device"


def overall_status_of(host: Device, overall: Mapping[str, HealthStatus]) -> HealthStatus:
    """A host's rollup if one was computed, otherwise its own status."""
    return overall.get(host.id, host.normalized_status)


def parse_status_filter(status_filter: str) -> StatusFilter:
    """Accept ``ALL`` or a HealthStatus value; anything else is a ValidationError."""
    if status_filter == "ALL":
        return "ALL"
    try:
        return HealthStatus(status_filter)
    except ValueError as e:
        raise ValidationError(f"Unknown status filter {status_filter!r}") from e


def status_matches(status: HealthStatus, status_filter: StatusFilter) -> bool:
    wanted = parse_status_filter(status_filter)
    return wanted == "ALL" or status == wanted


def severity_matches(severity: Severity, severity_filter: SeverityFilter) -> bool:
    if severity_filter == "ALL":
        return True
    try:
        return severity == Severity(severity_filter)
    except ValueError as e:
        raise ValidationError(f"Unknown severity filter {severity_filter!r}") from e


def event_matches(
    event: DeviceEvent, event_filter: EventFilter, devices: Mapping[str, Device]
) -> bool:
    if not severity_matches(event.severity, event_filter.severity):
        return False
    if event_filter.primary_only:
        device = devices.get(event.device_id)
        return device is not None and device.is_primary_host
    return True


def sort_events(events: Iterable[DeviceEvent]) -> list[DeviceEvent]:
    """Newest first; events created at the same instant fall back to insertion order."""
    return sorted(events, key=lambda e: (e.created_at, e.id), reverse=True)


def filter_events(
    events: Iterable[DeviceEvent], event_filter: EventFilter, devices: Mapping[str, Device]
) -> list[DeviceEvent]:
    matching = [e for e in events if event_matches(e, event_filter, devices)]
    return sort_events(matching)[: event_filter.limit]


def filter_hosts(
    hosts: Iterable[Device],
    status_filter: StatusFilter,
    overall: Mapping[str, HealthStatus] | None = None,
) -> list[Device]:
    overall = overall or {}
    status_filter = parse_status_filter(status_filter)
    return [
        h
        for h in hosts
        if h.is_primary_host and status_matches(overall_status_of(h, overall), status_filter)
    ]


def compute_fleet_stats(
    hosts: Iterable[Device], overall: Mapping[str, HealthStatus] | None = None
) -> FleetStats:
    """Count primary hosts by overall status. ``total`` always equals the sum of the buckets."""
    overall = overall or {}
    buckets = dict.fromkeys(HealthStatus, 0)
    for host in hosts:
        if host.is_primary_host:
            buckets[overall_status_of(host, overall)] += 1

    return FleetStats(
        total=sum(buckets.values()),
        online=buckets[HealthStatus.ONLINE],
        offline=buckets[HealthStatus.OFFLINE],
        unstable=buckets[HealthStatus.UNSTABLE],
        unknown=buckets[HealthStatus.UNKNOWN],
    )


def build_host_rows(
    hosts: Iterable[Device],
    sites: Mapping[str, Site],
    overall: Mapping[str, HealthStatus] | None = None,
) -> list[HostRow]:
    overall = overall or {}
    rows = [
        HostRow(
            id=h.id,
            site_name=sites[h.site_id].name if h.site_id in sites else UNKNOWN_SITE,
            host_name=h.display_name,
            ip_address=h.ip_address,
            status=overall_status_of(h, overall),
            link_status=aggregate_device_links(h),
            wan1_status=h.wan1_status,
            wan2_status=h.wan2_status,
            last_seen_at=h.last_seen_at,
        )
        for h in hosts
    ]
    return sorted(rows, key=lambda r: r.host_name)


def build_event_rows(
    events: Iterable[DeviceEvent], devices: Mapping[str, Device], sites: Mapping[str, Site]
) -> list[EventRow]:
    rows = []
    for event in events:
        device = devices.get(event.device_id)
        site = sites.get(event.site_id)
        rows.append(
            EventRow(
                id=event.id,
                site_name=site.name if site else UNKNOWN_SITE,
                device_name=device.display_name if device else UNKNOWN_DEVICE,
                severity=event.severity,
                title=event.title,
                message=event.message,
                event_type=event.event_type,
                created_at=event.created_at,
                is_primary_host=device.is_primary_host if device else False,
            )
        )
    return rows
