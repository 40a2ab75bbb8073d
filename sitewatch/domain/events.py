"""
Event classification.

Occurrences are a closed set of tagged variants (discriminated on
``event_type``). Severity comes from explicit lookup tables, never from
inspecting free-form strings, so every variant/outcome pair has exactly one
severity.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from sitewatch.domain.models import (
    Device,
    EventType,
    HealthStatus,
    NewDeviceEvent,
    Severity,
    Site,
    TestAlertKind,
    utc_now,
)


class StatusChange(BaseModel):
    """A device's normalized status moved from one state to another."""

    model_config = ConfigDict(frozen=True)

    event_type: Literal[EventType.STATUS_CHANGE] = EventType.STATUS_CHANGE
    previous: HealthStatus
    current: HealthStatus


class WanStatusChange(BaseModel):
    """One of the device's two WAN links changed state."""

    model_config = ConfigDict(frozen=True)

    event_type: Literal[EventType.WAN_STATUS_CHANGE] = EventType.WAN_STATUS_CHANGE
    link: Literal[1, 2]
    previous: HealthStatus
    current: HealthStatus
    other_link: HealthStatus = Field(description="Status of the other WAN link at the same time")


class TestAlert(BaseModel):
    """An operator-triggered test alert."""

    __test__ = False

    model_config = ConfigDict(frozen=True)

    event_type: Literal[EventType.TEST_ALERT] = EventType.TEST_ALERT
    kind: TestAlertKind = TestAlertKind.HOST_OFFLINE


class SyncNotice(BaseModel):
    """Routine confirmation that a host was synchronized."""

    model_config = ConfigDict(frozen=True)

    event_type: Literal[EventType.SYNC] = EventType.SYNC
    source: str = "UniFi API"


Occurrence = Annotated[
    StatusChange | WanStatusChange | TestAlert | SyncNotice,
    Field(discriminator="event_type"),
]


STATUS_CHANGE_SEVERITY: dict[HealthStatus, Severity] = {
    HealthStatus.OFFLINE: Severity.CRITICAL,
    HealthStatus.UNSTABLE: Severity.WARNING,
    HealthStatus.UNKNOWN: Severity.WARNING,
    HealthStatus.ONLINE: Severity.INFO,
}

TEST_ALERT_SEVERITY: dict[TestAlertKind, Severity] = {
    TestAlertKind.HOST_OFFLINE: Severity.CRITICAL,
    TestAlertKind.WAN1_DOWN: Severity.WARNING,
    TestAlertKind.WAN2_DOWN: Severity.WARNING,
}

TEST_ALERT_TITLES: dict[TestAlertKind, str] = {
    TestAlertKind.HOST_OFFLINE: "HOST_OFFLINE_TEST",
    TestAlertKind.WAN1_DOWN: "WAN1_DOWN_TEST",
    TestAlertKind.WAN2_DOWN: "WAN2_DOWN_TEST",
}

# (link down?, other link down?) -> severity
WAN_CHANGE_SEVERITY: dict[tuple[bool, bool], Severity] = {
    (True, False): Severity.WARNING,
    (True, True): Severity.CRITICAL,
    (False, False): Severity.INFO,
    (False, True): Severity.INFO,
}

WAN_LINK_NAMES = {1: "Primary", 2: "Secondary"}


def classify_severity(
    occurrence: StatusChange | WanStatusChange | TestAlert | SyncNotice,
) -> Severity:
    """Look up the fixed severity for an occurrence."""
    match occurrence:
        case StatusChange(current=current):
            return STATUS_CHANGE_SEVERITY[current]
        case WanStatusChange(current=current, other_link=other):
            key = (current != HealthStatus.ONLINE, other != HealthStatus.ONLINE)
            return WAN_CHANGE_SEVERITY[key]
        case TestAlert(kind=kind):
            return TEST_ALERT_SEVERITY[kind]
        case SyncNotice():
            return Severity.INFO
    raise TypeError(f"Unsupported occurrence: {occurrence!r}")


def describe(
    occurrence: StatusChange | WanStatusChange | TestAlert | SyncNotice,
    device: Device,
    site: Site,
) -> tuple[str, str]:
    """Human-readable title and message for an occurrence."""
    match occurrence:
        case StatusChange(previous=previous, current=current):
            return (
                f"Device status changed to {current.value}",
                f"Device {device.display_name} at {site.name} changed from "
                f"{previous.value} to {current.value}",
            )
        case WanStatusChange(link=link, current=current, other_link=other):
            other_name = WAN_LINK_NAMES[3 - link]
            if current == HealthStatus.ONLINE:
                return (
                    f"WAN {link} link restored",
                    f"{WAN_LINK_NAMES[link]} WAN link is back ONLINE for {device.display_name}.",
                )
            return (
                f"WAN {link} link down",
                f"{WAN_LINK_NAMES[link]} WAN link is DOWN for {device.display_name}. "
                f"{other_name} WAN remains {other.value}.",
            )
        case TestAlert(kind=kind):
            return (
                f"Test Alert: {TEST_ALERT_TITLES[kind]}",
                f"Manual test alert triggered for {site.name} - {device.display_name}",
            )
        case SyncNotice(source=source):
            return (
                "Host synchronized successfully",
                f"Status and health metrics updated from {source}.",
            )
    raise TypeError(f"Unsupported occurrence: {occurrence!r}")


def classify(
    occurrence: StatusChange | WanStatusChange | TestAlert | SyncNotice,
    device: Device,
    site: Site,
) -> NewDeviceEvent:
    """Turn an occurrence into a severity-tagged event ready to append."""
    title, message = describe(occurrence, device, site)
    return NewDeviceEvent(
        device_id=device.id,
        site_id=site.id,
        event_type=occurrence.event_type,
        severity=classify_severity(occurrence),
        title=title,
        message=message,
        raw_payload=occurrence.model_dump(mode="json"),
        created_at=utc_now(),
    )


def detect_transitions(previous: Device, current: Device) -> list[StatusChange | WanStatusChange]:
    """
    Occurrences implied by moving a device from ``previous`` to ``current``.

    Self-transitions produce nothing. A device that has never been observed
    has no prior state, so its first observation produces nothing either.
    """
    if previous.last_seen_at is None:
        return []

    occurrences: list[StatusChange | WanStatusChange] = []
    if previous.normalized_status != current.normalized_status:
        occurrences.append(
            StatusChange(previous=previous.normalized_status, current=current.normalized_status)
        )
    if previous.wan1_status != current.wan1_status:
        occurrences.append(
            WanStatusChange(
                link=1,
                previous=previous.wan1_status,
                current=current.wan1_status,
                other_link=current.wan2_status,
            )
        )
    if previous.wan2_status != current.wan2_status:
        occurrences.append(
            WanStatusChange(
                link=2,
                previous=previous.wan2_status,
                current=current.wan2_status,
                other_link=current.wan1_status,
            )
        )
    return occurrences
