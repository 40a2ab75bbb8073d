"""
Domain models for fleet health monitoring.

These models represent the core business concepts and are framework-agnostic.
They use Pydantic for validation; enums are str-valued so every record is
JSON-serializable as-is for presentation surfaces.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field


class HealthStatus(str, Enum):
    """The only status vocabulary the core reasons about."""

    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"
    UNSTABLE = "UNSTABLE"
    UNKNOWN = "UNKNOWN"


class Severity(str, Enum):
    """Event severity, fixed by event-type classification."""

    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    INFO = "INFO"


class EventType(str, Enum):
    """Closed set of event kinds the classifier knows about."""

    STATUS_CHANGE = "status_change"
    WAN_STATUS_CHANGE = "wan_status_change"
    TEST_ALERT = "test_alert"
    SYNC = "sync"


class TestAlertKind(str, Enum):
    """Manual test alerts an operator can trigger."""

    __test__ = False  # keep pytest from collecting this as a test class

    HOST_OFFLINE = "host_offline"
    WAN1_DOWN = "wan1_down"
    WAN2_DOWN = "wan2_down"


# Filter vocabularies accepted by the query layer
StatusFilter = HealthStatus | Literal["ALL"]
SeverityFilter = Severity | Literal["ALL"]

MAX_FEED_PAGE_SIZE = 50


def utc_now() -> datetime:
    return datetime.now(UTC)


class Site(BaseModel):
    """A monitored location owning zero or more devices."""

    id: str
    external_site_id: str = Field(description="Site identifier in the vendor API")
    name: str
    is_active: bool = True
    normalized_status: HealthStatus = Field(
        default=HealthStatus.UNKNOWN, description="Cached rollup of all devices in the site"
    )


class Device(BaseModel):
    """A device reporting a raw vendor status."""

    id: str
    external_device_id: str
    site_id: str
    name: str | None = None
    model_type: str | None = None
    ip_address: str | None = None
    vendor: str | None = None
    raw_status: str | None = Field(default=None, description="Unnormalized vendor status")
    normalized_status: HealthStatus = HealthStatus.UNKNOWN
    is_primary_host: bool = False
    wan1_status: HealthStatus = HealthStatus.UNKNOWN
    wan2_status: HealthStatus = HealthStatus.UNKNOWN
    last_seen_at: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def display_name(self) -> str:
        return self.name or self.external_device_id


class DeviceEvent(BaseModel):
    """Immutable, append-only record of a classified occurrence."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=1, description="Creation-ordered id assigned by the store")
    device_id: str
    site_id: str
    event_type: EventType
    severity: Severity
    title: str
    message: str | None = None
    raw_payload: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=utc_now)


class NewDeviceEvent(BaseModel):
    """An event waiting for the store to assign its id."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    site_id: str
    event_type: EventType
    severity: Severity
    title: str
    message: str | None = None
    raw_payload: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=utc_now)


class Observation(BaseModel):
    """One status reading for a known device, as delivered by a poller."""

    model_config = ConfigDict(frozen=True)

    device_id: str | None
    raw_status: str | None = None
    raw_wan1_status: str | None = None
    raw_wan2_status: str | None = None
    observed_at: datetime = Field(default_factory=utc_now)


class DeviceSnapshot(BaseModel):
    """A device as seen by a vendor poll, including its owning site."""

    model_config = ConfigDict(frozen=True)

    external_site_id: str
    site_name: str
    external_device_id: str
    name: str | None = None
    model_type: str | None = None
    ip_address: str | None = None
    vendor: str | None = None
    is_primary_host: bool = False
    raw_status: str | None = None
    raw_wan1_status: str | None = None
    raw_wan2_status: str | None = None
    observed_at: datetime = Field(default_factory=utc_now)


class EventFilter(BaseModel):
    """Feed query parameters. The page size is always bounded."""

    severity: SeverityFilter = "ALL"
    primary_only: bool = False
    limit: int = Field(default=MAX_FEED_PAGE_SIZE, ge=1, le=MAX_FEED_PAGE_SIZE)


class FleetStats(BaseModel):
    """Host counts by overall status for the summary dashboard."""

    total: int = 0
    online: int = 0
    offline: int = 0
    unstable: int = 0
    unknown: int = 0


class HostRow(BaseModel):
    """A primary host as shown on host-centric views."""

    id: str
    site_name: str
    host_name: str
    ip_address: str | None = None
    status: HealthStatus
    link_status: HealthStatus = Field(description="Rollup of the device and its two WAN links")
    wan1_status: HealthStatus
    wan2_status: HealthStatus
    last_seen_at: datetime | None = None


class EventRow(BaseModel):
    """A feed entry joined with its site and device names."""

    id: int
    site_name: str
    device_name: str
    severity: Severity
    title: str
    message: str | None = None
    event_type: EventType
    created_at: datetime
    is_primary_host: bool = False
