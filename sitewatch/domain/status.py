"""
Status normalization and rollup.

Both functions here are pure and total: any input maps to exactly one
HealthStatus and nothing raises. Unrecognized vendor vocabulary degrades to
UNKNOWN so a dashboard always has a value to show.
"""

from collections import Counter
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field

from sitewatch.domain.models import Device, HealthStatus

UNSTABLE_MARKERS = ("unstable", "degraded")


def normalize_status(raw: str | HealthStatus | None) -> HealthStatus:
    """Map a raw vendor status token onto the fixed taxonomy."""
    if raw is None:
        return HealthStatus.UNKNOWN

    token = raw.value if isinstance(raw, HealthStatus) else str(raw)
    token = token.strip().casefold()
    if not token:
        return HealthStatus.UNKNOWN

    if token == "online":
        return HealthStatus.ONLINE
    if token == "offline":
        return HealthStatus.OFFLINE
    if any(marker in token for marker in UNSTABLE_MARKERS):
        return HealthStatus.UNSTABLE
    return HealthStatus.UNKNOWN


class StatusCounts(BaseModel):
    """Tally of normalized statuses for one host."""

    model_config = ConfigDict(frozen=True)

    online: int = Field(default=0, ge=0)
    offline: int = Field(default=0, ge=0)
    unstable: int = Field(default=0, ge=0)
    unknown: int = Field(default=0, ge=0)

    @classmethod
    def tally(cls, statuses: Iterable[HealthStatus]) -> "StatusCounts":
        counter = Counter(statuses)
        return cls(
            online=counter[HealthStatus.ONLINE],
            offline=counter[HealthStatus.OFFLINE],
            unstable=counter[HealthStatus.UNSTABLE],
            unknown=counter[HealthStatus.UNKNOWN],
        )

    @property
    def total_known(self) -> int:
        return self.online + self.unstable + self.offline


def aggregate_counts(counts: StatusCounts) -> HealthStatus:
    """
    Roll a status tally up into one overall status.

    Pessimistic: ONLINE only when every known status is ONLINE, and any mix of
    healthy and unhealthy devices counts as UNSTABLE.
    """
    if counts.total_known == 0 and counts.unknown > 0:
        return HealthStatus.UNKNOWN
    if counts.online > 0 and counts.offline == 0 and counts.unstable == 0:
        return HealthStatus.ONLINE
    if counts.offline > 0 and counts.online == 0 and counts.unstable == 0:
        return HealthStatus.OFFLINE
    if counts.online > 0 and counts.offline > 0:
        return HealthStatus.UNSTABLE
    if counts.unstable > 0:
        return HealthStatus.UNSTABLE
    return HealthStatus.UNKNOWN


def aggregate_status(statuses: Iterable[HealthStatus]) -> HealthStatus:
    """Overall status of a host from its devices' normalized statuses."""
    return aggregate_counts(StatusCounts.tally(statuses))


def aggregate_device_links(device: Device) -> HealthStatus:
    """WAN-only variant: the device's own status plus its two WAN links."""
    return aggregate_status((device.normalized_status, device.wan1_status, device.wan2_status))
