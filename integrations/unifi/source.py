"""UniFi implementation of the ObservationSource protocol."""

from datetime import UTC, datetime

import structlog

from integrations.unifi.client import UnifiAPIError, UnifiClient, UnifiDevicesResponse
from sitewatch.domain.models import DeviceSnapshot
from sitewatch.services.collector import Result

logger = structlog.get_logger(__name__)

VENDOR = "unifi"


def snapshots_from_response(
    response: UnifiDevicesResponse, observed_at: datetime | None = None
) -> list[DeviceSnapshot]:
    """
    Flatten a device listing into snapshots.

    Each host group is a site. The first identifiable device listed in a group
    is that site's primary host. Devices with neither an id nor a MAC are
    skipped.
    """
    observed_at = observed_at or datetime.now(UTC)
    snapshots: list[DeviceSnapshot] = []

    for host in response.data:
        primary_assigned = False
        for device in host.devices:
            external_id = device.id or device.mac
            if not external_id:
                logger.warning("unifi_device_without_id", host_id=host.host_id)
                continue

            snapshots.append(
                DeviceSnapshot(
                    external_site_id=host.host_id,
                    site_name=host.host_name,
                    external_device_id=external_id,
                    name=device.name,
                    model_type=device.model,
                    ip_address=device.ip_address,
                    vendor=VENDOR,
                    is_primary_host=not primary_assigned,
                    raw_status=device.status,
                    raw_wan1_status=device.wan1_status,
                    raw_wan2_status=device.wan2_status,
                    observed_at=observed_at,
                )
            )
            primary_assigned = True

    return snapshots


class UnifiObservationSource:
    """Polls UniFi Site Manager for the current device list."""

    def __init__(self, client: UnifiClient, source_name: str = "unifi-site-manager") -> None:
        self.client = client
        self.source_name = source_name
        self.logger = logger.bind(source=source_name)

    async def collect_snapshots(self) -> Result[list[DeviceSnapshot]]:
        try:
            response = await self.client.list_devices()
        except UnifiAPIError as e:
            self.logger.error("unifi_collection_failed", error=str(e))
            return Result.err(e)

        snapshots = snapshots_from_response(response)
        self.logger.info("unifi_snapshots_collected", count=len(snapshots))
        return Result.ok(snapshots)
