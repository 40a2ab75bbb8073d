"""
Write-time health engine.

Every observation goes through the same pipeline:
1. Validate that the device and its site resolve
2. Normalize the raw device and WAN statuses
3. Detect transitions against the stored state
4. Persist the device and recompute the site rollup
5. Classify and append events, then hand them to the alert dispatcher

Cached statuses on Site and Device are derivations; rebuild_cached_statuses()
recomputes all of them from raw observations at any time.
"""

from collections import defaultdict
from collections.abc import Iterable

import structlog

from sitewatch.config import MonitoringConfig
from sitewatch.domain.events import (
    StatusChange,
    SyncNotice,
    TestAlert,
    WanStatusChange,
    classify,
    detect_transitions,
)
from sitewatch.domain.models import (
    Device,
    DeviceEvent,
    DeviceSnapshot,
    EventFilter,
    EventRow,
    FleetStats,
    HealthStatus,
    HostRow,
    Observation,
    Site,
    StatusFilter,
    TestAlertKind,
)
from sitewatch.domain.status import aggregate_status, normalize_status
from sitewatch.errors import PrimaryHostConflictError, ValidationError
from sitewatch.services.alerts import AlertDispatcher
from sitewatch.services.collector import Result
from sitewatch.services.queries import (
    build_event_rows,
    build_host_rows,
    compute_fleet_stats,
    filter_hosts,
)
from sitewatch.services.store import HealthStore, new_id

logger = structlog.get_logger(__name__)


class FleetHealthService:
    """
    Applies observations to the store and answers fleet-level queries.

    All collaborators are injected; nothing here touches the network or a
    database directly.
    """

    def __init__(
        self,
        store: HealthStore,
        dispatcher: AlertDispatcher | None = None,
        config: MonitoringConfig | None = None,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher or AlertDispatcher()
        self.config = config or MonitoringConfig()
        self.logger = logger.bind(component="fleet_health")

    # --- Registration ---

    async def register_site(
        self, external_site_id: str, name: str, is_active: bool = True
    ) -> Site:
        """Create or update a site keyed on its vendor id."""
        if not external_site_id or not external_site_id.strip():
            raise ValidationError("Site has no external id")

        existing = await self.store.get_site_by_external_id(external_site_id)
        if existing:
            site = existing.model_copy(update={"name": name, "is_active": is_active})
        else:
            site = Site(
                id=new_id(), external_site_id=external_site_id, name=name, is_active=is_active
            )
            self.logger.info("site_registered", site_id=site.id, external_site_id=external_site_id)
        return await self.store.upsert_site(site)

    async def register_device(
        self,
        site_id: str,
        external_device_id: str,
        *,
        name: str | None = None,
        model_type: str | None = None,
        ip_address: str | None = None,
        vendor: str | None = None,
        is_primary_host: bool = False,
    ) -> Device:
        """
        Create or update a device keyed on its vendor id.

        Raises:
            ValidationError: unknown site, missing id, or the device already
                belongs to another site.
            PrimaryHostConflictError: the site already has another primary host.
        """
        if not external_device_id or not external_device_id.strip():
            raise ValidationError("Device has no external id")
        site = await self.store.get_site(site_id)
        if site is None:
            raise ValidationError(f"Unknown site {site_id!r}")

        async with self.store.site_transaction(site.id):
            existing = await self.store.get_device_by_external_id(external_device_id)
            if existing and existing.site_id != site.id:
                raise ValidationError(
                    f"Device {external_device_id!r} already belongs to site {existing.site_id}"
                )

            device_id = existing.id if existing else new_id()
            if is_primary_host:
                await self._check_primary_host(site.id, device_id)

            fields = {
                "name": name,
                "model_type": model_type,
                "ip_address": ip_address,
                "vendor": vendor,
                "is_primary_host": is_primary_host,
            }
            if existing:
                device = existing.model_copy(update=fields)
            else:
                device = Device(
                    id=device_id, external_device_id=external_device_id, site_id=site.id, **fields
                )
                self.logger.info(
                    "device_registered",
                    device_id=device.id,
                    site_id=site.id,
                    is_primary_host=is_primary_host,
                )

            device = await self.store.upsert_device_status(device)
            await self._recompute_site(site)
        return device

    async def _check_primary_host(self, site_id: str, device_id: str) -> None:
        for sibling in await self.store.get_devices_for_site(site_id):
            if sibling.is_primary_host and sibling.id != device_id:
                raise PrimaryHostConflictError(site_id, sibling.id, device_id)

    # --- Observations ---

    async def apply_observation(self, observation: Observation) -> list[DeviceEvent]:
        """
        Normalize and persist one observation.

        Returns the events it produced; repeated observations of the same
        state produce none.
        """
        if not observation.device_id or not observation.device_id.strip():
            raise ValidationError("Observation has no device id")
        device = await self.store.get_device(observation.device_id)
        if device is None:
            raise ValidationError(f"Unknown device {observation.device_id!r}")
        site = await self.store.get_site(device.site_id)
        if site is None:
            raise ValidationError(f"Device {device.id} references unknown site {device.site_id!r}")

        async with self.store.site_transaction(site.id):
            # Re-read under the site lock so concurrent writers see each other
            previous = await self.store.get_device(device.id) or device
            current = previous.model_copy(
                update={
                    "raw_status": observation.raw_status,
                    "normalized_status": normalize_status(observation.raw_status),
                    "wan1_status": normalize_status(observation.raw_wan1_status),
                    "wan2_status": normalize_status(observation.raw_wan2_status),
                    "last_seen_at": observation.observed_at,
                }
            )

            occurrences: list[StatusChange | WanStatusChange | SyncNotice] = []
            occurrences.extend(detect_transitions(previous, current))
            if self.config.emit_sync_events:
                occurrences.append(SyncNotice())

            current = await self.store.upsert_device_status(current)
            site = await self._recompute_site(site)
            events = [
                await self.store.append_event(classify(occurrence, current, site))
                for occurrence in occurrences
            ]

        self.logger.info(
            "observation_applied",
            device_id=current.id,
            site_id=site.id,
            status=current.normalized_status.value,
            site_status=site.normalized_status.value,
            events=len(events),
        )
        await self.dispatcher.dispatch(events)
        return events

    async def apply_observations(
        self, observations: Iterable[Observation]
    ) -> list[Result[list[DeviceEvent], ValidationError]]:
        """
        Apply a batch. Rejected observations come back as errors for the
        caller to report; they are not retried.
        """
        results: list[Result[list[DeviceEvent], ValidationError]] = []
        for observation in observations:
            try:
                results.append(Result.ok(await self.apply_observation(observation)))
            except ValidationError as e:
                self.logger.warning(
                    "observation_rejected", device_id=observation.device_id, error=str(e)
                )
                results.append(Result.err(e))
        return results

    async def sync_snapshot(self, snapshot: DeviceSnapshot) -> list[DeviceEvent]:
        """Register the snapshot's site and device, then apply its statuses."""
        site = await self.register_site(snapshot.external_site_id, snapshot.site_name)
        device = await self.register_device(
            site.id,
            snapshot.external_device_id,
            name=snapshot.name,
            model_type=snapshot.model_type,
            ip_address=snapshot.ip_address,
            vendor=snapshot.vendor,
            is_primary_host=snapshot.is_primary_host,
        )
        return await self.apply_observation(
            Observation(
                device_id=device.id,
                raw_status=snapshot.raw_status,
                raw_wan1_status=snapshot.raw_wan1_status,
                raw_wan2_status=snapshot.raw_wan2_status,
                observed_at=snapshot.observed_at,
            )
        )

    async def sync_snapshots(
        self, snapshots: Iterable[DeviceSnapshot]
    ) -> list[Result[list[DeviceEvent], ValidationError]]:
        """
        Apply one complete vendor listing.

        Primary hosts are reconciled against the listing first: a site keeps
        its primary while the vendor still lists it, and a new primary is only
        promoted once the old one is gone.
        """
        snapshots = await self._reconcile_primary_hosts(list(snapshots))
        results: list[Result[list[DeviceEvent], ValidationError]] = []
        for snapshot in snapshots:
            try:
                results.append(Result.ok(await self.sync_snapshot(snapshot)))
            except ValidationError as e:
                self.logger.warning(
                    "snapshot_rejected",
                    external_device_id=snapshot.external_device_id,
                    error=str(e),
                )
                results.append(Result.err(e))
        return results

    async def _reconcile_primary_hosts(
        self, snapshots: list[DeviceSnapshot]
    ) -> list[DeviceSnapshot]:
        """
        Keep each site's stored primary while it is still listed; otherwise
        demote it so the vendor's new choice can be registered.
        """
        listed: dict[str, set[str]] = defaultdict(set)
        flagged: set[str] = set()
        for snapshot in snapshots:
            listed[snapshot.external_site_id].add(snapshot.external_device_id)
            if snapshot.is_primary_host:
                flagged.add(snapshot.external_site_id)

        kept: dict[str, str] = {}
        for external_site_id, device_ids in listed.items():
            site = await self.store.get_site_by_external_id(external_site_id)
            if site is None:
                continue
            async with self.store.site_transaction(site.id):
                for device in await self.store.get_devices_for_site(site.id):
                    if not device.is_primary_host:
                        continue
                    if device.external_device_id in device_ids:
                        kept[external_site_id] = device.external_device_id
                    elif external_site_id in flagged:
                        await self.store.upsert_device_status(
                            device.model_copy(update={"is_primary_host": False})
                        )
                        self.logger.info(
                            "primary_host_demoted", site_id=site.id, device_id=device.id
                        )

        reconciled: list[DeviceSnapshot] = []
        for snapshot in snapshots:
            primary = kept.get(snapshot.external_site_id)
            if primary is not None:
                snapshot = snapshot.model_copy(
                    update={"is_primary_host": snapshot.external_device_id == primary}
                )
            reconciled.append(snapshot)
        return reconciled

    # --- Manual triggers ---

    async def trigger_test_alert(
        self, device_id: str, kind: TestAlertKind = TestAlertKind.HOST_OFFLINE
    ) -> DeviceEvent:
        """Append (and dispatch) an operator test alert for a device."""
        device, site = await self.resolve_device(device_id)
        event = await self.store.append_event(classify(TestAlert(kind=kind), device, site))
        self.logger.info("test_alert_triggered", device_id=device.id, kind=kind.value)
        await self.dispatcher.dispatch([event])
        return event

    async def record_sync_notice(self, device_id: str, source: str = "UniFi API") -> DeviceEvent:
        device, site = await self.resolve_device(device_id)
        event = await self.store.append_event(classify(SyncNotice(source=source), device, site))
        await self.dispatcher.dispatch([event])
        return event

    async def resolve_device(self, device_id: str) -> tuple[Device, Site]:
        if not device_id:
            raise ValidationError("No device id given")
        device = await self.store.get_device(device_id)
        if device is None:
            raise ValidationError(f"Unknown device {device_id!r}")
        site = await self.store.get_site(device.site_id)
        if site is None:
            raise ValidationError(f"Device {device.id} references unknown site {device.site_id!r}")
        return device, site

    # --- Cached status maintenance ---

    async def _recompute_site(self, site: Site) -> Site:
        devices = await self.store.get_devices_for_site(site.id)
        status = aggregate_status(d.normalized_status for d in devices)
        if status == site.normalized_status:
            return site
        self.logger.info(
            "site_status_changed",
            site_id=site.id,
            previous=site.normalized_status.value,
            current=status.value,
        )
        return await self.store.upsert_site(site.model_copy(update={"normalized_status": status}))

    async def rebuild_cached_statuses(self) -> int:
        """Re-derive device statuses from raw statuses, then site rollups. Returns sites rebuilt."""
        sites = await self.store.list_sites()
        for site in sites:
            async with self.store.site_transaction(site.id):
                for device in await self.store.get_devices_for_site(site.id):
                    status = normalize_status(device.raw_status)
                    if status != device.normalized_status:
                        await self.store.upsert_device_status(
                            device.model_copy(update={"normalized_status": status})
                        )
                await self._recompute_site(site)
        self.logger.info("cached_statuses_rebuilt", sites=len(sites))
        return len(sites)

    # --- Reads ---

    async def host_overall_statuses(self, hosts: Iterable[Device]) -> dict[str, HealthStatus]:
        """Overall status of each host, derived from every device in its site."""
        overall: dict[str, HealthStatus] = {}
        for host in hosts:
            devices = await self.store.get_devices_for_site(host.site_id)
            overall[host.id] = aggregate_status(d.normalized_status for d in devices)
        return overall

    async def fleet_stats(self) -> FleetStats:
        hosts = await self.store.get_primary_hosts()
        return compute_fleet_stats(hosts, await self.host_overall_statuses(hosts))

    async def list_hosts(self, status: StatusFilter = "ALL") -> list[HostRow]:
        hosts = await self.store.get_primary_hosts()
        overall = await self.host_overall_statuses(hosts)
        sites = {s.id: s for s in await self.store.list_sites()}
        return build_host_rows(filter_hosts(hosts, status, overall), sites, overall)

    async def list_events(self, event_filter: EventFilter | None = None) -> list[EventRow]:
        event_filter = event_filter or EventFilter(limit=self.config.feed_page_size)
        events = await self.store.get_events(event_filter)

        devices: dict[str, Device] = {}
        for device_id in {e.device_id for e in events}:
            device = await self.store.get_device(device_id)
            if device:
                devices[device_id] = device
        sites = {s.id: s for s in await self.store.list_sites()}
        return build_event_rows(events, devices, sites)
