"""
Tests for the write-time health engine.

Covers:
- Observation validation (missing / unresolvable ids)
- Normalization and site rollup on write
- Transition detection and self-transition suppression
- Primary-host invariant at registration
- Test alerts, sync notices and alert dispatch
- Cached status rebuild
- Fleet-level reads and dependency failures
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from sitewatch.config import MonitoringConfig
from sitewatch.domain.models import (
    Device,
    DeviceEvent,
    DeviceSnapshot,
    EventFilter,
    EventType,
    HealthStatus,
    Observation,
    Severity,
    Site,
    TestAlertKind,
)
from sitewatch.errors import (
    DependencyError,
    PrimaryHostConflictError,
    StoreUnavailableError,
    ValidationError,
)
from sitewatch.services.alerts import AlertDispatcher
from sitewatch.services.health_engine import FleetHealthService
from sitewatch.services.store import InMemoryHealthStore


class RecordingHandler:
    def __init__(self) -> None:
        self.events: list[DeviceEvent] = []

    def __call__(self, event: DeviceEvent) -> None:
        self.events.append(event)


@pytest.fixture
def store() -> InMemoryHealthStore:
    return InMemoryHealthStore()


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def health(store: InMemoryHealthStore, handler: RecordingHandler) -> FleetHealthService:
    return FleetHealthService(store, AlertDispatcher(handlers=[handler]))


async def add_host(
    health: FleetHealthService, key: str, site: Site | None = None, primary: bool = True
) -> tuple[Site, Device]:
    site = site or await health.register_site(f"site-{key}", f"Site {key.upper()}")
    device = await health.register_device(
        site.id, f"dev-{key}", name=f"Device {key}", is_primary_host=primary
    )
    return site, device


def observe(
    device: Device,
    status: str | None,
    wan1: str | None = None,
    wan2: str | None = None,
    at: datetime | None = None,
) -> Observation:
    return Observation(
        device_id=device.id,
        raw_status=status,
        raw_wan1_status=wan1,
        raw_wan2_status=wan2,
        observed_at=at or datetime.now(UTC),
    )


class TestValidation:
    @pytest.mark.parametrize("device_id", [None, "", "   "])
    async def test_missing_device_id_rejected(
        self, health: FleetHealthService, device_id: str | None
    ) -> None:
        with pytest.raises(ValidationError, match="no device id"):
            await health.apply_observation(Observation(device_id=device_id, raw_status="online"))

    async def test_unknown_device_rejected(self, health: FleetHealthService) -> None:
        with pytest.raises(ValidationError, match="Unknown device"):
            await health.apply_observation(Observation(device_id="ghost", raw_status="online"))

    async def test_device_with_unknown_site_rejected(
        self, health: FleetHealthService, store: InMemoryHealthStore
    ) -> None:
        await store.upsert_device_status(
            Device(id="orphan", external_device_id="orphan", site_id="missing")
        )
        with pytest.raises(ValidationError, match="unknown site"):
            await health.apply_observation(Observation(device_id="orphan", raw_status="online"))

    async def test_register_device_for_unknown_site(self, health: FleetHealthService) -> None:
        with pytest.raises(ValidationError, match="Unknown site"):
            await health.register_device("nope", "dev-1")

    async def test_batch_reports_rejections_without_stopping(
        self, health: FleetHealthService
    ) -> None:
        _, device = await add_host(health, "a")
        results = await health.apply_observations(
            [
                Observation(device_id=None, raw_status="online"),
                observe(device, "online"),
            ]
        )

        assert results[0].is_err()
        assert isinstance(results[0].unwrap_err(), ValidationError)
        assert results[1].is_ok()
        stored = await health.store.get_device(device.id)
        assert stored is not None and stored.normalized_status == HealthStatus.ONLINE


class TestObservationPipeline:
    async def test_first_observation_sets_status_without_events(
        self, health: FleetHealthService, handler: RecordingHandler
    ) -> None:
        site, device = await add_host(health, "a")
        assert device.normalized_status == HealthStatus.UNKNOWN

        events = await health.apply_observation(observe(device, "online"))

        stored_device = await health.store.get_device(device.id)
        stored_site = await health.store.get_site(site.id)
        assert events == []
        assert handler.events == []
        assert stored_device is not None and stored_device.normalized_status == HealthStatus.ONLINE
        assert stored_device.raw_status == "online"
        assert stored_device.last_seen_at is not None
        assert stored_site is not None and stored_site.normalized_status == HealthStatus.ONLINE

    async def test_first_observation_with_sync_events_enabled(
        self, store: InMemoryHealthStore
    ) -> None:
        health = FleetHealthService(store, config=MonitoringConfig(emit_sync_events=True))
        _, device = await add_host(health, "a")

        events = await health.apply_observation(observe(device, "online"))

        assert [(e.event_type, e.severity) for e in events] == [(EventType.SYNC, Severity.INFO)]

    async def test_going_offline_is_critical_and_dispatched(
        self, health: FleetHealthService, handler: RecordingHandler
    ) -> None:
        _, device = await add_host(health, "a")
        await health.apply_observation(observe(device, "online", "online", "online"))

        events = await health.apply_observation(observe(device, "OFFLINE", "online", "online"))

        assert len(events) == 1
        assert events[0].event_type == EventType.STATUS_CHANGE
        assert events[0].severity == Severity.CRITICAL
        assert handler.events == events

    async def test_same_status_twice_appends_one_event(self, health: FleetHealthService) -> None:
        _, device = await add_host(health, "a")
        await health.apply_observation(observe(device, "online"))

        first = await health.apply_observation(observe(device, "offline"))
        second = await health.apply_observation(observe(device, "Offline"))

        assert len(first) == 1
        assert second == []
        assert len(await health.store.get_events(EventFilter())) == 1

    async def test_wan_down_while_other_up_is_warning(self, health: FleetHealthService) -> None:
        _, device = await add_host(health, "a")
        await health.apply_observation(observe(device, "online", "online", "online"))

        events = await health.apply_observation(observe(device, "online", "online", "offline"))

        assert [(e.event_type, e.severity, e.title) for e in events] == [
            (EventType.WAN_STATUS_CHANGE, Severity.WARNING, "WAN 2 link down")
        ]

    async def test_info_events_not_dispatched_by_default(
        self, health: FleetHealthService, handler: RecordingHandler
    ) -> None:
        _, device = await add_host(health, "a")
        await health.apply_observation(observe(device, "offline"))

        events = await health.apply_observation(observe(device, "online"))

        assert events[0].severity == Severity.INFO
        assert handler.events == []

    async def test_two_devices_one_down_makes_site_unstable(
        self, health: FleetHealthService
    ) -> None:
        site, host = await add_host(health, "a")
        _, switch = await add_host(health, "b", site=site, primary=False)

        await health.apply_observation(observe(host, "online"))
        await health.apply_observation(observe(switch, "offline"))

        stored_site = await health.store.get_site(site.id)
        stats = await health.fleet_stats()
        assert stored_site is not None and stored_site.normalized_status == HealthStatus.UNSTABLE
        assert (stats.total, stats.unstable, stats.online, stats.offline) == (1, 1, 0, 0)

    async def test_concurrent_observations_for_one_site(self, health: FleetHealthService) -> None:
        site, host = await add_host(health, "a")
        siblings = [
            (await add_host(health, f"s{i}", site=site, primary=False))[1] for i in range(5)
        ]

        await asyncio.gather(
            health.apply_observation(observe(host, "online")),
            *(health.apply_observation(observe(d, "online")) for d in siblings),
        )

        stored_site = await health.store.get_site(site.id)
        assert stored_site is not None and stored_site.normalized_status == HealthStatus.ONLINE


class TestPrimaryHost:
    async def test_second_primary_host_rejected(self, health: FleetHealthService) -> None:
        site, first = await add_host(health, "a")

        with pytest.raises(PrimaryHostConflictError) as exc_info:
            await health.register_device(site.id, "dev-second", is_primary_host=True)

        assert exc_info.value.existing_device_id == first.id
        assert isinstance(exc_info.value, ValidationError)
        assert [h.id for h in await health.store.get_primary_hosts()] == [first.id]

    async def test_re_registering_the_same_primary_is_allowed(
        self, health: FleetHealthService
    ) -> None:
        site, first = await add_host(health, "a")
        again = await health.register_device(
            site.id, "dev-a", name="Renamed", is_primary_host=True
        )
        assert again.id == first.id
        assert again.name == "Renamed"

    async def test_device_cannot_move_between_sites(self, health: FleetHealthService) -> None:
        _, device = await add_host(health, "a")
        other = await health.register_site("site-other", "Other")

        with pytest.raises(ValidationError, match="already belongs"):
            await health.register_device(other.id, device.external_device_id)

    async def test_registration_keeps_observed_status(self, health: FleetHealthService) -> None:
        site, device = await add_host(health, "a")
        await health.apply_observation(observe(device, "online"))

        updated = await health.register_device(
            site.id, "dev-a", ip_address="10.0.0.1", is_primary_host=True
        )

        assert updated.normalized_status == HealthStatus.ONLINE
        assert updated.ip_address == "10.0.0.1"


class TestManualEvents:
    async def test_host_offline_test_alert(
        self, health: FleetHealthService, handler: RecordingHandler
    ) -> None:
        _, device = await add_host(health, "a")

        event = await health.trigger_test_alert(device.id)

        assert event.event_type == EventType.TEST_ALERT
        assert event.severity == Severity.CRITICAL
        assert event.title == "Test Alert: HOST_OFFLINE_TEST"
        assert handler.events == [event]

    async def test_wan_test_alert_is_warning(self, health: FleetHealthService) -> None:
        _, device = await add_host(health, "a")
        event = await health.trigger_test_alert(device.id, TestAlertKind.WAN1_DOWN)
        assert event.severity == Severity.WARNING

    async def test_test_alert_for_unknown_device(self, health: FleetHealthService) -> None:
        with pytest.raises(ValidationError):
            await health.trigger_test_alert("ghost")

    async def test_sync_notice(self, health: FleetHealthService) -> None:
        _, device = await add_host(health, "a")
        event = await health.record_sync_notice(device.id)
        assert (event.event_type, event.severity) == (EventType.SYNC, Severity.INFO)

    async def test_sync_notice_reaches_info_handlers(self, store: InMemoryHealthStore) -> None:
        received = RecordingHandler()
        health = FleetHealthService(store, AlertDispatcher(Severity.INFO, handlers=[received]))
        _, device = await add_host(health, "a")

        event = await health.record_sync_notice(device.id)

        assert received.events == [event]


class TestSnapshots:
    async def test_snapshot_registers_and_applies(self, health: FleetHealthService) -> None:
        snapshot = DeviceSnapshot(
            external_site_id="site-abgi-bh",
            site_name="ABGI BH",
            external_device_id="abgi-bh-console",
            name="ABGI BH - UCK G2 Plus",
            is_primary_host=True,
            raw_status="online",
        )

        results = await health.sync_snapshots([snapshot, snapshot])

        assert all(r.is_ok() for r in results)
        hosts = await health.list_hosts()
        assert len(hosts) == 1
        assert hosts[0].site_name == "ABGI BH"
        assert hosts[0].status == HealthStatus.ONLINE

    async def test_conflicting_snapshot_reported(self, health: FleetHealthService) -> None:
        base = {"external_site_id": "s", "site_name": "S", "is_primary_host": True}
        results = await health.sync_snapshots(
            [
                DeviceSnapshot(external_device_id="one", **base),
                DeviceSnapshot(external_device_id="two", **base),
            ]
        )
        assert results[0].is_ok()
        assert isinstance(results[1].unwrap_err(), PrimaryHostConflictError)


class TestRebuild:
    async def test_rebuild_recomputes_from_raw(
        self, health: FleetHealthService, store: InMemoryHealthStore
    ) -> None:
        site, device = await add_host(health, "a")
        await health.apply_observation(observe(device, "link degraded"))

        # Corrupt the caches directly
        stored = await store.get_device(device.id)
        assert stored is not None
        await store.upsert_device_status(
            stored.model_copy(update={"normalized_status": HealthStatus.ONLINE})
        )
        stored_site = await store.get_site(site.id)
        assert stored_site is not None
        await store.upsert_site(
            stored_site.model_copy(update={"normalized_status": HealthStatus.OFFLINE})
        )

        rebuilt = await health.rebuild_cached_statuses()

        device_after = await store.get_device(device.id)
        site_after = await store.get_site(site.id)
        assert rebuilt == 1
        assert device_after is not None
        assert device_after.normalized_status == HealthStatus.UNSTABLE
        assert site_after is not None and site_after.normalized_status == HealthStatus.UNSTABLE


class TestReads:
    async def test_empty_fleet(self, health: FleetHealthService) -> None:
        stats = await health.fleet_stats()
        assert stats.total == 0
        assert await health.list_hosts() == []
        assert await health.list_events() == []

    async def test_list_hosts_by_status(self, health: FleetHealthService) -> None:
        _, a = await add_host(health, "a")
        _, b = await add_host(health, "b")
        await health.apply_observation(observe(a, "online"))
        await health.apply_observation(observe(b, "offline"))

        offline = await health.list_hosts(HealthStatus.OFFLINE)
        assert [h.host_name for h in offline] == ["Device b"]

    async def test_list_hosts_rejects_unknown_filter(self, health: FleetHealthService) -> None:
        await add_host(health, "a")
        with pytest.raises(ValidationError, match="Unknown status filter"):
            await health.list_hosts("online")  # type: ignore[arg-type]

    async def test_list_events_newest_first_with_names(self, health: FleetHealthService) -> None:
        _, device = await add_host(health, "a")
        start = datetime.now(UTC)
        await health.apply_observation(observe(device, "online", at=start))
        await health.apply_observation(observe(device, "offline", at=start + timedelta(seconds=1)))
        await health.trigger_test_alert(device.id, TestAlertKind.WAN2_DOWN)

        rows = await health.list_events()

        assert [r.event_type for r in rows] == [EventType.TEST_ALERT, EventType.STATUS_CHANGE]
        assert rows[0].site_name == "Site A"
        assert rows[0].device_name == "Device a"
        assert rows[0].is_primary_host is True

    async def test_list_events_respects_configured_page_size(
        self, store: InMemoryHealthStore
    ) -> None:
        health = FleetHealthService(store, config=MonitoringConfig(feed_page_size=3))
        _, device = await add_host(health, "a")
        for _ in range(5):
            await health.record_sync_notice(device.id)

        assert len(await health.list_events()) == 3


class UnavailableStore(InMemoryHealthStore):
    async def get_primary_hosts(self) -> list[Device]:
        raise StoreUnavailableError("database is down")


async def test_store_failure_surfaces_as_dependency_error() -> None:
    health = FleetHealthService(UnavailableStore())
    with pytest.raises(DependencyError, match="database is down"):
        await health.fleet_stats()
