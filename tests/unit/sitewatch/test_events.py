"""Tests for event classification and transition detection."""

from datetime import UTC, datetime

import pytest
from pydantic import TypeAdapter

from sitewatch.domain.events import (
    Occurrence,
    StatusChange,
    SyncNotice,
    TestAlert,
    WanStatusChange,
    classify,
    classify_severity,
    detect_transitions,
)
from sitewatch.domain.models import (
    Device,
    EventType,
    HealthStatus,
    Severity,
    Site,
    TestAlertKind,
)

ONLINE = HealthStatus.ONLINE
OFFLINE = HealthStatus.OFFLINE
UNSTABLE = HealthStatus.UNSTABLE
UNKNOWN = HealthStatus.UNKNOWN


@pytest.fixture
def site() -> Site:
    return Site(id="site-1", external_site_id="site-clinica-duo", name="CLINICA DUO")


@pytest.fixture
def device() -> Device:
    return Device(
        id="dev-1",
        external_device_id="clinica-duo-udm-pro",
        site_id="site-1",
        name="CLINICA DUO - UDM Pro",
        is_primary_host=True,
        normalized_status=ONLINE,
        wan1_status=ONLINE,
        wan2_status=ONLINE,
        last_seen_at=datetime(2026, 1, 1, tzinfo=UTC),
    )


class TestSeverityTable:
    @pytest.mark.parametrize(
        "current,expected",
        [
            (OFFLINE, Severity.CRITICAL),
            (UNSTABLE, Severity.WARNING),
            (UNKNOWN, Severity.WARNING),
            (ONLINE, Severity.INFO),
        ],
    )
    def test_status_change(self, current: HealthStatus, expected: Severity) -> None:
        previous = ONLINE if current != ONLINE else OFFLINE
        assert classify_severity(StatusChange(previous=previous, current=current)) == expected

    @pytest.mark.parametrize(
        "current,other,expected",
        [
            (OFFLINE, ONLINE, Severity.WARNING),
            (UNKNOWN, ONLINE, Severity.WARNING),
            (OFFLINE, OFFLINE, Severity.CRITICAL),
            (ONLINE, ONLINE, Severity.INFO),
            (ONLINE, OFFLINE, Severity.INFO),
        ],
    )
    def test_wan_status_change(
        self, current: HealthStatus, other: HealthStatus, expected: Severity
    ) -> None:
        occurrence = WanStatusChange(link=2, previous=UNSTABLE, current=current, other_link=other)
        assert classify_severity(occurrence) == expected

    @pytest.mark.parametrize(
        "kind,expected",
        [
            (TestAlertKind.HOST_OFFLINE, Severity.CRITICAL),
            (TestAlertKind.WAN1_DOWN, Severity.WARNING),
            (TestAlertKind.WAN2_DOWN, Severity.WARNING),
        ],
    )
    def test_test_alert(self, kind: TestAlertKind, expected: Severity) -> None:
        assert classify_severity(TestAlert(kind=kind)) == expected

    def test_sync_is_info(self) -> None:
        assert classify_severity(SyncNotice()) == Severity.INFO

    def test_every_status_target_has_a_severity(self) -> None:
        for previous in HealthStatus:
            for current in HealthStatus:
                severity = classify_severity(StatusChange(previous=previous, current=current))
                assert severity in set(Severity)


class TestOccurrenceUnion:
    def test_discriminates_on_event_type(self) -> None:
        adapter = TypeAdapter(Occurrence)
        parsed = adapter.validate_python({"event_type": "test_alert", "kind": "wan1_down"})
        assert isinstance(parsed, TestAlert)
        assert parsed.kind == TestAlertKind.WAN1_DOWN

    def test_unknown_event_type_rejected(self) -> None:
        with pytest.raises(ValueError):
            TypeAdapter(Occurrence).validate_python({"event_type": "reboot"})


class TestClassify:
    def test_status_change_to_offline(self, device: Device, site: Site) -> None:
        event = classify(StatusChange(previous=ONLINE, current=OFFLINE), device, site)

        assert event.event_type == EventType.STATUS_CHANGE
        assert event.severity == Severity.CRITICAL
        assert event.title == "Device status changed to OFFLINE"
        assert event.message == (
            "Device CLINICA DUO - UDM Pro at CLINICA DUO changed from ONLINE to OFFLINE"
        )
        assert event.device_id == device.id
        assert event.site_id == site.id
        assert event.raw_payload == {
            "event_type": "status_change",
            "previous": "ONLINE",
            "current": "OFFLINE",
        }

    def test_wan_link_down_message(self, device: Device, site: Site) -> None:
        occurrence = WanStatusChange(link=2, previous=ONLINE, current=OFFLINE, other_link=ONLINE)
        event = classify(occurrence, device, site)

        assert event.severity == Severity.WARNING
        assert event.title == "WAN 2 link down"
        assert event.message == (
            "Secondary WAN link is DOWN for CLINICA DUO - UDM Pro. Primary WAN remains ONLINE."
        )

    def test_wan_link_restored(self, device: Device, site: Site) -> None:
        occurrence = WanStatusChange(link=1, previous=OFFLINE, current=ONLINE, other_link=ONLINE)
        event = classify(occurrence, device, site)
        assert event.title == "WAN 1 link restored"
        assert event.severity == Severity.INFO

    def test_test_alert(self, device: Device, site: Site) -> None:
        event = classify(TestAlert(), device, site)
        assert event.title == "Test Alert: HOST_OFFLINE_TEST"
        assert event.message == (
            "Manual test alert triggered for CLINICA DUO - CLINICA DUO - UDM Pro"
        )
        assert event.severity == Severity.CRITICAL

    def test_device_without_name_uses_external_id(self, device: Device, site: Site) -> None:
        unnamed = device.model_copy(update={"name": None})
        event = classify(StatusChange(previous=ONLINE, current=OFFLINE), unnamed, site)
        assert "clinica-duo-udm-pro" in (event.message or "")


class TestDetectTransitions:
    def test_first_observation_produces_nothing(self, device: Device) -> None:
        never_seen = device.model_copy(update={"last_seen_at": None, "normalized_status": UNKNOWN})
        current = device.model_copy(update={"normalized_status": ONLINE})
        assert detect_transitions(never_seen, current) == []

    def test_self_transition_produces_nothing(self, device: Device) -> None:
        assert detect_transitions(device, device.model_copy()) == []

    def test_status_change_detected(self, device: Device) -> None:
        current = device.model_copy(update={"normalized_status": OFFLINE})
        assert detect_transitions(device, current) == [
            StatusChange(previous=ONLINE, current=OFFLINE)
        ]

    def test_wan_change_reports_other_link(self, device: Device) -> None:
        current = device.model_copy(update={"wan1_status": OFFLINE})
        assert detect_transitions(device, current) == [
            WanStatusChange(link=1, previous=ONLINE, current=OFFLINE, other_link=ONLINE)
        ]

    def test_both_wans_down_at_once(self, device: Device) -> None:
        current = device.model_copy(update={"wan1_status": OFFLINE, "wan2_status": OFFLINE})
        occurrences = detect_transitions(device, current)

        assert len(occurrences) == 2
        assert all(classify_severity(o) == Severity.CRITICAL for o in occurrences)
