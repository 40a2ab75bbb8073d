"""
Demo fleet seeding.

Wipes the store and loads four sites, one primary host each, covering every
overall status, plus a handful of feed events. Administrative use only.
"""

from dataclasses import dataclass

import structlog

from sitewatch.domain.events import StatusChange, SyncNotice, TestAlert, WanStatusChange, classify
from sitewatch.domain.models import HealthStatus, Observation, TestAlertKind
from sitewatch.services.health_engine import FleetHealthService

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SeedHost:
    site_name: str
    external_site_id: str
    external_device_id: str
    device_name: str
    ip_address: str
    raw_status: str
    wan1: str
    wan2: str


DEMO_HOSTS = [
    SeedHost(
        "ABGI BH", "site-abgi-bh", "abgi-bh-console", "ABGI BH - UCK G2 Plus",
        "192.168.0.16", "ONLINE", "ONLINE", "ONLINE",
    ),
    SeedHost(
        "CLINICA DUO", "site-clinica-duo", "clinica-duo-udm-pro", "CLINICA DUO - UDM Pro",
        "192.168.15.2", "OFFLINE", "OFFLINE", "ONLINE",
    ),
    SeedHost(
        "HYPE TECNOLOGIA", "site-hype-tecno", "hype-tec-main", "HYPE TECNOLOGIA - Main Host",
        "10.0.0.10", "UNSTABLE", "ONLINE", "OFFLINE",
    ),
    SeedHost(
        "GRUPO MINERAR", "site-grupo-minerar", "miner-main", "GRUPO MINERAR - Main Host",
        "10.0.1.5", "UNKNOWN", "UNKNOWN", "UNKNOWN",
    ),
]  # fmt: skip


async def seed_demo_fleet(health: FleetHealthService) -> dict[str, str]:
    """Reset the store and load the demo fleet. Returns external device id -> device id."""
    store = health.store
    await store.reset()

    device_ids: dict[str, str] = {}
    for host in DEMO_HOSTS:
        site = await health.register_site(host.external_site_id, host.site_name)
        device = await health.register_device(
            site.id,
            host.external_device_id,
            name=host.device_name,
            model_type="UniFi Console",
            ip_address=host.ip_address,
            vendor="unifi",
            is_primary_host=True,
        )
        await health.apply_observation(
            Observation(
                device_id=device.id,
                raw_status=host.raw_status,
                raw_wan1_status=host.wan1,
                raw_wan2_status=host.wan2,
            )
        )
        device_ids[host.external_device_id] = device.id

    feed = [
        ("abgi-bh-console", TestAlert(kind=TestAlertKind.HOST_OFFLINE)),
        ("hype-tec-main", TestAlert(kind=TestAlertKind.HOST_OFFLINE)),
        (
            "clinica-duo-udm-pro",
            StatusChange(previous=HealthStatus.ONLINE, current=HealthStatus.OFFLINE),
        ),
        (
            "hype-tec-main",
            WanStatusChange(
                link=2,
                previous=HealthStatus.ONLINE,
                current=HealthStatus.OFFLINE,
                other_link=HealthStatus.ONLINE,
            ),
        ),
        ("abgi-bh-console", SyncNotice()),
    ]
    for external_device_id, occurrence in feed:
        device, site = await health.resolve_device(device_ids[external_device_id])
        await store.append_event(classify(occurrence, device, site))

    logger.info("demo_fleet_seeded", sites=len(DEMO_HOSTS), events=len(feed))
    return device_ids
