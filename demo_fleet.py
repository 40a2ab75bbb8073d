"""
End-to-end demo of the health engine against the demo fleet.

This script:
1. Loads configuration and logging
2. Seeds four demo sites into an in-memory store
3. Applies a few observations (recovery, WAN failure, repeated state)
4. Triggers a manual test alert
5. Runs one UniFi sync cycle when UNIFI_API_TOKEN is set
6. Renders the dashboard

Run with: python demo_fleet.py
"""

import asyncio

from rich.console import Console
from rich.panel import Panel

from integrations.unifi import UnifiClient, UnifiObservationSource
from sitewatch.config import get_config, print_config_summary, validate_config
from sitewatch.domain.models import EventFilter, Observation, Severity, TestAlertKind
from sitewatch.logging_setup import configure_logging
from sitewatch.reporting import FleetDashboard
from sitewatch.services import AlertDispatcher, FleetHealthService, FleetSyncService
from sitewatch.services.seed import seed_demo_fleet
from sitewatch.services.store import InMemoryHealthStore

console = Console()


async def main() -> None:
    validate_config()
    print_config_summary()
    config = get_config()
    configure_logging(config.logging)

    dispatcher = AlertDispatcher(min_severity=config.alerts.min_severity)
    dispatcher.add_handler(
        lambda event: console.print(f"[bold]ALERT[/bold] {event.severity.value}: {event.title}")
    )
    health = FleetHealthService(InMemoryHealthStore(), dispatcher, config.monitoring)

    console.print(Panel("Seeding demo fleet", style="blue"))
    device_ids = await seed_demo_fleet(health)

    console.print(Panel("Applying observations", style="blue"))
    scenario = [
        Observation(
            device_id=device_ids["clinica-duo-udm-pro"],
            raw_status="online",
            raw_wan1_status="online",
            raw_wan2_status="online",
        ),
        Observation(
            device_id=device_ids["abgi-bh-console"],
            raw_status="online",
            raw_wan1_status="offline",
            raw_wan2_status="online",
        ),
        # Same state again: no new events
        Observation(
            device_id=device_ids["abgi-bh-console"],
            raw_status="ONLINE",
            raw_wan1_status="Offline",
            raw_wan2_status="online",
        ),
        Observation(device_id="does-not-exist", raw_status="online"),
    ]
    for result in await health.apply_observations(scenario):
        if result.is_ok():
            console.print(f"applied, {len(result.unwrap())} event(s)")
        else:
            console.print(f"[red]rejected[/red]: {result.unwrap_err()}")

    await health.trigger_test_alert(device_ids["miner-main"], TestAlertKind.WAN2_DOWN)

    if config.unifi.is_configured:
        console.print(Panel("Running UniFi sync cycle", style="blue"))
        async with UnifiClient(config.unifi) as client:
            check = await client.test_connection()
            console.print(check.model_dump())
            sync = FleetSyncService(health, config)
            sync.add_source(UnifiObservationSource(client))
            report = await sync.run_sync_cycle()
            console.print(report.model_dump() if report else "UniFi sync failed, see logs")

    dashboard = FleetDashboard(health)
    await dashboard.refresh()
    dashboard.render(console)

    critical = await health.list_events(EventFilter(severity=Severity.CRITICAL))
    console.print(Panel("Critical events (JSON)", style="red"))
    console.print_json(data=[row.model_dump(mode="json") for row in critical])


if __name__ == "__main__":
    asyncio.run(main())
