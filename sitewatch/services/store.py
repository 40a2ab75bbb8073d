"""
Persistence collaborator contract and an in-memory reference implementation.

The engine only talks to storage through the HealthStore protocol, which is
passed in at construction time. InMemoryHealthStore backs the demo and the
test suite; a database-backed store would implement the same protocol.
"""

import asyncio
import itertools
import uuid
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol

import structlog

from sitewatch.domain.models import Device, DeviceEvent, EventFilter, NewDeviceEvent, Site
from sitewatch.services.queries import filter_events

logger = structlog.get_logger(__name__)


def new_id() -> str:
    return uuid.uuid4().hex


class HealthStore(Protocol):
    """
    Protocol defining the storage operations the engine needs.

    Implementations raise StoreUnavailableError when they cannot serve a call.
    """

    async def get_site(self, site_id: str) -> Site | None: ...

    async def get_site_by_external_id(self, external_site_id: str) -> Site | None: ...

    async def list_sites(self) -> list[Site]: ...

    async def get_device(self, device_id: str) -> Device | None: ...

    async def get_device_by_external_id(self, external_device_id: str) -> Device | None: ...

    async def get_devices_for_site(self, site_id: str) -> list[Device]: ...

    async def get_primary_hosts(self) -> list[Device]: ...

    async def get_events(self, event_filter: EventFilter) -> list[DeviceEvent]: ...

    async def upsert_site(self, site: Site) -> Site: ...

    async def upsert_device_status(self, device: Device) -> Device: ...

    async def append_event(self, event: NewDeviceEvent) -> DeviceEvent: ...

    def site_transaction(self, site_id: str) -> AbstractAsyncContextManager[None]:
        """Serialize writes to one site so its rollup sees a consistent device set."""
        ...

    async def reset(self) -> None:
        """Delete everything. Administrative use only (seeding, tests)."""
        ...


class InMemoryHealthStore:
    """
    Dict-backed store.

    Reads return copies so callers can never mutate stored state; events are
    frozen models and are never replaced once appended.
    """

    def __init__(self) -> None:
        self._sites: dict[str, Site] = {}
        self._devices: dict[str, Device] = {}
        self._events: list[DeviceEvent] = []
        self._event_ids = itertools.count(1)
        self._site_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.logger = logger.bind(component="in_memory_store")

    async def get_site(self, site_id: str) -> Site | None:
        site = self._sites.get(site_id)
        return site.model_copy() if site else None

    async def get_site_by_external_id(self, external_site_id: str) -> Site | None:
        for site in self._sites.values():
            if site.external_site_id == external_site_id:
                return site.model_copy()
        return None

    async def list_sites(self) -> list[Site]:
        return [s.model_copy() for s in self._sites.values()]

    async def get_device(self, device_id: str) -> Device | None:
        device = self._devices.get(device_id)
        return device.model_copy() if device else None

    async def get_device_by_external_id(self, external_device_id: str) -> Device | None:
        for device in self._devices.values():
            if device.external_device_id == external_device_id:
                return device.model_copy()
        return None

    async def get_devices_for_site(self, site_id: str) -> list[Device]:
        return [d.model_copy() for d in self._devices.values() if d.site_id == site_id]

    async def get_primary_hosts(self) -> list[Device]:
        return [d.model_copy() for d in self._devices.values() if d.is_primary_host]

    async def get_events(self, event_filter: EventFilter) -> list[DeviceEvent]:
        return filter_events(self._events, event_filter, self._devices)

    async def upsert_site(self, site: Site) -> Site:
        self._sites[site.id] = site.model_copy()
        return site.model_copy()

    async def upsert_device_status(self, device: Device) -> Device:
        self._devices[device.id] = device.model_copy()
        return device.model_copy()

    async def append_event(self, event: NewDeviceEvent) -> DeviceEvent:
        stored = DeviceEvent(id=next(self._event_ids), **event.model_dump())
        self._events.append(stored)
        self.logger.debug("event_appended", event_id=stored.id, event_type=stored.event_type)
        return stored

    @asynccontextmanager
    async def site_transaction(self, site_id: str) -> AsyncIterator[None]:
        async with self._site_locks[site_id]:
            yield

    async def reset(self) -> None:
        self._sites.clear()
        self._devices.clear()
        self._events.clear()
        self._event_ids = itertools.count(1)
        self.logger.info("store_reset")
