"""
Core services for the application.

This package contains the service implementations: the health engine,
the query layer, storage, alert dispatch, and vendor polling.
"""

from .alerts import AlertDispatcher
from .collector import (
    ObservationCollector,
    ObservationCollectorConfig,
    ObservationSource,
    Result,
)
from .health_engine import FleetHealthService
from .store import HealthStore, InMemoryHealthStore
from .sync import FleetSyncService, SyncReport

__all__ = [
    "AlertDispatcher",
    "FleetHealthService",
    "FleetSyncService",
    "HealthStore",
    "InMemoryHealthStore",
    "ObservationCollector",
    "ObservationCollectorConfig",
    "ObservationSource",
    "Result",
    "SyncReport",
]
