"""UniFi Site Manager integration."""

from .client import ConnectionCheck, UnifiAPIError, UnifiClient, UnifiDevicesResponse
from .source import UnifiObservationSource, snapshots_from_response

__all__ = [
    "ConnectionCheck",
    "UnifiAPIError",
    "UnifiClient",
    "UnifiDevicesResponse",
    "UnifiObservationSource",
    "snapshots_from_response",
]
