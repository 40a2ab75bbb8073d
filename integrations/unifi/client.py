"""
Async client for the UniFi Site Manager API.

Only the device listing is needed: ``GET /v1/devices`` returns devices grouped
by host (one group per site/console).
"""

from types import TracebackType
from typing import Any

import httpx
import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from sitewatch.config import UnifiConfig
from sitewatch.errors import DependencyError

logger = structlog.get_logger(__name__)

DEVICES_PATH = "/v1/devices"


class UnifiAPIError(DependencyError):
    """The UniFi API could not be reached or answered with an error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UnifiDevice(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = None
    mac: str | None = None
    model: str | None = None
    name: str | None = None
    ip_address: str | None = Field(
        default=None, validation_alias=AliasChoices("ipAddress", "ip", "ip_address")
    )
    status: str | None = None
    wan1_status: str | None = Field(
        default=None, validation_alias=AliasChoices("wan1Status", "wan1_status")
    )
    wan2_status: str | None = Field(
        default=None, validation_alias=AliasChoices("wan2Status", "wan2_status")
    )


class UnifiHostWithDevices(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    host_id: str = Field(alias="hostId")
    host_name: str = Field(alias="hostName")
    devices: list[UnifiDevice] = Field(default_factory=list)


class UnifiDevicesResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: list[UnifiHostWithDevices] = Field(default_factory=list)


class ConnectionCheck(BaseModel):
    """Outcome of a connectivity probe against the device listing."""

    ok: bool
    hosts: int = 0
    devices: int = 0
    error: str | None = None


class UnifiClient:
    """
    Thin async wrapper around httpx.

    The transport is injectable so tests can use httpx.MockTransport.
    """

    def __init__(
        self, config: UnifiConfig, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self.config = config
        self.logger = logger.bind(component="unifi_client", base_url=config.api_base_url)
        self._client = httpx.AsyncClient(
            base_url=config.api_base_url,
            timeout=config.timeout_seconds,
            transport=transport,
            headers={
                "X-API-Key": config.api_token or "",
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
        )

    async def __aenter__(self) -> "UnifiClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch(self, path: str) -> Any:
        if not self.config.is_configured:
            raise UnifiAPIError("UniFi API token is not configured (UNIFI_API_TOKEN)")

        try:
            response = await self._client.get(path)
        except httpx.TimeoutException as e:
            timeout = self.config.timeout_seconds
            raise UnifiAPIError(f"UniFi API timeout ({timeout}s) on {path}") from e
        except httpx.HTTPError as e:
            raise UnifiAPIError(f"Could not reach UniFi API at {path}: {e}") from e

        if response.is_error:
            self.logger.error(
                "unifi_api_error", status_code=response.status_code, body=response.text[:500]
            )
            raise UnifiAPIError(
                f"UniFi API error ({response.status_code}) on {path}: "
                f"{response.text or response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise UnifiAPIError(f"UniFi API returned invalid JSON on {path}") from e

    async def list_devices(self) -> UnifiDevicesResponse:
        payload = await self.fetch(DEVICES_PATH)
        try:
            devices = UnifiDevicesResponse.model_validate(payload)
        except PydanticValidationError as e:
            raise UnifiAPIError(f"Unexpected UniFi response shape from {DEVICES_PATH}") from e
        self.logger.info("unifi_devices_listed", hosts=len(devices.data))
        return devices

    async def test_connection(self) -> ConnectionCheck:
        """Probe the API once. Failures are reported, not raised."""
        try:
            response = await self.list_devices()
        except UnifiAPIError as e:
            self.logger.warning("unifi_connection_check_failed", error=str(e))
            return ConnectionCheck(ok=False, error=str(e))
        return ConnectionCheck(
            ok=True,
            hosts=len(response.data),
            devices=sum(len(host.devices) for host in response.data),
        )
