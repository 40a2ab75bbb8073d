"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Secure defaults (no API tokens in code)
"""

import os
from functools import lru_cache
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from sitewatch.domain.models import MAX_FEED_PAGE_SIZE, Severity

# Load environment variables from .env file
load_dotenv()

PLACEHOLDER_TOKENS = {"your-unifi-api-token-here", "changeme"}


class UnifiConfig(BaseModel):
    """UniFi Site Manager API access."""

    api_base_url: str = Field(default="https://api.ui.com", description="UniFi API base URL")
    api_token: str | None = Field(default=None, description="UniFi API key (X-API-Key)")
    timeout_seconds: float = Field(default=10.0, gt=0.0, description="HTTP request timeout")

    @field_validator("api_base_url")
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("UniFi API base URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("api_token")
    def validate_api_token(cls, v: str | None) -> str | None:
        if not v:
            return None
        if v.strip().lower() in PLACEHOLDER_TOKENS:
            raise ValueError("UniFi API token must be set in environment or .env file")
        return v.strip()

    @property
    def is_configured(self) -> bool:
        return self.api_token is not None


class MonitoringConfig(BaseModel):
    """Polling and feed behaviour."""

    poll_interval_seconds: float = Field(
        default=60.0, gt=0.0, description="Interval between vendor polls"
    )
    collection_timeout_seconds: float = Field(
        default=15.0, gt=0.0, description="Timeout for one source poll"
    )
    emit_sync_events: bool = Field(
        default=False, description="Append an INFO sync event for every applied observation"
    )
    feed_page_size: int = Field(
        default=MAX_FEED_PAGE_SIZE,
        ge=1,
        le=MAX_FEED_PAGE_SIZE,
        description="Events returned per feed query",
    )


class AlertConfig(BaseModel):
    """Which classified events reach notification handlers."""

    min_severity: Severity = Field(
        default=Severity.WARNING, description="Lowest severity dispatched to handlers"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")

    # Log destinations
    enable_file_logging: bool = Field(default=False, description="Enable file logging")
    log_file_path: str = Field(default="./logs/sitewatch.log", description="Path to log file")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Component configs
    unifi: UnifiConfig = Field(default_factory=UnifiConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    alerts: AlertConfig = Field(default_factory=AlertConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    def _parse_bool(val: str | None, default: bool) -> bool:
        if val is None:
            return default
        return val.strip().lower() in {"1", "true", "yes", "on"}

    # Detect environment
    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    unifi_config = UnifiConfig(
        api_base_url=os.getenv("UNIFI_API_BASE_URL", "https://api.ui.com"),
        api_token=os.getenv("UNIFI_API_TOKEN"),
        timeout_seconds=float(os.getenv("UNIFI_TIMEOUT_SECONDS", "10.0")),
    )

    monitoring_config = MonitoringConfig(
        poll_interval_seconds=float(os.getenv("POLL_INTERVAL_SECONDS", "60.0")),
        collection_timeout_seconds=float(os.getenv("COLLECTION_TIMEOUT_SECONDS", "15.0")),
        emit_sync_events=_parse_bool(os.getenv("EMIT_SYNC_EVENTS"), False),
        feed_page_size=int(os.getenv("FEED_PAGE_SIZE", str(MAX_FEED_PAGE_SIZE))),
    )

    alert_config = AlertConfig(
        min_severity=Severity(os.getenv("ALERT_MIN_SEVERITY", "WARNING").strip().upper()),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
        enable_file_logging=_parse_bool(os.getenv("LOG_TO_FILE"), False),
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        unifi=unifi_config,
        monitoring=monitoring_config,
        alerts=alert_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"Configuration loaded for {config.environment} environment")

        if config.unifi.is_configured:
            print("UniFi API token configured")
        else:
            print("UniFi API token not configured; vendor polling disabled")

    except Exception as e:
        print(f"Configuration validation failed: {e}")
        raise


def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()

    print("\nCONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\nUNIFI")
    print(f"Base URL: {config.unifi.api_base_url}")
    print(f"Token configured: {config.unifi.is_configured}")

    print("\nMONITORING")
    print(f"Poll Interval: {config.monitoring.poll_interval_seconds}s")
    print(f"Sync Events: {config.monitoring.emit_sync_events}")
    print(f"Feed Page Size: {config.monitoring.feed_page_size}")
    print(f"Alert Threshold: {config.alerts.min_severity.value}")


if __name__ == "__main__":
    validate_config()
    print_config_summary()
