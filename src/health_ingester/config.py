"""Configuration management using pydantic-settings."""

from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Valid log levels
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _require_non_empty(value: str, what: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{what} cannot be empty")
    return value


class InfluxDBSettings(BaseSettings):
    """InfluxDB connection settings."""

    model_config = SettingsConfigDict(env_prefix="INFLUXDB_")

    host: str = Field(default="localhost:8086", description="InfluxDB 2 hostname and port")
    token: str = Field(description="InfluxDB API token")
    org: str = Field(description="InfluxDB organization")
    bucket: str = Field(description="InfluxDB bucket")

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """Validate host is not empty."""
        return _require_non_empty(v, "InfluxDB host")

    @field_validator("token")
    @classmethod
    def validate_token(cls, v: str) -> str:
        """Validate token is not empty."""
        return _require_non_empty(v, "InfluxDB token")

    @field_validator("org")
    @classmethod
    def validate_org(cls, v: str) -> str:
        """Validate organization is not empty."""
        return _require_non_empty(v, "InfluxDB organization")

    @field_validator("bucket")
    @classmethod
    def validate_bucket(cls, v: str) -> str:
        """Validate bucket is not empty."""
        return _require_non_empty(v, "InfluxDB bucket")

    @property
    def url(self) -> str:
        """Base URL of the InfluxDB server."""
        if "://" in self.host:
            return self.host
        return f"http://{self.host}"


class HTTPSettings(BaseSettings):
    """HTTP ingestion endpoint settings."""

    model_config = SettingsConfigDict(env_prefix="HTTP_")

    listen: str = Field(default="0.0.0.0:8082", description="Listen address for HTTP server")
    auth_token: str = Field(description="Required shared secret for the Authorization header")

    @field_validator("listen")
    @classmethod
    def validate_listen(cls, v: str) -> str:
        """Validate listen address is host:port with a valid port."""
        host, sep, port = v.rpartition(":")
        if not sep or not port.isdigit():
            raise ValueError(f"Listen address must be host:port, got {v!r}")
        if not 1 <= int(port) <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {port}")
        return v

    @field_validator("auth_token")
    @classmethod
    def validate_auth_token(cls, v: str) -> str:
        """Validate the shared secret is not empty."""
        return _require_non_empty(v, "HTTP auth token")

    @property
    def host(self) -> str:
        host = self.listen.rpartition(":")[0]
        # "[::]:8082" style IPv6 addresses
        return host.strip("[]") or "0.0.0.0"

    @property
    def port(self) -> int:
        return int(self.listen.rpartition(":")[2])


class TracingSettings(BaseSettings):
    """OpenTelemetry tracing settings."""

    model_config = SettingsConfigDict(env_prefix="TRACING_")

    enabled: bool = Field(default=False, description="Enable OpenTelemetry tracing")
    service_name: str = Field(default="health-ingester", description="Service name for traces")


class AppSettings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_prefix="APP_")

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or console")
    payload_dump_path: str = Field(
        default="payload.json",
        description="File receiving the most recent raw payload (empty disables)",
    )
    prometheus_port: int = Field(
        default=9090, description="Port for Prometheus metrics (0 disables)"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        normalized = v.upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level '{v}'. Must be one of: {', '.join(sorted(VALID_LOG_LEVELS))}"
            )
        return normalized

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is valid."""
        normalized = v.lower()
        if normalized not in ("json", "console"):
            raise ValueError(f"Invalid log format '{v}'. Must be 'json' or 'console'")
        return normalized

    @field_validator("prometheus_port")
    @classmethod
    def validate_prometheus_port(cls, v: int) -> int:
        """Validate port is in valid range, allowing 0 to disable."""
        if not 0 <= v <= 65535:
            raise ValueError(f"Port must be between 0 and 65535, got {v}")
        return v


class Settings(BaseSettings):
    """Combined application settings."""

    influxdb: InfluxDBSettings
    http: HTTPSettings
    tracing: TracingSettings = Field(default_factory=TracingSettings)
    app: AppSettings = Field(default_factory=AppSettings)

    @classmethod
    def load(cls, overrides: dict[str, dict[str, Any]] | None = None) -> "Settings":
        """Load settings from environment variables.

        Args:
            overrides: Per-section values that take precedence over the
                environment, e.g. ``{"influxdb": {"org": "home"}}``.
        """
        overrides = overrides or {}
        return cls(
            influxdb=InfluxDBSettings(**overrides.get("influxdb", {})),
            http=HTTPSettings(**overrides.get("http", {})),
            tracing=TracingSettings(**overrides.get("tracing", {})),
            app=AppSettings(**overrides.get("app", {})),
        )
