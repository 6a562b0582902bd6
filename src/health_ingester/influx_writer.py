"""InfluxDB writer performing one awaited write per point."""

from contextlib import asynccontextmanager
from typing import Any

import structlog
from influxdb_client import Point
from influxdb_client.client.influxdb_client_async import InfluxDBClientAsync
from influxdb_client.client.write_api_async import WriteApiAsync

from .config import InfluxDBSettings
from .metrics import INFLUX_POINTS_WRITTEN, INFLUX_WRITE_ERRORS

logger = structlog.get_logger(__name__)


class InfluxWriter:
    """Async InfluxDB writer.

    Every ``write_point`` call completes (or fails) before it returns.
    Retry and timeout policy is left to the underlying client.
    """

    def __init__(self, settings: InfluxDBSettings) -> None:
        """Initialize InfluxDB writer.

        Args:
            settings: InfluxDB connection settings.
        """
        self._settings = settings
        self._client: InfluxDBClientAsync | None = None
        self._write_api: WriteApiAsync | None = None

    async def connect(self) -> None:
        """Connect to InfluxDB."""
        logger.info(
            "influxdb_connecting",
            url=self._settings.url,
            org=self._settings.org,
            bucket=self._settings.bucket,
        )

        self._client = InfluxDBClientAsync(
            url=self._settings.url,
            token=self._settings.token,
            org=self._settings.org,
        )

        # Verify connection
        ready = await self._client.ping()
        if not ready:
            await self._client.close()
            self._client = None
            raise ConnectionError("InfluxDB is not ready")

        self._write_api = self._client.write_api()
        logger.info("influxdb_connected")

    async def disconnect(self) -> None:
        """Close the InfluxDB client."""
        self._write_api = None
        if self._client:
            await self._client.close()
            self._client = None
            logger.info("influxdb_disconnected")

    async def write_point(self, point: Point) -> None:
        """Write a single point to the configured bucket.

        Raises:
            RuntimeError: If the writer is not connected.
        """
        if not self._write_api:
            raise RuntimeError("InfluxDB client not connected")

        try:
            await self._write_api.write(
                bucket=self._settings.bucket,
                org=self._settings.org,
                record=point,
            )
        except Exception as e:
            INFLUX_WRITE_ERRORS.labels(error_type=type(e).__name__).inc()
            logger.warning(
                "write_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        INFLUX_POINTS_WRITTEN.inc()

    async def health_check(self) -> dict[str, Any]:
        """Check InfluxDB connection health.

        Returns:
            Dict with health status information.
        """
        if not self._client:
            return {"healthy": False, "error": "Not connected"}

        try:
            ready = await self._client.ping()
            return {
                "healthy": ready,
                "url": self._settings.url,
                "bucket": self._settings.bucket,
            }
        except Exception as e:
            return {"healthy": False, "error": str(e)}


@asynccontextmanager
async def create_writer(settings: InfluxDBSettings):
    """Context manager for creating and managing an InfluxDB writer.

    Args:
        settings: InfluxDB connection settings.

    Yields:
        Connected InfluxWriter instance.
    """
    writer = InfluxWriter(settings)
    await writer.connect()
    try:
        yield writer
    finally:
        await writer.disconnect()
