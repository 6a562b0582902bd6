"""Main entry point for the health ingester service."""

import asyncio
import signal
import sys
from collections.abc import Sequence

import structlog
from prometheus_client import start_http_server as start_metrics_server
from pydantic import ValidationError

from . import __version__
from .cli import load_settings
from .config import Settings
from .http_handler import HTTPHandler
from .influx_writer import InfluxWriter
from .logging import setup_logging
from .metrics import SERVICE_INFO
from .tracing import setup_tracing, shutdown_tracing
from .transcoder import Transcoder

logger = structlog.get_logger(__name__)


class HealthIngesterService:
    """Wires the InfluxDB writer, transcoder and HTTP endpoint together."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._influx_writer: InfluxWriter | None = None
        self._http_handler: HTTPHandler | None = None
        self._tracer_provider = None
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start the ingester."""
        self._tracer_provider = setup_tracing(self._settings.tracing)
        logger.info("service_starting", version=__version__)
        SERVICE_INFO.info({"version": __version__})

        self._influx_writer = InfluxWriter(self._settings.influxdb)
        await self._influx_writer.connect()

        self._http_handler = HTTPHandler(
            settings=self._settings.http,
            transcoder=Transcoder(self._influx_writer),
            payload_dump_path=self._settings.app.payload_dump_path or None,
        )
        await self._http_handler.start()

        if self._settings.app.prometheus_port:
            start_metrics_server(port=self._settings.app.prometheus_port)
            logger.info(
                "prometheus_metrics_started",
                port=self._settings.app.prometheus_port,
            )

        logger.info("service_started", influxdb=self._settings.influxdb.url)

    async def stop(self) -> None:
        """Stop the ingester gracefully."""
        logger.info("service_stopping")

        # Stop accepting requests before closing the writer they depend on
        if self._http_handler:
            await self._http_handler.stop()

        if self._influx_writer:
            await self._influx_writer.disconnect()

        shutdown_tracing(self._tracer_provider)
        logger.info("service_stopped")

    async def run_until_shutdown(self) -> None:
        """Run the service until shutdown signal received."""
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        """Request service shutdown."""
        self._shutdown_event.set()


async def main(settings: Settings) -> None:
    """Run the service until SIGINT or SIGTERM."""
    service = HealthIngesterService(settings)

    loop = asyncio.get_running_loop()

    def signal_handler() -> None:
        logger.info("shutdown_signal_received")
        service.request_shutdown()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await service.start()
        await service.run_until_shutdown()
    except Exception as e:
        logger.exception("service_error", error=str(e))
        raise
    finally:
        await service.stop()


def _settings_or_exit(argv: Sequence[str] | None) -> Settings:
    try:
        return load_settings(argv)
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        sys.exit(1)


def run(argv: Sequence[str] | None = None) -> None:
    """Entry point for the CLI."""
    settings = _settings_or_exit(argv)
    setup_logging(settings.app)
    asyncio.run(main(settings))


def health_check_cli(argv: Sequence[str] | None = None) -> None:
    """Health check CLI for Docker HEALTHCHECK.

    Verifies that the configuration loads and InfluxDB answers a ping.
    Exits with code 0 on success, 1 on failure.
    """
    settings = _settings_or_exit(argv)

    async def check() -> bool:
        writer = InfluxWriter(settings.influxdb)
        try:
            await asyncio.wait_for(writer.connect(), timeout=5.0)
        except Exception as e:
            print(f"Health check failed: {e}")
            return False
        finally:
            await writer.disconnect()
        print("Health check passed")
        return True

    sys.exit(0 if asyncio.run(check()) else 1)


if __name__ == "__main__":
    run()
