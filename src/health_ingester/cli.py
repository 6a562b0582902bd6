"""Command-line flags layered over environment configuration."""

import argparse
from collections.abc import Sequence
from typing import Any

from .config import Settings

# flag dest -> (settings section, settings field)
_FLAG_TARGETS = {
    "influxdb_host": ("influxdb", "host"),
    "influxdb_token": ("influxdb", "token"),
    "influxdb_org": ("influxdb", "org"),
    "influxdb_bucket": ("influxdb", "bucket"),
    "listen": ("http", "listen"),
    "auth_token": ("http", "auth_token"),
    "log_level": ("app", "log_level"),
    "payload_dump": ("app", "payload_dump_path"),
}


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the ingester.

    Every flag is optional; values not given on the command line come from
    the environment (INFLUXDB_*, HTTP_*, APP_*).
    """
    parser = argparse.ArgumentParser(
        prog="health-ingester",
        description="Receive Health Auto Export payloads and write them to InfluxDB 2",
    )
    parser.add_argument("--influxdb-host", help="InfluxDB 2 hostname and port (default: localhost:8086)")
    parser.add_argument("--influxdb-token", help="InfluxDB 2 token")
    parser.add_argument("--influxdb-org", help="InfluxDB 2 organization")
    parser.add_argument("--influxdb-bucket", help="InfluxDB 2 bucket")
    parser.add_argument("--listen", help="Listen address for HTTP server (default: 0.0.0.0:8082)")
    parser.add_argument("--auth-token", help="Required Authorization header value")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--payload-dump",
        help="File receiving the most recent raw payload, empty to disable (default: payload.json)",
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> dict[str, dict[str, Any]]:
    """Collect the flags that were actually given, grouped per settings section."""
    overrides: dict[str, dict[str, Any]] = {}
    for dest, (section, field) in _FLAG_TARGETS.items():
        value = getattr(args, dest, None)
        if value is not None:
            overrides.setdefault(section, {})[field] = value
    return overrides


def load_settings(argv: Sequence[str] | None = None) -> Settings:
    """Parse command-line flags and load settings with them applied."""
    args = build_parser().parse_args(argv)
    return Settings.load(overrides_from_args(args))
