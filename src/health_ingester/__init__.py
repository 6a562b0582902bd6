"""Health Auto Export ingestion service.

Receives health data from the Health Auto Export iOS app via a REST
endpoint, transcodes each metric sample into an InfluxDB point and writes
it to InfluxDB 2.

Modules:
    config: Configuration management using pydantic-settings
    http_handler: REST ingestion endpoint (POST /data)
    transcoder: Data record to InfluxDB point conversion
    influx_writer: Async point writes to InfluxDB

Example:
    Run the ingestion service::

        $ health-ingester --influxdb-token ... --influxdb-org home --influxdb-bucket health
"""

__version__ = "0.1.0"

from .config import Settings

__all__ = ["Settings", "__version__"]
