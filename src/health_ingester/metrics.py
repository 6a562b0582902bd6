"""Prometheus metrics definitions for the health ingester."""

from prometheus_client import Counter, Info

# -- Service info --
SERVICE_INFO = Info("health_ingester", "Health ingester service info")

# -- HTTP --
HTTP_REQUESTS_TOTAL = Counter(
    "health_ingester_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

# -- Transcoding --
RECORDS_SKIPPED = Counter(
    "health_ingester_records_skipped_total",
    "Data records that produced no point",
    ["reason"],
)
METRICS_FAILED = Counter(
    "health_ingester_metrics_failed_total",
    "Metrics whose transcoding failed",
    ["error_type"],
)

# -- InfluxDB writes --
INFLUX_POINTS_WRITTEN = Counter(
    "health_ingester_influx_points_written_total",
    "Total points written to InfluxDB",
)
INFLUX_WRITE_ERRORS = Counter(
    "health_ingester_influx_write_errors_total",
    "Total failed InfluxDB point writes",
    ["error_type"],
)
