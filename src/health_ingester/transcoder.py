"""Conversion of Health Auto Export data records into InfluxDB points."""

from __future__ import annotations

import json
import re
from datetime import datetime, timedelta
from typing import Protocol

import structlog
from influxdb_client import Point

from .metrics import RECORDS_SKIPPED
from .models import HealthMetric
from .types import DataRecord, FieldValue, JSONValue

logger = structlog.get_logger(__name__)

MEASUREMENT_PREFIX = "apple_health_"
SLEEP_ANALYSIS = "sleep_analysis"
# Sleep analysis fields that carry timestamps rather than quantities
SLEEP_DATE_FIELDS = frozenset({"inBedEnd", "inBedStart", "sleepStart", "sleepEnd"})

# "2024-01-01 08:00:00 +0000"; fractional seconds are tolerated after the seconds
_DATE_RE = re.compile(
    r"([0-9]{4}-[0-9]{2}-[0-9]{2} [0-9]{2}:[0-9]{2}:[0-9]{2})"
    r"(?:\.([0-9]{1,9}))?"
    r" ([+-][0-9]{4})"
)


class TranscodeError(ValueError):
    """A data record could not be converted into a point."""


class DateTypeError(TranscodeError):
    """A date field holds something other than a string."""


class DateFormatError(TranscodeError):
    """A date string does not match ``YYYY-MM-DD HH:MM:SS ±HHMM``."""


class PointWriter(Protocol):
    """Destination for finished points."""

    async def write_point(self, point: Point) -> None: ...


def parse_date(value: JSONValue, field: str = "date") -> datetime:
    """Parse a Health Auto Export timestamp into an aware datetime.

    Args:
        value: Raw JSON value of the field.
        field: Field name, used in error messages.

    Raises:
        DateTypeError: If the value is not a string.
        DateFormatError: If the string is not in the export's date layout.
    """
    if not isinstance(value, str):
        raise DateTypeError(f"{field} must be string, got {type(value).__name__}")

    m = _DATE_RE.fullmatch(value)
    if not m:
        raise DateFormatError(f"{field} {value!r} is not in 'YYYY-MM-DD HH:MM:SS +HHMM' format")

    base, fraction, offset = m.groups()
    try:
        parsed = datetime.strptime(f"{base} {offset}", "%Y-%m-%d %H:%M:%S %z")
    except ValueError as e:
        raise DateFormatError(f"{field} {value!r}: {e}") from e

    if fraction:
        # datetime keeps microseconds; anything finer is truncated
        parsed = parsed.replace(microsecond=int(fraction[:6].ljust(6, "0")))
    return parsed


def to_field_value(value: JSONValue | datetime) -> FieldValue | None:
    """Convert a decoded JSON value into an InfluxDB field value.

    Returns None for values that cannot be stored (JSON null).
    """
    if value is None:
        return None
    # bool before numbers: bool is an int subclass
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        return value
    if isinstance(value, datetime):
        # RFC 3339 with the offset the value was parsed with, "Z" for UTC
        text = value.isoformat()
        if value.utcoffset() == timedelta(0):
            text = text.removesuffix("+00:00") + "Z"
        return text
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class Transcoder:
    """Turns metric data records into points and hands them to a writer."""

    def __init__(self, writer: PointWriter) -> None:
        self._writer = writer

    async def process(self, metric: HealthMetric) -> None:
        """Write every data record of a metric.

        Stops at the first record that fails and re-raises its error;
        points written before it stay written.
        """
        if not metric.data:
            return

        logger.info("metric_processing", metric=metric.name, records=len(metric.data))

        written = 0
        for record in metric.data:
            if await self.parse_data_point(metric, record):
                written += 1

        logger.debug("metric_processed", metric=metric.name, points=written)

    async def parse_data_point(self, metric: HealthMetric, record: DataRecord) -> bool:
        """Build and write the point for a single data record.

        Returns:
            True if a point was written, False if the record was skipped.
        """
        if "date" not in record:
            RECORDS_SKIPPED.labels(reason="no_date").inc()
            return False

        timestamp = parse_date(record["date"])

        point = (
            Point(MEASUREMENT_PREFIX + metric.name)
            .time(timestamp)
            .tag("units", metric.units)
        )

        is_sleep = metric.name == SLEEP_ANALYSIS
        has_fields = False
        for key, raw in record.items():
            if key == "date":
                continue

            value: JSONValue | datetime = raw
            if is_sleep and key in SLEEP_DATE_FIELDS:
                value = parse_date(raw, field=key)

            field_value = to_field_value(value)
            if field_value is None:
                continue
            point.field(key, field_value)
            has_fields = True

        # InfluxDB rejects field-less points; such records are skipped instead
        # of failing the metric, so they never turn the response into a 500
        if not has_fields:
            logger.debug("record_without_fields", metric=metric.name, date=record["date"])
            RECORDS_SKIPPED.labels(reason="no_fields").inc()
            return False

        await self._writer.write_point(point)
        return True
