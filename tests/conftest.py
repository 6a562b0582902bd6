"""Pytest configuration and fixtures."""

from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


class RecordingWriter:
    """Point writer that keeps points in memory.

    Raises for any point whose measurement is listed in ``fail_measurements``.
    """

    def __init__(self, fail_measurements: set[str] | None = None) -> None:
        self.points = []
        self.fail_measurements = fail_measurements or set()

    async def write_point(self, point) -> None:
        if point._name in self.fail_measurements:
            raise ConnectionError(f"write to {point._name} failed")
        self.points.append(point)


@pytest.fixture
def writer() -> RecordingWriter:
    return RecordingWriter()


@pytest.fixture
def sample_heart_rate_metric():
    """Heart rate metric as pushed by Health Auto Export."""
    return {
        "name": "heart_rate",
        "units": "count/min",
        "data": [
            {"date": "2024-01-01 08:00:00 +0000", "Min": 60, "Avg": 72.5, "Max": 91, "source": "Apple Watch"},
            {"date": "2024-01-01 08:05:00 +0000", "Min": 58, "Avg": 70, "Max": 88, "source": "Apple Watch"},
        ],
    }


@pytest.fixture
def sample_sleep_metric():
    """Sleep analysis metric with timestamp sub-fields."""
    return {
        "name": "sleep_analysis",
        "units": "hr",
        "data": [
            {
                "date": "2024-01-15 00:00:00 +0100",
                "inBedStart": "2024-01-14 22:40:00 +0100",
                "inBedEnd": "2024-01-15 07:05:00 +0100",
                "sleepStart": "2024-01-14 23:00:00 +0100",
                "sleepEnd": "2024-01-15 07:00:00 +0100",
                "inBed": 8.4,
                "asleep": 7.5,
                "sleepSource": "Apple Watch",
                "inBedSource": "iPhone",
            }
        ],
    }


@pytest.fixture
def sample_payload(sample_heart_rate_metric, sample_sleep_metric):
    """Full REST export body."""
    return {
        "data": {
            "workouts": [],
            "metrics": [sample_heart_rate_metric, sample_sleep_metric],
        }
    }


@pytest.fixture
def make_writer():
    """Factory for writers that fail on selected measurements."""
    return RecordingWriter
