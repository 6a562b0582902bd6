"""Request payload models for Health Auto Export REST exports."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HealthMetric(BaseModel):
    """A named metric with its unit label and raw data records."""

    name: str = ""
    units: str = ""
    data: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("data", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class PayloadData(BaseModel):
    """Workouts and metrics exported in a single push."""

    # Workouts are accepted but not ingested
    workouts: list[Any] = Field(default_factory=list)
    metrics: list[HealthMetric] = Field(default_factory=list)

    @field_validator("workouts", "metrics", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class HealthDataPayload(BaseModel):
    """Top-level request body: ``{"data": {"workouts": [...], "metrics": [...]}}``."""

    model_config = ConfigDict(extra="ignore")

    data: PayloadData = Field(default_factory=PayloadData)

    @field_validator("data", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return {} if v is None else v
