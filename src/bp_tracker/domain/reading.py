"""
Reading and target domain models.

This module defines the canonical schema for blood pressure readings and
per-user targets, together with the payloads used to create and edit readings.
"""

from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, model_validator

SYSTOLIC_RANGE = (40, 300)
DIASTOLIC_RANGE = (20, 200)
PULSE_RANGE = (20, 250)

TARGET_SYSTOLIC_RANGE = (80, 200)
TARGET_DIASTOLIC_RANGE = (50, 120)
TARGET_PULSE_RANGE = (50, 120)


class Reading(BaseModel):
    """
    A single blood pressure and pulse measurement.

    Readings are immutable once stored, except for explicit edits and the
    calendar bookkeeping fields (``synced_to_calendar`` and ``calendar_event_id``).
    """

    id: str = Field(description="Opaque stable identifier")
    date: AwareDatetime = Field(description="Measurement timestamp")
    systolic: int = Field(ge=SYSTOLIC_RANGE[0], le=SYSTOLIC_RANGE[1], description="mmHg")
    diastolic: int = Field(ge=DIASTOLIC_RANGE[0], le=DIASTOLIC_RANGE[1], description="mmHg")
    pulse: int = Field(ge=PULSE_RANGE[0], le=PULSE_RANGE[1], description="Beats per minute")
    notes: str | None = None
    synced_to_calendar: bool = Field(
        False, description="Whether a matching calendar event is believed to exist"
    )
    calendar_event_id: str | None = Field(
        None, description="Remote event id, when known"
    )

    model_config = ConfigDict(frozen=True)

    def to_dict(self) -> dict[str, Any]:
        """Convert reading to a JSON-friendly dictionary."""
        data = self.model_dump()
        data["date"] = self.date.isoformat()
        return data


class ReadingCreate(BaseModel):
    """Payload for storing a new reading."""

    date: AwareDatetime
    systolic: int = Field(ge=SYSTOLIC_RANGE[0], le=SYSTOLIC_RANGE[1])
    diastolic: int = Field(ge=DIASTOLIC_RANGE[0], le=DIASTOLIC_RANGE[1])
    pulse: int = Field(ge=PULSE_RANGE[0], le=PULSE_RANGE[1])
    notes: str | None = None


class ReadingUpdate(BaseModel):
    """Partial edit of a stored reading. Unset fields are left untouched."""

    date: AwareDatetime | None = None
    systolic: int | None = Field(None, ge=SYSTOLIC_RANGE[0], le=SYSTOLIC_RANGE[1])
    diastolic: int | None = Field(None, ge=DIASTOLIC_RANGE[0], le=DIASTOLIC_RANGE[1])
    pulse: int | None = Field(None, ge=PULSE_RANGE[0], le=PULSE_RANGE[1])
    notes: str | None = None


class UserTargets(BaseModel):
    """Per-user upper bounds the readings are compared against."""

    systolic: int = 120
    diastolic: int = 80
    pulse: int = 70

    @model_validator(mode="after")
    def _check_ranges(self) -> "UserTargets":
        checks = (
            ("Systolic", self.systolic, TARGET_SYSTOLIC_RANGE, "mmHg"),
            ("Diastolic", self.diastolic, TARGET_DIASTOLIC_RANGE, "mmHg"),
            ("Pulse", self.pulse, TARGET_PULSE_RANGE, "BPM"),
        )
        for label, value, (low, high), unit in checks:
            if value < low or value > high:
                raise ValueError(f"{label} target must be between {low} and {high} {unit}")
        return self


DEFAULT_TARGETS = UserTargets()
