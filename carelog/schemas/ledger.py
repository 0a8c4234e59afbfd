"""Pydantic schemas for clock-in / clock-out / current shift."""

from __future__ import annotations

from datetime import datetime

from pydantic import (BaseModel, ConfigDict, Field, computed_field,
                      field_validator, model_validator)
from pydantic.alias_generators import to_camel

from carelog.core.timeutils import ensure_utc
from carelog.services.geofence import Position

_NOTE_MAX = 500


def _clean_note(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    if len(v) > _NOTE_MAX:
        raise ValueError(f"Note must not exceed {_NOTE_MAX} characters")
    return v or None


class CamelModel(BaseModel):
    """Responses go out in camelCase; snake_case is still accepted on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ── Requests ────────────────────────────────────────────────────────
class ClockInRequest(BaseModel):
    latitude: float = Field(ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(ge=-180, le=180, allow_inf_nan=False)
    note: str | None = None

    @field_validator("note")
    @classmethod
    def _note(cls, v: str | None) -> str | None:
        return _clean_note(v)

    @property
    def position(self) -> Position:
        return Position(self.latitude, self.longitude)


class ClockOutRequest(BaseModel):
    note: str | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90, allow_inf_nan=False)
    longitude: float | None = Field(default=None, ge=-180, le=180, allow_inf_nan=False)

    @field_validator("note")
    @classmethod
    def _note(cls, v: str | None) -> str | None:
        return _clean_note(v)

    @model_validator(mode="after")
    def _both_or_neither(self) -> "ClockOutRequest":
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be supplied together")
        return self

    @property
    def position(self) -> Position | None:
        if self.latitude is None or self.longitude is None:
            return None
        return Position(self.latitude, self.longitude)


# ── Reads ───────────────────────────────────────────────────────────
class TimeEntryRead(CamelModel):
    id: int
    shift_id: int
    worker_id: int
    clock_in_time: datetime
    clock_out_time: datetime | None = None
    clock_in_latitude: float
    clock_in_longitude: float
    clock_out_latitude: float | None = None
    clock_out_longitude: float | None = None
    note: str | None = None

    @field_validator("clock_in_time", "clock_out_time")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @computed_field
    @property
    def is_active(self) -> bool:
        return self.clock_out_time is None

    @computed_field
    @property
    def duration_hours(self) -> float | None:
        if self.clock_out_time is None:
            return None
        return round((self.clock_out_time - self.clock_in_time).total_seconds() / 3600, 2)


class LocationRead(CamelModel):
    id: int
    name: str
    address: str | None = None
    latitude: float
    longitude: float
    radius_meters: float


class ShiftRead(CamelModel):
    id: int
    worker_id: int
    location_id: int
    start_time: datetime
    end_time: datetime | None = None
    location: LocationRead | None = None
    time_entry: TimeEntryRead

    @field_validator("start_time", "end_time")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None


class TimeEntryResponse(CamelModel):
    success: bool = True
    time_entry: TimeEntryRead


class CurrentShiftResponse(CamelModel):
    shift: ShiftRead | None


class TimeEntriesResponse(CamelModel):
    time_entries: list[TimeEntryRead]


class LedgerErrorDetail(BaseModel):
    error: str
    message: str
