"""
Shift & TimeEntry models — the ledger's own tables.

The "one open row per worker" rule is enforced by unique partial indexes,
so a second open shift or entry for the same worker fails at commit even
when two processes race past the application checks.
"""

from __future__ import annotations

from sqlalchemy import (CheckConstraint, Column, DateTime, Float, ForeignKey,
                        Index, Integer, String, text)

from carelog.db.base import Base

_SHIFT_OPEN = text("end_time IS NULL")
_ENTRY_OPEN = text("clock_out_time IS NULL")


class Shift(Base):
    __tablename__ = "shifts"
    __table_args__ = (
        Index(
            "uq_shifts_open_per_worker",
            "worker_id",
            unique=True,
            postgresql_where=_SHIFT_OPEN,
            sqlite_where=_SHIFT_OPEN,
        ),
        Index("ix_shifts_location_start", "location_id", "start_time"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    worker_id: int = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # type: ignore[assignment]
    location_id: int = Column(Integer, ForeignKey("locations.id"), nullable=False)  # type: ignore[assignment]
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_open(self) -> bool:
        return self.end_time is None


class TimeEntry(Base):
    __tablename__ = "time_entries"
    __table_args__ = (
        Index(
            "uq_time_entries_open_per_worker",
            "worker_id",
            unique=True,
            postgresql_where=_ENTRY_OPEN,
            sqlite_where=_ENTRY_OPEN,
        ),
        Index("ix_time_entries_clock_in", "clock_in_time"),
        CheckConstraint(
            "clock_out_time IS NULL OR clock_out_time >= clock_in_time",
            name="ck_time_entries_out_after_in",
        ),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    shift_id: int = Column(Integer, ForeignKey("shifts.id"), nullable=False, index=True)  # type: ignore[assignment]
    # Copied from the owning shift so the partial index can key on it
    worker_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    clock_in_time = Column(DateTime(timezone=True), nullable=False)
    clock_out_time = Column(DateTime(timezone=True), nullable=True)
    clock_in_latitude: float = Column(Float, nullable=False)  # type: ignore[assignment]
    clock_in_longitude: float = Column(Float, nullable=False)  # type: ignore[assignment]
    clock_out_latitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    clock_out_longitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    note: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]

    @property
    def is_open(self) -> bool:
        return self.clock_out_time is None
