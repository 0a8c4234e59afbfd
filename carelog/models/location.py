"""
Location model — a fixed site with a circular clock-in perimeter.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (Boolean, CheckConstraint, Column, DateTime, Float,
                        Integer, String)

from carelog.db.base import Base

MIN_RADIUS_METERS = 100
MAX_RADIUS_METERS = 10_000


class Location(Base):
    __tablename__ = "locations"
    __table_args__ = (
        CheckConstraint(
            f"radius_meters >= {MIN_RADIUS_METERS} AND radius_meters <= {MAX_RADIUS_METERS}",
            name="ck_locations_radius_range",
        ),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    address: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    latitude: float = Column(Float, nullable=False)  # type: ignore[assignment]
    longitude: float = Column(Float, nullable=False)  # type: ignore[assignment]
    radius_meters: float = Column(Float, nullable=False, default=100)  # type: ignore[assignment]
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
