"""
User model — the worker record the ledger resolves each request to.

Provisioning is handled elsewhere; the ledger only reads ``id``, ``role``
and ``location_id``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from carelog.db.base import Base


class Role(str, Enum):
    CARE_WORKER = "CARE_WORKER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


class User(Base):
    __tablename__ = "users"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    email: str = Column(String(320), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    full_name: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    role: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default=Role.CARE_WORKER.value,
        server_default=Role.CARE_WORKER.value,
    )  # CARE_WORKER | MANAGER | ADMIN
    location_id: int | None = Column(  # type: ignore[assignment]
        Integer, ForeignKey("locations.id"), nullable=True, index=True
    )
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
