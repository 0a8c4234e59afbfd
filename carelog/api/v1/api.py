"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from carelog.api.v1.endpoints import analytics, time_entries

api_router = APIRouter()

# Clock-in / clock-out / current shift
api_router.include_router(time_entries.router)

# Manager analytics, health
api_router.include_router(analytics.router)
