"""
Clock-in / clock-out / current shift endpoints.

Every route acts on the caller's own ledger; the worker is resolved from
the access token, never from the request body.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from carelog.api.v1.deps import get_ledger, get_worker_context
from carelog.core.config import settings
from carelog.core.ratelimit import limiter
from carelog.schemas.ledger import (ClockInRequest, ClockOutRequest,
                                    CurrentShiftResponse, LedgerErrorDetail,
                                    LocationRead, ShiftRead,
                                    TimeEntriesResponse, TimeEntryRead,
                                    TimeEntryResponse)
from carelog.services.ledger import (LedgerFailure, LedgerResult, ShiftLedger,
                                     WorkerContext)

router = APIRouter(tags=["time-entries"])

_FAILURE_STATUS = {
    LedgerFailure.ROLE_NOT_PERMITTED: status.HTTP_403_FORBIDDEN,
    LedgerFailure.NO_LOCATION_ASSIGNED: status.HTTP_400_BAD_REQUEST,
    LedgerFailure.GEOFENCE_VIOLATION: status.HTTP_400_BAD_REQUEST,
    LedgerFailure.ALREADY_CLOCKED_IN: status.HTTP_400_BAD_REQUEST,
    LedgerFailure.NOT_CLOCKED_IN: status.HTTP_400_BAD_REQUEST,
}


def _unwrap(result: LedgerResult) -> TimeEntryResponse:
    """Turn a ledger result into a response, or raise its HTTP rejection."""
    if not result.ok:
        failure = result.failure
        raise HTTPException(
            status_code=_FAILURE_STATUS[failure],
            detail=LedgerErrorDetail(error=failure.value, message=failure.message).model_dump(),
        )
    return TimeEntryResponse(time_entry=TimeEntryRead.model_validate(result.entry))


@router.post(
    "/clock-in",
    response_model=TimeEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.CLOCK_RATE_LIMIT)
async def clock_in(
    request: Request,
    body: ClockInRequest,
    worker: WorkerContext = Depends(get_worker_context),
    ledger: ShiftLedger = Depends(get_ledger),
) -> TimeEntryResponse:
    """Open a time entry at the caller's assigned location.

    The reported position must lie inside the location's perimeter.
    """
    return _unwrap(await ledger.clock_in(worker, body.position, body.note))


@router.post("/clock-out", response_model=TimeEntryResponse)
@limiter.limit(settings.CLOCK_RATE_LIMIT)
async def clock_out(
    request: Request,
    body: ClockOutRequest,
    worker: WorkerContext = Depends(get_worker_context),
    ledger: ShiftLedger = Depends(get_ledger),
) -> TimeEntryResponse:
    """Close the caller's open time entry (and its shift)."""
    return _unwrap(await ledger.clock_out(worker, body.note, body.position))


@router.get("/shifts/current", response_model=CurrentShiftResponse)
async def current_shift(
    worker: WorkerContext = Depends(get_worker_context),
    ledger: ShiftLedger = Depends(get_ledger),
) -> CurrentShiftResponse:
    current = await ledger.get_current_shift(worker.worker_id)
    if current is None:
        return CurrentShiftResponse(shift=None)

    shift = current.shift
    return CurrentShiftResponse(
        shift=ShiftRead(
            id=shift.id,
            worker_id=shift.worker_id,
            location_id=shift.location_id,
            start_time=shift.start_time,
            end_time=shift.end_time,
            location=(
                LocationRead.model_validate(current.location) if current.location else None
            ),
            time_entry=TimeEntryRead.model_validate(current.entry),
        )
    )


@router.get("/time-entries", response_model=TimeEntriesResponse)
async def my_time_entries(
    worker: WorkerContext = Depends(get_worker_context),
    ledger: ShiftLedger = Depends(get_ledger),
) -> TimeEntriesResponse:
    """The caller's most recent time entries, newest first."""
    entries = await ledger.recent_entries(worker.worker_id, settings.RECENT_ENTRIES_LIMIT)
    return TimeEntriesResponse(
        time_entries=[TimeEntryRead.model_validate(e) for e in entries]
    )
