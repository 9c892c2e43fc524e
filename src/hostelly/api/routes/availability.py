"""Availability endpoints.

GET /availability                        -> availability + recommended allocation
GET /availability/multiple-dates         -> same window shifted day by day
GET /availability/group-suggestion       -> room configuration advice
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query

from hostelly.api.dependencies import get_engine
from hostelly.domain.booking_engine import BookingEngine
from hostelly.domain.models import GuestPreferences, RoomType

router = APIRouter(prefix="/availability", tags=["availability"])


@router.get("")
def get_availability(
    check_in: date = Query(...),
    check_out: date = Query(...),
    beds: int = Query(..., ge=1),
    exclude_booking_id: str | None = Query(None),
    strategy: str | None = Query(None),
    room_type: RoomType | None = Query(None),
    guest_type: RoomType = Query(RoomType.MIXED),
    avoid_flexible: bool = Query(False),
    separate_rooms: bool = Query(False),
    engine: BookingEngine = Depends(get_engine),
) -> dict:
    preferences = GuestPreferences(
        room_type=room_type,
        avoid_flexible_rooms=avoid_flexible,
        prefer_separate_rooms=separate_rooms,
    )
    return engine.check_availability(
        check_in,
        check_out,
        beds,
        exclude_booking_id=exclude_booking_id,
        strategy=strategy,
        preferences=preferences,
        guest_type=guest_type,
    )


@router.get("/multiple-dates")
def get_multiple_dates(
    check_in: date = Query(...),
    check_out: date = Query(...),
    beds: int = Query(..., ge=1),
    days: int = Query(7, ge=1, le=31),
    engine: BookingEngine = Depends(get_engine),
) -> dict:
    return {"windows": engine.check_multiple_dates(check_in, check_out, beds, days=days)}


@router.get("/group-suggestion")
def get_group_suggestion(
    check_in: date = Query(...),
    check_out: date = Query(...),
    group_size: int = Query(..., ge=1),
    engine: BookingEngine = Depends(get_engine),
) -> dict:
    return engine.suggest_configuration(check_in, check_out, group_size)
