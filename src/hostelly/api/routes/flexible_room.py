"""Flexible-room endpoints.

GET  /flexible-room                      -> policy decision + advisory score (public)
POST /tasks/flexible-room/lock           -> freeze designation (worker, task auth)
POST /tasks/flexible-room/convert        -> explicit conversion (worker, task auth)
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from hostelly.api.dependencies import get_engine
from hostelly.api.errors import result_response
from hostelly.api.task_auth import require_task_auth
from hostelly.domain.booking_engine import BookingEngine
from hostelly.domain.models import RoomType

router = APIRouter(prefix="/flexible-room", tags=["flexible-room"])

admin_router = APIRouter(
    prefix="/tasks/flexible-room",
    tags=["tasks"],
    dependencies=[Depends(require_task_auth)],
)


class LockRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hours: float = Field(..., gt=0, le=24 * 30)


class ConvertRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    target_type: RoomType


@router.get("")
def get_flexible_room(
    check_in: date = Query(...),
    check_out: date = Query(...),
    engine: BookingEngine = Depends(get_engine),
) -> dict:
    return engine.flexible_room_status(check_in, check_out)


@admin_router.post("/lock")
def lock_flexible_room(
    body: LockRequest, engine: BookingEngine = Depends(get_engine)
) -> dict:
    return engine.lock_flexible_room(body.hours)


@admin_router.post("/convert")
def convert_flexible_room(
    body: ConvertRequest, engine: BookingEngine = Depends(get_engine)
) -> JSONResponse:
    return result_response(engine.convert_flexible_room(body.target_type))
