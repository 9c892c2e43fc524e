"""Hold endpoints.

POST   /holds                    -> reserve beds (201) or conflicts/alternatives
GET    /holds                    -> active holds, newest first
GET    /holds/stats              -> hold counters
GET    /holds/{hold_id}          -> one hold
POST   /holds/{hold_id}/confirm  -> advance status (hold -> paid -> confirmed)
DELETE /holds/{hold_id}          -> release
"""

from __future__ import annotations

from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from hostelly.api.dependencies import get_engine
from hostelly.api.errors import result_response
from hostelly.domain.booking_engine import BookingEngine
from hostelly.domain.models import RoomType
from hostelly.observability.correlation import get_correlation_id
from hostelly.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/holds", tags=["holds"])


# ── Schemas ───────────────────────────────────────────────────────────────────


class AllocationItem(BaseModel):
    model_config = ConfigDict(extra="forbid")

    room_id: str
    beds_allocated: int = Field(..., ge=1)


class CreateHoldRequest(BaseModel):
    """Either an explicit allocation or a bed count to allocate automatically."""

    model_config = ConfigDict(extra="forbid")

    check_in: date
    check_out: date
    guest_email: str
    guest_type: RoomType = RoomType.MIXED
    allocation: list[AllocationItem] | None = None
    beds: int | None = Field(None, ge=1)
    strategy: str | None = None


class ConfirmHoldRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Literal["hold", "paid", "confirmed"]


# ── Routes ────────────────────────────────────────────────────────────────────


@router.post("")
def create_hold(
    body: CreateHoldRequest,
    engine: BookingEngine = Depends(get_engine),
) -> JSONResponse:
    if body.allocation:
        result = engine.reserve(
            body.check_in,
            body.check_out,
            [item.model_dump() for item in body.allocation],
            body.guest_email,
            guest_type=body.guest_type,
        )
    elif body.beds:
        result = engine.reserve_beds(
            body.check_in,
            body.check_out,
            body.beds,
            body.guest_email,
            guest_type=body.guest_type,
            strategy=body.strategy,
        )
    else:
        raise HTTPException(status_code=422, detail="allocation or beds is required")

    logger.info(
        "create hold handled",
        extra={
            "extra_fields": {
                "correlationId": get_correlation_id(),
                "ok": result["ok"],
                "error": result.get("error"),
            }
        },
    )
    return result_response(result, success_status=201)


@router.get("")
def list_holds(engine: BookingEngine = Depends(get_engine)) -> dict:
    return {"holds": engine.list_holds()}


@router.get("/stats")
def hold_stats(engine: BookingEngine = Depends(get_engine)) -> dict:
    return engine.hold_stats()


@router.get("/{hold_id}")
def get_hold(hold_id: str, engine: BookingEngine = Depends(get_engine)) -> dict:
    hold = engine.get_hold(hold_id)
    if hold is None:
        raise HTTPException(status_code=404, detail="Hold not found")
    return hold


@router.post("/{hold_id}/confirm")
def confirm_hold(
    hold_id: str,
    body: ConfirmHoldRequest,
    engine: BookingEngine = Depends(get_engine),
) -> JSONResponse:
    return result_response(engine.confirm_hold(hold_id, body.status))


@router.delete("/{hold_id}")
def release_hold(hold_id: str, engine: BookingEngine = Depends(get_engine)) -> JSONResponse:
    return result_response(engine.release_hold(hold_id))
