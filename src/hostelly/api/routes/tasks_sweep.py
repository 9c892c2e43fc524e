"""Worker routes for periodic cleanup of expired holds and locks."""

from fastapi import APIRouter, Depends

from hostelly.api.dependencies import get_engine
from hostelly.api.task_auth import require_task_auth
from hostelly.domain.booking_engine import BookingEngine
from hostelly.observability.correlation import get_correlation_id
from hostelly.observability.logging import get_logger

router = APIRouter(
    prefix="/tasks",
    tags=["tasks"],
    dependencies=[Depends(require_task_auth)],
)

logger = get_logger(__name__)


@router.post("/holds/sweep")
def sweep_holds(engine: BookingEngine = Depends(get_engine)) -> dict:
    removed = engine.sweep_holds()
    logger.info(
        "hold sweep task completed",
        extra={"extra_fields": {"correlationId": get_correlation_id(), "removed": removed}},
    )
    return {"ok": True, "removed": removed}


@router.post("/locks/sweep")
def sweep_locks(engine: BookingEngine = Depends(get_engine)) -> dict:
    removed = engine.sweep_locks()
    logger.info(
        "lock sweep task completed",
        extra={"extra_fields": {"correlationId": get_correlation_id(), "removed": removed}},
    )
    return {"ok": True, "removed": removed}
