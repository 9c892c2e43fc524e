"""Worker/internal routes (APP_ROLE=worker)."""

from fastapi import APIRouter

from hostelly.api.routes import flexible_room, tasks_sweep

router = APIRouter()


@router.get("/tasks/health")
def tasks_health() -> dict:
    """Tasks subsystem health check."""
    return {"status": "ok", "subsystem": "tasks"}


router.include_router(tasks_sweep.router)
router.include_router(flexible_room.admin_router)
