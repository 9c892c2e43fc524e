"""Public-facing routes (APP_ROLE=public)."""

from fastapi import APIRouter

from hostelly.api.routes import availability, flexible_room, holds

router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


router.include_router(availability.router)
router.include_router(holds.router)
router.include_router(flexible_room.router)
