"""Admin endpoints: stalled-session recovery.

Protected by the ``ADMIN_API_KEY`` environment variable.  Every request
must include an ``X-Admin-Key`` header whose value matches the configured
key.
"""

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from promptforge.controller import SessionController

from promptforge_server.dependencies import get_controller, get_db, require_admin

router = APIRouter(prefix="/admin", tags=["admin"])


# ------------------------------------------------------------------
# Response models
# ------------------------------------------------------------------

class RecoveryResult(BaseModel):
    """Response body for recovery operations."""
    scheduled_tasks: int
    stalled_minutes: int


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.post("/recover")
async def recover_stalled_sessions(
    request: Request,
    stalled_minutes: int | None = Query(None, ge=0),
    db: AsyncSession = Depends(get_db),
    controller: SessionController = Depends(get_controller),
    _admin: None = Depends(require_admin),
) -> RecoveryResult:
    """Re-schedule generation for sessions stuck without a pending action.

    Args:
        stalled_minutes: sessions not updated for this many minutes are
            considered; defaults to ``STALLED_SESSION_MINUTES``
    """
    if stalled_minutes is None:
        stalled_minutes = request.app.state.settings.stalled_minutes
    scheduled = await controller.recover_stalled_sessions(
        db, older_than_minutes=stalled_minutes,
    )
    return RecoveryResult(scheduled_tasks=scheduled, stalled_minutes=stalled_minutes)
