"""Dashboard endpoint: aggregate figures over completed sessions."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from promptforge.controller import SessionController
from promptforge.models.session import DashboardStats

from promptforge_server.dependencies import get_controller, get_db

router = APIRouter(tags=["stats"])


@router.get("/stats")
async def get_stats(
    db: AsyncSession = Depends(get_db),
    controller: SessionController = Depends(get_controller),
) -> DashboardStats:
    """Totals, averages and character savings across completed sessions."""
    return await controller.get_stats(db)
