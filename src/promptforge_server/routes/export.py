"""Export endpoint: download a completed session as a file."""

import uuid

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from promptforge.constants import EXPORT_EXTENSIONS
from promptforge.controller import SessionController
from promptforge_db.models.enums import ExportFormat

from promptforge_server.dependencies import get_controller, get_db

router = APIRouter(tags=["export"])

_MEDIA_TYPES: dict[ExportFormat, str] = {
    ExportFormat.MARKDOWN: "text/markdown",
    ExportFormat.JSON: "application/json",
    ExportFormat.XML: "application/xml",
}


@router.get("/sessions/{session_id}/export")
async def export_session(
    session_id: uuid.UUID,
    format: ExportFormat = Query(ExportFormat.MARKDOWN),
    db: AsyncSession = Depends(get_db),
    controller: SessionController = Depends(get_controller),
) -> Response:
    """Serialise the session as ``enhanced-prompt.{md,json,xml}``.

    Raises 404 for an unknown session and 409 while the enhanced prompt
    has not been written yet.
    """
    body = await controller.export_session(db, session_id, format)
    filename = f"enhanced-prompt.{EXPORT_EXTENSIONS[format]}"
    return Response(
        content=body,
        media_type=f"{_MEDIA_TYPES[format]}; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
