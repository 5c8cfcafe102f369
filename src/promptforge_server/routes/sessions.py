"""Session endpoints: start sessions, answer questions, read state.

Commands (create, answer, format) return the updated ``SessionInfo``.
Question generation happens after the request's transaction commits, so
a client polls ``GET /sessions/{id}/questions`` until the next question
appears, and ``GET /sessions/{id}`` until ``status`` is ``complete``.
"""

import uuid

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from promptforge.controller import SessionController
from promptforge.models.session import (
    CompletedSessionSummary,
    QuestionInfo,
    SessionInfo,
)
from promptforge_db.models.enums import ExportFormat, SessionType

from promptforge_server.config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from promptforge_server.dependencies import get_controller, get_db

router = APIRouter(tags=["sessions"])


# ------------------------------------------------------------------
# Request models
# ------------------------------------------------------------------

class CreateSessionRequest(BaseModel):
    """Body for POST /sessions."""
    original_prompt: str
    session_type: SessionType = SessionType.INTERACTIVE
    selected_format: ExportFormat | None = None


class SubmitAnswerRequest(BaseModel):
    """Body for POST /sessions/{session_id}/answers."""
    answer: str


class UpdateFormatRequest(BaseModel):
    """Body for PUT /sessions/{session_id}/format."""
    selected_format: ExportFormat


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.post("/sessions", status_code=201)
async def create_session(
    body: CreateSessionRequest,
    db: AsyncSession = Depends(get_db),
    controller: SessionController = Depends(get_controller),
) -> SessionInfo:
    """Start an interactive or one-shot enhancement session.

    Returns 201 on success; the first question (or the one-shot
    refinement) is generated in the background.
    """
    return await controller.start_session(
        db,
        original_prompt=body.original_prompt,
        session_type=body.session_type,
        selected_format=body.selected_format,
    )


# Declared before /sessions/{session_id} so "completed" is not parsed as an id
@router.get("/sessions/completed")
async def list_completed_sessions(
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    controller: SessionController = Depends(get_controller),
) -> list[CompletedSessionSummary]:
    """List completed sessions, newest first, with their question counts."""
    return await controller.list_completed_sessions(db, limit=limit, offset=offset)


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    controller: SessionController = Depends(get_controller),
) -> SessionInfo:
    """Get session state.  Raises 404 if the session does not exist."""
    return await controller.get_session(db, session_id)


@router.get("/sessions/{session_id}/questions")
async def get_questions(
    session_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    controller: SessionController = Depends(get_controller),
) -> list[QuestionInfo]:
    """Questions asked so far, ordered by ``order``."""
    return await controller.get_questions(db, session_id)


@router.post("/sessions/{session_id}/answers")
async def submit_answer(
    session_id: uuid.UUID,
    body: SubmitAnswerRequest,
    db: AsyncSession = Depends(get_db),
    controller: SessionController = Depends(get_controller),
) -> SessionInfo:
    """Answer the current open question.

    Raises 404 when there is no open question at the session's current
    step: before the question has been generated, after the last answer,
    for one-shot sessions, or when a concurrent answer won.
    """
    return await controller.submit_answer(db, session_id, body.answer)


@router.put("/sessions/{session_id}/format")
async def update_format(
    session_id: uuid.UUID,
    body: UpdateFormatRequest,
    db: AsyncSession = Depends(get_db),
    controller: SessionController = Depends(get_controller),
) -> SessionInfo:
    """Change the output format.  Raises 409 once the session is complete."""
    return await controller.update_format(db, session_id, body.selected_format)
