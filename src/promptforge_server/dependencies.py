"""FastAPI dependency injection: provides DB sessions, the controller, and admin auth.

Each request that touches the database gets a fresh ``AsyncSession`` via
``get_db()``.  The session is committed on success and rolled back on error,
matching the SDK convention where controller/repository call ``flush()`` but
never ``commit()``.  Because scheduled generation tasks are written into the
same session, they become visible to the runner only after that commit.
"""

import hmac
from typing import AsyncGenerator

from fastapi import Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from promptforge.controller import SessionController
from promptforge_db.engine import get_session_factory


# ------------------------------------------------------------------
# Database session: transaction boundary lives here
# ------------------------------------------------------------------

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session; commit on success, rollback on error."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ------------------------------------------------------------------
# Controller: stashed on app.state during lifespan
# ------------------------------------------------------------------

def get_controller(request: Request) -> SessionController:
    """Return the controller singleton from ``app.state``."""
    return request.app.state.controller


# ------------------------------------------------------------------
# Admin authentication
# ------------------------------------------------------------------

async def require_admin(
    request: Request,
    x_admin_key: str | None = Header(None, alias="X-Admin-Key"),
) -> None:
    """Validate the ``X-Admin-Key`` header against ``ADMIN_API_KEY``.

    Returns 403 when no admin key is configured (admin endpoints are
    disabled) or when the header does not match.
    """
    expected: str | None = request.app.state.settings.admin_api_key
    if not expected:
        raise HTTPException(status_code=403, detail="Admin endpoints are disabled")
    # Constant-time comparison to prevent timing side-channels.
    if not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=403, detail="Invalid admin key")
