"""Global exception handlers: map SDK exceptions to HTTP status codes.

The SDK raises ``NotFoundError`` and ``InvalidStateError`` (both
``ValueError`` subclasses) and plain ``ValueError`` for bad input.  Rather
than catching these in every route, we install global handlers that pick
the HTTP status from the exception type.  This keeps route handlers clean
and focused on the happy path.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from promptforge.errors import InvalidStateError, NotFoundError

logger = logging.getLogger(__name__)

# --- Exception types and their HTTP status codes ---
# Checked in order; first match wins, so subclasses come first.
_VALUE_ERROR_STATUS: list[tuple[type[ValueError], int]] = [
    (NotFoundError, 404),
    (InvalidStateError, 409),
]


# --- Client-safe messages keyed by HTTP status code ---
# Internal details (session ids, status names) stay in the server log; the
# client receives only a generic description.
_SAFE_MESSAGES: dict[int, str] = {
    404: "Resource not found",
    409: "Session is not in a valid state for this operation",
    400: "Invalid request",
}


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Map SDK ``ValueError`` subclasses to a contextual HTTP error response.

    ``NotFoundError`` → 404, ``InvalidStateError`` → 409, anything else
    (empty prompt, unknown enum value) → 400.

    The raw exception message is logged server-side but never sent to the
    client.
    """
    status = 400
    for exc_type, code in _VALUE_ERROR_STATUS:
        if isinstance(exc, exc_type):
            status = code
            break

    logger.warning("%s [%d] at %s: %s", exc.__class__.__name__, status, request.url, exc)
    return JSONResponse(
        status_code=status,
        content={"detail": _SAFE_MESSAGES.get(status, "Invalid request")},
    )


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions: log full traceback, return 500."""
    logger.exception("Unhandled exception at %s", request.url)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
