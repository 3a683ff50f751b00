"""
Global Error Handling

Application-wide exception handlers.

Design Goals
------------
- Never leak internal exception details to clients
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse

from ..recommend.references import ReferenceNotFoundError

logger = logging.getLogger("nextwatch.errors")


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def reference_not_found_handler(
    request: Request,
    exc: ReferenceNotFoundError,
) -> JSONResponse:
    """
    A reference title that neither the catalog nor the metadata source knows.

    Returns
    -------
    JSONResponse
        404 naming the unresolved title.
    """
    logger.warning("Reference item not found: %s", exc.title)

    payload: Dict[str, Any] = {
        "error": "reference_not_found",
        "detail": str(exc),
        "title": exc.title,
    }
    return JSONResponse(status_code=404, content=payload)


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Registered as the final safety net for any exception not otherwise
    handled by route-level or framework-level handlers.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
