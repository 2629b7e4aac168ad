"""
Exception handlers for the discovery API.

Register these on a FastAPI app instance via `register_exception_handlers(app)`.
"""
import logging
import traceback

from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .core.errors import InvalidEligibilityRequest

logger = logging.getLogger("localmarket")


async def invalid_eligibility_handler(request: Request, exc: InvalidEligibilityRequest):
    """Malformed eligibility input is a 400, distinct from a not-eligible result."""
    logger.info(f"Rejected eligibility request on {request.url.path}: {exc.errors}")
    return JSONResponse(
        status_code=400,
        content={"error": "invalid_request", "detail": exc.errors},
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "invalid_request", "detail": details},
    )


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors"""
    if isinstance(exc, (HTTPException, StarletteHTTPException)):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail if hasattr(exc, 'detail') else str(exc)},
        )

    error_traceback = traceback.format_exc()
    logger.error(f"Unhandled exception: {exc}\n{error_traceback}", exc_info=True)

    # Details stay in the logs outside local dev
    if settings.env in ("dev", "local"):
        error_response = {"detail": f"Internal server error: {exc}"}
    else:
        error_response = {"detail": "Internal server error"}

    return JSONResponse(
        status_code=500,
        content=error_response,
    )


def register_exception_handlers(app):
    """Register all exception handlers on the given FastAPI app."""
    app.add_exception_handler(InvalidEligibilityRequest, invalid_eligibility_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
