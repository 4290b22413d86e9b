import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from goalsgoals.errors import GoalsError, StorageError

logger = logging.getLogger("goalsgoals.errors")


async def goals_error_handler(request: Request, exc: GoalsError) -> JSONResponse:
    """Render domain errors with the status code they carry."""
    request.state.error_code = exc.code
    if isinstance(exc, StorageError):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.code, "message": "Service temporarily unavailable."},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())
