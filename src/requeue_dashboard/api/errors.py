"""
API error responses.

Every failure leaves the API as JSON:

    ApiError                 -> {"error": "<message>"}           (status from the error)
    request validation       -> {"errors": [{"param", "msg", "location"}]}   400
    anything else unhandled  -> {"error": "Internal server error", "message": ...}  500
"""

import logging
from typing import Any, Dict, List

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Raised by route handlers to return ``{"error": message}``."""

    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _validation_items(exc: RequestValidationError) -> List[Dict[str, Any]]:
    items = []
    for err in exc.errors():
        loc = [part for part in err.get("loc", ()) if isinstance(part, str)]
        msg = str(err.get("msg", "Invalid value"))
        # Strip pydantic's prefix on messages raised from validators
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        items.append({
            "param": loc[-1] if len(loc) > 1 else (loc[0] if loc else ""),
            "msg": msg,
            "location": loc[0] if loc else "",
        })
    return items


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"errors": _validation_items(exc)},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("API Error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "message": str(exc)},
    )
