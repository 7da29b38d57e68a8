"""
Error handling middleware.

Provides consistent error responses and request ID tracking.
"""

import json
import traceback
import uuid
from collections.abc import Callable

from aiohttp import web

from driftfix.exceptions import AuthorizationDenied
from driftfix.service.api.errors import APIError, ErrorCode
from driftfix.utils.logging import get_logger

logger = get_logger("driftfix.api.middleware.error")


def _error_response(code: ErrorCode, message: str, status: int, request_id: str, details: dict | None = None):
    error = {"code": code.value, "message": message, "request_id": request_id}
    if details:
        error["details"] = details
    return web.json_response({"error": error}, status=status, headers={"X-Request-ID": request_id})


@web.middleware
async def error_middleware(request: web.Request, handler: Callable) -> web.Response:
    """
    Middleware for consistent error handling.

    - Adds request_id to all requests
    - Catches APIError and returns structured JSON response
    - Turns AuthorizationDenied into 403
    - Catches unexpected errors and returns generic 500
    """
    request_id = f"req_{uuid.uuid4().hex[:12]}"
    request["request_id"] = request_id

    try:
        response = await handler(request)
        response.headers["X-Request-ID"] = request_id
        return response

    except APIError as e:
        logger.warning(f"API error: {e.code.value} - {e.message} [{request.method} {request.path}, {request_id}]")
        return web.json_response(e.to_dict(request_id), status=e.status, headers={"X-Request-ID": request_id})

    except AuthorizationDenied as e:
        logger.warning(f"Authorization denied ({e.reason}): {e.message} [{request.method} {request.path}, {request_id}]")
        return _error_response(ErrorCode.FORBIDDEN, e.message, 403, request_id, {"reason": e.reason})

    except json.JSONDecodeError as e:
        logger.warning(f"JSON decode error: {e} [{request_id}]")
        return _error_response(ErrorCode.INVALID_REQUEST, "Invalid JSON in request body", 400, request_id)

    except web.HTTPException:
        raise

    except Exception as e:
        logger.error(
            f"Unexpected error: {e} [{request.method} {request.path}, {request_id}]\n{traceback.format_exc()}",
        )
        return _error_response(ErrorCode.INTERNAL_ERROR, "An internal error occurred", 500, request_id)
