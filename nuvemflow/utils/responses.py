"""JSON response helpers shared by the HTTP handlers"""

from datetime import datetime, timezone
from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_response(status_code: int, error: str, message: str, **extra: Any) -> JSONResponse:
    """Build the {success: false, error, message} body used by every failing endpoint"""
    return JSONResponse(
        {"success": False, "error": error, "message": message, **extra},
        status_code=status_code,
    )


async def read_json_object(request: Request) -> dict[str, Any] | None:
    """Parse the request body as a JSON object, None if it is missing or malformed"""
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def initialization_error_app(message: str) -> Starlette:
    """
    Minimal application answering every request with a JSON 500

    Used when the real application cannot be built or imported. Needs no
    configuration, so it works even when the environment fails to validate.
    """

    async def initialization_error(request: Request) -> JSONResponse:
        return error_response(500, "Server initialization error", message)

    return Starlette(
        routes=[
            Route(
                "/{path:path}",
                initialization_error,
                methods=["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"],
            )
        ]
    )
