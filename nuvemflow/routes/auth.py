"""Nuvemshop app authorization routes"""

import logging

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from nuvemflow.services.nuvemshop_client import UpstreamFetchError
from nuvemflow.utils.responses import error_response, read_json_object

logger = logging.getLogger(__name__)


def _app_configured(settings) -> bool:
    return bool(settings.nuvemshop_client_id and settings.nuvemshop_client_secret)


async def auth_status(request: Request) -> JSONResponse:
    settings = request.app.state.settings
    return JSONResponse(
        {
            "success": True,
            "storeConfigured": bool(settings.store_id),
            "tokenConfigured": bool(settings.nuvemshop_token),
            "appConfigured": _app_configured(settings),
        }
    )


async def install_url(request: Request) -> JSONResponse:
    """Authorization page the store owner must visit to install the app"""
    settings = request.app.state.settings
    if not settings.nuvemshop_client_id:
        return error_response(503, "App not configured", "NUVEMSHOP_CLIENT_ID is not set")

    url = settings.nuvemshop_install_url.format(client_id=settings.nuvemshop_client_id)
    return JSONResponse({"success": True, "url": url})


async def exchange_token(request: Request) -> JSONResponse:
    """Exchange the authorization code from the app callback for an access token"""
    settings = request.app.state.settings
    if not _app_configured(settings):
        return error_response(
            503,
            "App not configured",
            "NUVEMSHOP_CLIENT_ID and NUVEMSHOP_CLIENT_SECRET must be set",
        )

    body = await read_json_object(request)
    code = body.get("code") if body else None
    if not code or not isinstance(code, str):
        return error_response(400, "Missing code", 'Body must be {"code": "<authorization code>"}')

    client = request.app.state.services.client
    try:
        token = await client.exchange_code(
            code, settings.nuvemshop_client_id, settings.nuvemshop_client_secret
        )
    except UpstreamFetchError as e:
        logger.error(f"Authorization code exchange failed: {e}")
        return error_response(502, "Authorization failed", str(e))

    logger.info(f"Obtained access token for store {token.user_id}")
    return JSONResponse(
        {
            "success": True,
            "storeId": str(token.user_id),
            "accessToken": token.access_token,
            "scope": token.scope,
            "message": "Set STORE_ID and NUVEMSHOP_TOKEN to these values and restart",
        }
    )


routes = [
    Route("/api/auth/status", auth_status, methods=["GET"]),
    Route("/api/auth/install", install_url, methods=["GET"]),
    Route("/api/auth/token", exchange_token, methods=["POST"]),
]
