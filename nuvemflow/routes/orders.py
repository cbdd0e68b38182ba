"""Order routes backed by the Firestore mirror"""

import logging
from datetime import datetime, timezone

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from nuvemflow.services.nuvemshop_client import UpstreamFetchError
from nuvemflow.services.order_store import PersistenceError
from nuvemflow.utils.responses import error_response

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
MAX_LIMIT = 250


async def list_orders(request: Request) -> JSONResponse:
    """List mirrored orders, newest first"""
    try:
        limit = int(request.query_params.get("limit", DEFAULT_LIMIT))
    except ValueError:
        return error_response(400, "Invalid limit", "limit must be an integer")
    if not 1 <= limit <= MAX_LIMIT:
        return error_response(400, "Invalid limit", f"limit must be between 1 and {MAX_LIMIT}")

    store = request.app.state.services.store
    try:
        orders = await store.list_orders(limit=limit)
    except PersistenceError as e:
        logger.error(f"Failed to list orders: {e}")
        return error_response(503, "Failed to load orders", str(e))

    return JSONResponse({"success": True, "count": len(orders), "orders": orders})


async def get_order(request: Request) -> JSONResponse:
    """Return one mirrored order"""
    order_id = request.path_params["order_id"]
    store = request.app.state.services.store

    try:
        order = await store.get_order(order_id)
    except PersistenceError as e:
        logger.error(f"Failed to read order {order_id}: {e}")
        return error_response(503, "Failed to load order", str(e))

    if order is None:
        return error_response(404, "Order not found", f"Order {order_id} has not been mirrored")

    return JSONResponse({"success": True, "order": order})


async def sync_order(request: Request) -> JSONResponse:
    """Fetch one order from Nuvemshop and write it to the mirror"""
    order_id = request.path_params["order_id"]
    services = request.app.state.services

    try:
        order = await services.client.fetch_order(order_id)
    except UpstreamFetchError as e:
        if e.status_code == 404:
            return error_response(404, "Order not found", f"Order {order_id} does not exist")
        logger.error(f"Failed to fetch order {order_id}: {e}")
        return error_response(502, "Failed to fetch order", str(e))

    try:
        await services.store.upsert_order(order, datetime.now(timezone.utc))
    except PersistenceError as e:
        logger.error(f"Failed to persist order {order_id}: {e}")
        return error_response(503, "Failed to save order", str(e))

    logger.info(f"Synced order {order_id}")
    return JSONResponse({"success": True, "order": order.model_dump(mode="json")})


routes = [
    Route("/api/orders", list_orders, methods=["GET"]),
    Route("/api/orders/{order_id}", get_order, methods=["GET"]),
    Route("/api/orders/{order_id}/sync", sync_order, methods=["POST"]),
]
