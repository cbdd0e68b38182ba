"""Firestore connectivity and order notes routes"""

import logging

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from nuvemflow.services.order_store import PersistenceError
from nuvemflow.utils.responses import error_response, read_json_object, utc_timestamp

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 10_000


async def test_connection(request: Request) -> JSONResponse:
    store = request.app.state.services.store
    try:
        probe = await store.test_connection()
    except PersistenceError as e:
        return error_response(500, "Firestore connection failed", str(e))

    return JSONResponse({"success": True, "firestore": probe, "timestamp": utc_timestamp()})


async def get_notes(request: Request) -> JSONResponse:
    order_id = request.path_params["order_id"]
    store = request.app.state.services.store
    try:
        notes = await store.get_notes(order_id)
    except PersistenceError as e:
        return error_response(503, "Failed to load notes", str(e))

    return JSONResponse({"success": True, **notes})


async def save_notes(request: Request) -> JSONResponse:
    """Replace the notes of an order"""
    order_id = request.path_params["order_id"]
    body = await read_json_object(request)
    if body is None or not isinstance(body.get("notes"), str):
        return error_response(400, "Invalid notes", 'Body must be {"notes": "<text>"}')

    notes = body["notes"]
    if len(notes) > MAX_NOTES_LENGTH:
        return error_response(
            400, "Invalid notes", f"Notes must be at most {MAX_NOTES_LENGTH} characters"
        )

    store = request.app.state.services.store
    try:
        saved = await store.update_notes(order_id, notes)
    except PersistenceError as e:
        logger.error(f"Failed to save notes for order {order_id}: {e}")
        return error_response(503, "Failed to save notes", str(e))

    return JSONResponse({"success": True, **saved})


routes = [
    Route("/api/firebase/test", test_connection, methods=["GET"]),
    Route("/api/firebase/notes/{order_id}", get_notes, methods=["GET"]),
    Route("/api/firebase/notes/{order_id}", save_notes, methods=["PUT"]),
]
