"""Firestore adapter for mirrored orders and their notes"""

import asyncio
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any

import firebase_admin
from firebase_admin import credentials, firestore

from nuvemflow.config import AppConfig, config
from nuvemflow.models.order import Order

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when the document store cannot be read or written"""

    pass


class OrderStore:
    """Persist and retrieve order documents keyed by upstream order id"""

    def __init__(
        self,
        client: Any | None = None,
        collection: str | None = None,
        settings: AppConfig | None = None,
    ):
        """
        Initialize the store

        Args:
            client: Firestore client; when None, initialize() builds one from config
            collection: Collection name for orders
            settings: Source of the Firebase credentials (defaults to the global config)
        """
        self.settings = settings or config
        self.client = client
        self.collection = collection or self.settings.firestore_orders_collection

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def _load_credentials(self) -> credentials.Certificate | None:
        """Service account from inline JSON or file, None when neither is present"""
        key = self.settings.firebase_service_account_key
        path = self.settings.firebase_service_account_path
        if key:
            try:
                info = json.loads(key)
            except json.JSONDecodeError as e:
                raise PersistenceError(
                    f"FIREBASE_SERVICE_ACCOUNT_KEY is not valid JSON: {e}"
                ) from e
            return credentials.Certificate(info)

        if os.path.exists(path):
            return credentials.Certificate(path)

        return None

    def initialize(self) -> bool:
        """
        Connect to Firestore unless a client was injected

        Missing credentials are not fatal: the store stays unconfigured and
        every read or write raises PersistenceError.

        Returns:
            bool: Whether a Firestore client is available
        """
        if self.client is not None:
            return True

        cred = self._load_credentials()
        if cred is None:
            logger.warning("Firebase service account key not found")
            logger.warning("Continuing without Firebase (orders and notes will not persist)")
            return False

        try:
            app = firebase_admin.get_app()
        except ValueError:
            app = firebase_admin.initialize_app(cred)
            logger.info("Firebase Admin initialized")

        self.client = firestore.client(app)
        logger.info(f"Firestore client initialized (collection: {self.collection})")
        return True

    def _orders(self):
        if self.client is None:
            raise PersistenceError("Firestore is not configured")
        return self.client.collection(self.collection)

    async def test_connection(self) -> dict[str, Any]:
        """
        Probe Firestore with a cheap document read

        Returns:
            dict: Probe result; "connected" is False when Firestore is not configured

        Raises:
            PersistenceError: If the probe read fails
        """
        if self.client is None:
            return {"connected": False, "error": "Firestore is not configured"}

        try:
            # Existence of the document is irrelevant, only the round trip matters
            await asyncio.to_thread(self.client.collection("_health").document("ping").get)
        except Exception as e:
            logger.error(f"Firestore connection probe failed: {e}")
            raise PersistenceError(f"Firestore connection probe failed: {e}") from e

        return {"connected": True, "collection": self.collection}

    async def upsert_order(self, order: Order, refreshed_at: datetime) -> None:
        """
        Write an order document, merging with any existing one

        Merge keeps locally owned fields (notes) intact across refreshes.

        Raises:
            PersistenceError: If the write fails
        """
        document = order.to_document(refreshed_at)
        try:
            doc_ref = self._orders().document(order.document_id)
            await asyncio.to_thread(doc_ref.set, document, merge=True)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to write order {order.id}: {e}") from e

    async def get_order(self, order_id: str) -> dict[str, Any] | None:
        """Return the stored order document, or None if absent"""
        try:
            snapshot = await asyncio.to_thread(self._orders().document(str(order_id)).get)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to read order {order_id}: {e}") from e

        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    async def list_orders(self, limit: int = 50) -> list[dict[str, Any]]:
        """Return stored orders, newest first"""

        def _query() -> list[dict[str, Any]]:
            query = self._orders().order_by(
                "created_at", direction=firestore.Query.DESCENDING
            ).limit(limit)
            return [snapshot.to_dict() for snapshot in query.stream()]

        try:
            return await asyncio.to_thread(_query)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to list orders: {e}") from e

    async def get_notes(self, order_id: str) -> dict[str, Any]:
        """Return the notes stored for an order (empty when none)"""
        document = await self.get_order(order_id) or {}
        return {
            "orderId": str(order_id),
            "notes": document.get("notes", ""),
            "notesUpdatedAt": document.get("notesUpdatedAt"),
        }

    async def update_notes(self, order_id: str, notes: str) -> dict[str, Any]:
        """
        Store notes for an order

        The order document is created if the order has not been mirrored yet.
        """
        updated_at = datetime.now(timezone.utc).isoformat()
        fields = {"orderId": str(order_id), "notes": notes, "notesUpdatedAt": updated_at}
        try:
            doc_ref = self._orders().document(str(order_id))
            await asyncio.to_thread(doc_ref.set, fields, merge=True)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to save notes for order {order_id}: {e}") from e

        logger.info(f"Saved notes for order {order_id}")
        return fields
