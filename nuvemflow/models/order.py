"""Nuvemshop order model and its Firestore document shape"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Order(BaseModel):
    """Order as returned by the Nuvemshop API

    Only the fields the service relies on are declared; everything else the API
    returns is kept as extra data and mirrored untouched.
    """

    model_config = ConfigDict(extra="allow")

    id: int = Field(description="Upstream order id")
    number: int | None = Field(default=None, description="Store-facing order number")
    status: str | None = Field(default=None, description="open, closed or cancelled")
    payment_status: str | None = Field(default=None)
    shipping_status: str | None = Field(default=None)
    total: str | None = Field(default=None, description="Order total as sent by upstream")
    currency: str | None = Field(default=None)
    created_at: str | None = Field(default=None)
    updated_at: str | None = Field(default=None)

    @property
    def document_id(self) -> str:
        return str(self.id)

    def to_document(self, refreshed_at: datetime) -> dict[str, Any]:
        """Build the Firestore document for this order"""
        document = self.model_dump(mode="json")
        document["orderId"] = self.document_id
        document["lastRefreshedAt"] = refreshed_at.isoformat()
        return document


class AuthToken(BaseModel):
    """Access token issued by the Nuvemshop OAuth endpoint"""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    token_type: str = "bearer"
    scope: str | None = None
    user_id: int | str = Field(description="Store id the token belongs to")
