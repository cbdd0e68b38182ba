"""Data models for the order mirror service"""

from nuvemflow.models.order import AuthToken, Order
from nuvemflow.models.refresh_status import RefreshResult, RefreshStatus, RefreshTrigger

__all__ = [
    "AuthToken",
    "Order",
    "RefreshResult",
    "RefreshStatus",
    "RefreshTrigger",
]
