"""Models for the background order refresh"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RefreshTrigger = Literal["scheduled", "manual"]


class RefreshResult(BaseModel):
    """Outcome of a single refresh cycle"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = Field(description="Whether every fetched order was written")
    error: str | None = Field(default=None, description="First or aggregate error message")
    trigger: RefreshTrigger = Field(description="What started the cycle")
    started_at: datetime = Field(description="When the cycle started")
    finished_at: datetime = Field(description="When the cycle ended")
    duration_seconds: float = Field(description="Duration in seconds")
    orders_fetched: int = Field(default=0, ge=0, description="Orders returned by upstream")
    orders_written: int = Field(default=0, ge=0, description="Orders upserted into the store")
    orders_failed: int = Field(default=0, ge=0, description="Orders that failed to persist")


class RefreshStatus(BaseModel):
    """Process-wide refresh state, owned by the scheduler and read by the HTTP layer"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    last_run_at: datetime | None = Field(default=None, description="End of the last cycle")
    last_run_result: RefreshResult | None = Field(
        default=None, description="Outcome of the last cycle"
    )
    is_running: bool = Field(default=False, description="Whether a cycle is in flight")
    next_run_at: datetime | None = Field(
        default=None, description="Next scheduled tick, if the timer is active"
    )

    def to_json(self) -> dict:
        """Serialize with camelCase keys for API responses"""
        return self.model_dump(mode="json", by_alias=True)
