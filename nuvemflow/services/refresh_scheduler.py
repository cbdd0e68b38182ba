"""Periodic refresh of mirrored orders from Nuvemshop into Firestore"""

import logging
from datetime import datetime
from typing import Protocol

from nuvemflow.config import config
from nuvemflow.models.order import Order
from nuvemflow.models.refresh_status import RefreshResult, RefreshStatus, RefreshTrigger
from nuvemflow.services.clock import Clock, RepeatingTask
from nuvemflow.services.nuvemshop_client import UpstreamFetchError
from nuvemflow.services.order_store import PersistenceError
from nuvemflow.services.telemetry import TelemetryService

logger = logging.getLogger(__name__)

REFRESH_TASK_ID = "order_refresh"


class BusyError(Exception):
    """Raised when a manual refresh is requested while a cycle is in flight"""

    pass


class OrderSource(Protocol):
    async def fetch_orders(self) -> list[Order]: ...


class OrderSink(Protocol):
    async def upsert_order(self, order: Order, refreshed_at: datetime) -> None: ...


class RefreshScheduler:
    """Runs order refresh cycles on a fixed interval and on demand

    At most one cycle runs at a time. A periodic tick arriving while a cycle is
    in flight is skipped; a manual trigger is rejected with BusyError.
    """

    def __init__(
        self,
        source: OrderSource,
        sink: OrderSink,
        clock: Clock,
        interval_seconds: float | None = None,
        telemetry: TelemetryService | None = None,
    ):
        """
        Initialize the scheduler

        Args:
            source: Upstream order client
            sink: Document store adapter
            clock: Time source and repeating task scheduler
            interval_seconds: Seconds between periodic cycles
            telemetry: Optional telemetry service notified after every cycle
        """
        self.source = source
        self.sink = sink
        self.clock = clock
        self.interval_seconds = interval_seconds or config.refresh_interval_minutes * 60
        self.telemetry = telemetry
        self._status = RefreshStatus()
        self._task: RepeatingTask | None = None

    @property
    def is_started(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        """Start the periodic timer (no-op when already started)"""
        if self._task is not None:
            logger.debug("Refresh scheduler already started")
            return

        self._task = self.clock.call_every(self.interval_seconds, self._on_tick, REFRESH_TASK_ID)
        logger.info(f"Order refresh scheduled every {self.interval_seconds:g}s")

    def stop(self) -> None:
        """Cancel the periodic timer; an in-flight cycle runs to completion"""
        if self._task is None:
            return

        self._task.cancel()
        self._task = None
        logger.info("Stopped order refresh scheduler")

    def get_status(self) -> RefreshStatus:
        """Snapshot of the current refresh status"""
        snapshot = self._status.model_copy(deep=True)
        snapshot.next_run_at = self._task.next_run_at if self._task else None
        return snapshot

    async def force_refresh(self) -> RefreshStatus:
        """
        Run a refresh cycle now

        Returns:
            RefreshStatus: Status after the cycle; last_run_result tells whether it succeeded

        Raises:
            BusyError: If a cycle is already running
        """
        if self._status.is_running:
            raise BusyError("A refresh is already in progress")

        await self._run_cycle("manual")
        return self.get_status()

    async def _on_tick(self) -> None:
        if self._status.is_running:
            logger.info("Refresh already in progress, skipping scheduled run")
            return

        await self._run_cycle("scheduled")

    async def _run_cycle(self, trigger: RefreshTrigger) -> RefreshResult:
        """
        Execute one refresh cycle and record its outcome

        Never raises for refresh failures; they end up in the recorded result.
        """
        # No await between the check in the callers and this assignment
        self._status.is_running = True
        try:
            result = await self._refresh(trigger)
        finally:
            self._status.is_running = False

        self._status.last_run_at = result.finished_at
        self._status.last_run_result = result

        if self.telemetry:
            self.telemetry.log_refresh(result)

        return result

    async def _refresh(self, trigger: RefreshTrigger) -> RefreshResult:
        """
        Fetch and persist the current order set

        Process:
        1. Fetch all orders from upstream
        2. Upsert each order, counting failures without aborting the batch
        3. Summarize counts and the first error into a RefreshResult
        """
        started_at = self.clock.now()
        fetched = written = failed = 0
        error: str | None = None

        try:
            logger.info(f"Starting {trigger} order refresh")

            orders = await self.source.fetch_orders()
            fetched = len(orders)

            first_error: str | None = None
            for order in orders:
                try:
                    await self.sink.upsert_order(order, started_at)
                    written += 1
                except PersistenceError as e:
                    failed += 1
                    first_error = first_error or str(e)
                    logger.warning(f"Failed to persist order {order.id}: {e}")

            if failed:
                error = f"Failed to persist {failed} of {fetched} orders: {first_error}"
                logger.error(f"Order refresh partially failed: {error}")

        except UpstreamFetchError as e:
            error = str(e)
            logger.error(f"Order refresh failed to fetch from upstream: {e}")
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error(f"Order refresh failed with exception: {e}", exc_info=True)

        finished_at = self.clock.now()
        duration_seconds = (finished_at - started_at).total_seconds()

        if error is None:
            logger.info(
                f"Order refresh completed: {written} orders written in {duration_seconds:.2f}s"
            )

        return RefreshResult(
            success=error is None,
            error=error,
            trigger=trigger,
            started_at=started_at,
            finished_at=finished_at,
            duration_seconds=duration_seconds,
            orders_fetched=fetched,
            orders_written=written,
            orders_failed=failed,
        )
