"""CLI command for executing a single order refresh"""

import asyncio
import logging
import sys
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from dotenv import load_dotenv

from nuvemflow.config import config
from nuvemflow.services.clock import APSchedulerClock
from nuvemflow.services.nuvemshop_client import NuvemshopClient
from nuvemflow.services.order_store import OrderStore
from nuvemflow.services.refresh_scheduler import RefreshScheduler
from nuvemflow.services.telemetry import get_telemetry_service


def setup_logging() -> None:
    """Configure logging for CLI (stdout for K8s)"""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


async def run_refresh() -> bool:
    """Run one refresh cycle, returning whether it succeeded"""
    logger = logging.getLogger(__name__)

    telemetry = get_telemetry_service()
    client = NuvemshopClient()
    store = OrderStore()

    try:
        if not store.initialize():
            logger.error("Firestore is not configured; nothing to refresh into")
            return False

        # The timer is never started here; the clock only supplies timestamps
        refresh_scheduler = RefreshScheduler(
            source=client,
            sink=store,
            clock=APSchedulerClock(AsyncIOScheduler(timezone="UTC")),
            telemetry=telemetry,
        )
        status = await refresh_scheduler.force_refresh()
    finally:
        await client.close()

    result = status.last_run_result
    if not result.success:
        logger.error(f"Refresh failed: {result.error}")
        return False

    logger.info(
        f"Refresh completed successfully in {result.duration_seconds:.2f}s "
        f"({result.orders_written} orders written)"
    )
    return True


def main() -> int:
    """
    Main entry point for refresh CLI command

    Returns:
        int: Exit code (0 for success, 1 for failure)
    """
    load_dotenv()
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        logger.info("Starting refresh operation")
        logger.info(f"Timestamp: {datetime.now().isoformat()}")
        logger.info(f"Store: {config.store_id or 'missing'}")

        return 0 if asyncio.run(run_refresh()) else 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
