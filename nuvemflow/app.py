"""HTTP server exposing health, refresh and order endpoints"""

import logging
import sys
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass

import uvicorn
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from dotenv import load_dotenv
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from nuvemflow.config import AppConfig, config
from nuvemflow.routes import auth, firebase, orders
from nuvemflow.services.clock import APSchedulerClock
from nuvemflow.services.nuvemshop_client import NuvemshopClient
from nuvemflow.services.order_store import OrderStore, PersistenceError
from nuvemflow.services.refresh_scheduler import BusyError, RefreshScheduler
from nuvemflow.services.telemetry import get_telemetry_service
from nuvemflow.utils.env_check import describe_firebase_credentials, validate_environment
from nuvemflow.utils.responses import error_response, initialization_error_app, utc_timestamp

logger = logging.getLogger(__name__)

_process_started = time.monotonic()


@dataclass
class AppServices:
    """Service instances shared by the request handlers"""

    client: NuvemshopClient
    store: OrderStore
    refresh_scheduler: RefreshScheduler
    scheduler: AsyncIOScheduler | None = None


def build_services(settings: AppConfig) -> AppServices:
    """Create the upstream client, store and refresh scheduler for one process"""
    # Telemetry first so httpx is instrumented before the client exists
    telemetry = get_telemetry_service()

    client = NuvemshopClient(settings=settings)
    store = OrderStore(settings=settings)
    scheduler = AsyncIOScheduler(timezone="UTC")
    refresh_scheduler = RefreshScheduler(
        source=client,
        sink=store,
        clock=APSchedulerClock(scheduler),
        interval_seconds=settings.refresh_interval_minutes * 60,
        telemetry=telemetry,
    )
    return AppServices(
        client=client, store=store, refresh_scheduler=refresh_scheduler, scheduler=scheduler
    )


def _startup(services: AppServices, settings: AppConfig) -> None:
    """Initialize Firestore and start background refresh"""
    try:
        services.store.initialize()
    except Exception as e:
        logger.error(f"Firestore initialization error: {e}")
        # Continue without Firebase; store calls report PersistenceError

    if settings.serverless:
        logger.info("Running in serverless environment, background refresh disabled")
        return

    if not settings.refresh_enabled:
        logger.info("Background refresh is disabled")
        return

    try:
        if services.scheduler is not None and not services.scheduler.running:
            services.scheduler.start()
        services.refresh_scheduler.start()
        logger.info("Order refresh scheduler started")
    except Exception as e:
        logger.error(f"Failed to start order refresh scheduler: {e}")
        # Don't fail server startup if refresh fails to initialize


async def _shutdown(services: AppServices) -> None:
    """Gracefully stop background refresh and close the upstream client"""
    try:
        services.refresh_scheduler.stop()
    except Exception as e:
        logger.error(f"Error stopping order refresh scheduler: {e}")

    if services.scheduler is not None and services.scheduler.running:
        try:
            services.scheduler.shutdown(wait=False)
            logger.info("Background scheduler stopped")
        except Exception as e:
            logger.error(f"Error shutting down scheduler: {e}")

    try:
        await services.client.close()
    except Exception as e:
        logger.error(f"Error closing Nuvemshop client: {e}")


@asynccontextmanager
async def lifespan(app: Starlette):
    services: AppServices = app.state.services
    _startup(services, app.state.settings)
    try:
        yield
    finally:
        logger.info("Shutting down gracefully...")
        await _shutdown(services)


async def health_check(request: Request) -> JSONResponse:
    return JSONResponse(
        {
            "status": "healthy",
            "timestamp": utc_timestamp(),
            "uptime": round(time.monotonic() - _process_started, 3),
            "environment": request.app.state.settings.environment,
        }
    )


async def api_status(request: Request) -> JSONResponse:
    """Scheduler status, Firestore probe and configuration summary"""
    settings: AppConfig = request.app.state.settings
    services: AppServices = request.app.state.services

    try:
        firestore_probe = await services.store.test_connection()
    except PersistenceError as e:
        return JSONResponse(
            {"status": "error", "timestamp": utc_timestamp(), "error": str(e)}, status_code=500
        )

    return JSONResponse(
        {
            "status": "operational",
            "timestamp": utc_timestamp(),
            "services": {
                "scheduler": services.refresh_scheduler.get_status().to_json(),
                "firestore": firestore_probe,
            },
            "environment": {
                "environment": settings.environment,
                "port": settings.port,
                "storeId": "configured" if settings.store_id else "missing",
                "nuvemshopToken": "configured" if settings.nuvemshop_token else "missing",
                "firebaseCredentials": describe_firebase_credentials(settings),
            },
        }
    )


async def refresh_orders(request: Request) -> JSONResponse:
    """Run a refresh cycle now; rejected with 409 while one is in flight"""
    refresh_scheduler: RefreshScheduler = request.app.state.services.refresh_scheduler

    try:
        status = await refresh_scheduler.force_refresh()
    except BusyError as e:
        return error_response(
            409,
            "Refresh already in progress",
            str(e),
            status=refresh_scheduler.get_status().to_json(),
        )

    result = status.last_run_result
    result_json = result.model_dump(mode="json", by_alias=True)
    if not result.success:
        return error_response(500, "Failed to refresh orders", result.error, result=result_json)

    return JSONResponse(
        {
            "success": True,
            "message": "Orders refreshed successfully",
            "timestamp": utc_timestamp(),
            "result": result_json,
        }
    )


async def http_error(request: Request, exc: HTTPException) -> JSONResponse:
    # Routing raises 405 for a known path with another method; both are unknown endpoints
    if exc.status_code in (404, 405):
        target = request.url.path
        if request.url.query:
            target = f"{target}?{request.url.query}"
        return error_response(
            404,
            "Endpoint not found",
            f"The requested endpoint {request.method} {target} does not exist",
        )
    return error_response(exc.status_code, exc.detail, exc.detail)


async def internal_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error: {exc}", exc_info=exc)
    settings: AppConfig = request.app.state.settings
    message = str(exc) if settings.is_development else "Something went wrong"
    return error_response(500, "Internal server error", message)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        client_host = request.client.host if request.client else "-"
        logger.info(f"{request.method} {request.url.path} - IP: {client_host}")
        return await call_next(request)


def create_app(
    settings: AppConfig | None = None, services: AppServices | None = None
) -> Starlette:
    """
    Build the Starlette application

    Args:
        settings: Configuration (defaults to the global config)
        services: Prebuilt services; built from settings when None

    Returns:
        Starlette: Application whose lifespan starts and stops the refresh scheduler
    """
    settings = settings or config
    services = services or build_services(settings)

    middleware = [Middleware(RequestLoggingMiddleware)]
    if settings.cors_enabled:
        middleware.append(
            Middleware(
                CORSMiddleware,
                allow_origins=settings.cors_origins,
                allow_methods=["*"],
                allow_headers=["*"],
            )
        )

    app = Starlette(
        routes=[
            Route("/health", health_check, methods=["GET"]),
            Route("/api/status", api_status, methods=["GET"]),
            Route("/api/refresh", refresh_orders, methods=["POST"]),
            *auth.routes,
            *firebase.routes,
            *orders.routes,
        ],
        middleware=middleware,
        exception_handlers={HTTPException: http_error, Exception: internal_error},
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services
    return app


def create_serverless_app(settings: AppConfig | None = None) -> Starlette:
    """
    Application for serverless deployments

    If the application cannot be built, every request gets a JSON 500
    describing the initialization error instead of a crashed function.
    """
    settings = settings or config
    try:
        app = create_app(settings.model_copy(update={"serverless": True}))
    except Exception as e:
        logger.error(f"Error loading backend server: {e}", exc_info=True)
        return initialization_error_app(str(e))

    # Serverless runtimes may never run the lifespan, so connect eagerly
    try:
        app.state.services.store.initialize()
    except Exception as e:
        logger.error(f"Firestore initialization error in serverless mode: {e}")
    return app


def setup_logging(level: str = "INFO") -> None:
    """Configure logging (stdout for containers)"""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def main() -> int:
    """Entry point for the HTTP server"""
    # Expose .env to SDKs reading os.environ directly (OTEL_*, GOOGLE_*)
    load_dotenv()
    setup_logging(config.log_level)

    if not validate_environment(config):
        return 1

    try:
        app = create_app(config)
        logger.info(f"Server running on http://localhost:{config.port}")
        uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())
    except Exception as e:
        logger.error(f"Failed to start server: {e}", exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
