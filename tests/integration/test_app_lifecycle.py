"""Integration tests for server startup, shutdown and serverless wiring"""

import importlib
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from starlette.testclient import TestClient

from nuvemflow.app import (
    AppServices,
    _shutdown,
    _startup,
    build_services,
    create_serverless_app,
    main,
)
from nuvemflow.config import AppConfig


def _settings(**overrides) -> AppConfig:
    values = {"store_id": "123456", "nuvemshop_token": "tok", "serverless": False}
    values.update(overrides)
    return AppConfig(_env_file=None, **values)


@pytest.fixture
def mock_services():
    services = AppServices(
        client=MagicMock(),
        store=MagicMock(),
        refresh_scheduler=MagicMock(),
        scheduler=MagicMock(),
    )
    services.client.close = AsyncMock()
    services.scheduler.running = False
    return services


class TestStartup:
    """Test what the lifespan starts for each deployment mode"""

    def test_startup_starts_refresh_when_enabled(self, mock_services):
        """Test that the scheduler and refresh timer start on server startup"""
        _startup(mock_services, _settings())

        mock_services.store.initialize.assert_called_once()
        mock_services.scheduler.start.assert_called_once()
        mock_services.refresh_scheduler.start.assert_called_once()

    def test_startup_reuses_running_scheduler(self, mock_services):
        mock_services.scheduler.running = True

        _startup(mock_services, _settings())

        mock_services.scheduler.start.assert_not_called()
        mock_services.refresh_scheduler.start.assert_called_once()

    def test_startup_skips_refresh_when_disabled(self, mock_services):
        """Test that refresh is not started when disabled in config"""
        _startup(mock_services, _settings(refresh_enabled=False))

        mock_services.store.initialize.assert_called_once()
        mock_services.scheduler.start.assert_not_called()
        mock_services.refresh_scheduler.start.assert_not_called()

    def test_startup_skips_refresh_when_serverless(self, mock_services):
        """Test that serverless deployments never run a background timer"""
        _startup(mock_services, _settings(serverless=True))

        mock_services.refresh_scheduler.start.assert_not_called()

    def test_startup_handles_firestore_errors_gracefully(self, mock_services):
        """Test that server startup continues if Firestore cannot be initialized"""
        mock_services.store.initialize.side_effect = Exception("bad credentials")

        _startup(mock_services, _settings())

        mock_services.refresh_scheduler.start.assert_called_once()

    def test_startup_handles_scheduler_errors_gracefully(self, mock_services):
        mock_services.scheduler.start.side_effect = Exception("Scheduler failed")

        try:
            _startup(mock_services, _settings())
        except Exception:
            pytest.fail("Startup should not raise exception on refresh init failure")


class TestShutdown:
    """Test that shutdown releases every resource"""

    @pytest.mark.asyncio
    async def test_shutdown_stops_refresh_and_scheduler(self, mock_services):
        mock_services.scheduler.running = True

        await _shutdown(mock_services)

        mock_services.refresh_scheduler.stop.assert_called_once()
        mock_services.scheduler.shutdown.assert_called_once_with(wait=False)
        mock_services.client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_shutdown_skips_stopped_scheduler(self, mock_services):
        await _shutdown(mock_services)

        mock_services.scheduler.shutdown.assert_not_called()

    @pytest.mark.asyncio
    async def test_shutdown_handles_stop_errors_gracefully(self, mock_services):
        """Test that shutdown continues even if a step fails"""
        mock_services.scheduler.running = True
        mock_services.refresh_scheduler.stop.side_effect = Exception("Stop failed")
        mock_services.scheduler.shutdown.side_effect = Exception("Shutdown failed")

        await _shutdown(mock_services)

        mock_services.client.close.assert_awaited_once()


class TestServerlessApp:
    """Test the application used by serverless deployments"""

    def test_serverless_app_initializes_store_eagerly(self, mock_services):
        with patch("nuvemflow.app.build_services", return_value=mock_services):
            app = create_serverless_app(_settings())

        assert app.state.settings.serverless is True
        mock_services.store.initialize.assert_called()

        with TestClient(app):
            pass
        mock_services.refresh_scheduler.start.assert_not_called()

    def test_serverless_app_reports_initialization_error(self):
        """Test that a failed build still answers every request with JSON"""
        with patch("nuvemflow.app.create_app", side_effect=RuntimeError("missing module")):
            app = create_serverless_app(_settings())

        client = TestClient(app)
        for method, path in [
            ("GET", "/health"),
            ("POST", "/api/refresh"),
            ("OPTIONS", "/api/orders"),
        ]:
            response = client.request(method, path)

            assert response.status_code == 500
            assert response.json() == {
                "success": False,
                "error": "Server initialization error",
                "message": "missing module",
            }

        assert client.head("/health").status_code == 500

    def test_serverless_entry_survives_invalid_environment(self, monkeypatch):
        """Test that a configuration error while importing the app still yields JSON"""
        monkeypatch.setenv("PORT", "not-a-port")
        for module in ("nuvemflow.app", "nuvemflow.config", "api.index"):
            monkeypatch.delitem(sys.modules, module, raising=False)

        entry = importlib.import_module("api.index")

        response = TestClient(entry.app).get("/api/status")
        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Server initialization error"
        assert "port" in body["message"]


class TestBuildServices:
    """Test that services are built from the settings they are given"""

    @patch("nuvemflow.app.get_telemetry_service")
    def test_services_use_given_settings(self, mock_telemetry):
        settings = _settings(
            nuvemshop_api_url="https://api.example.test/v1",
            nuvemshop_user_agent="orders-mirror (ops@example.test)",
            nuvemshop_page_size=25,
            nuvemshop_max_pages=3,
            firebase_service_account_key='{"project_id": "other"}',
            firestore_orders_collection="pedidos",
            refresh_interval_minutes=10,
        )

        services = build_services(settings)

        client = services.client
        assert client.store_id == "123456"
        assert client.api_url == "https://api.example.test/v1"
        assert client.page_size == 25
        assert client.max_pages == 3
        assert client.client.headers["User-Agent"] == "orders-mirror (ops@example.test)"
        assert services.store.settings is settings
        assert services.store.collection == "pedidos"
        assert services.refresh_scheduler.interval_seconds == 600


class TestMain:
    """Test the server entry point"""

    @patch("nuvemflow.app.uvicorn")
    @patch("nuvemflow.app.validate_environment", return_value=False)
    @patch("nuvemflow.app.setup_logging")
    @patch("nuvemflow.app.load_dotenv")
    def test_exits_when_environment_is_invalid(
        self, mock_dotenv, mock_logging, mock_validate, mock_uvicorn
    ):
        assert main() == 1
        mock_uvicorn.run.assert_not_called()

    @patch("nuvemflow.app.uvicorn")
    @patch("nuvemflow.app.create_app")
    @patch("nuvemflow.app.validate_environment", return_value=True)
    @patch("nuvemflow.app.setup_logging")
    @patch("nuvemflow.app.load_dotenv")
    def test_runs_server(
        self, mock_dotenv, mock_logging, mock_validate, mock_create_app, mock_uvicorn
    ):
        assert main() == 0

        mock_uvicorn.run.assert_called_once()
        assert mock_uvicorn.run.call_args.args[0] is mock_create_app.return_value
