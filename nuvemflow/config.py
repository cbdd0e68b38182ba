"""Centralized configuration using Pydantic BaseSettings"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """Application configuration with environment variable support"""

    # Server
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("environment", "node_env"),
        description="Deployment environment (development, production, ...)",
    )
    host: str = Field(default="0.0.0.0", description="HTTP server bind address")
    port: int = Field(default=4000, ge=1, le=65535, description="HTTP server port")
    log_level: str = Field(default="INFO", description="Root log level")
    cors_enabled: bool = Field(default=True, description="Enable CORS for the frontend")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"], description="Allowed CORS origins"
    )
    serverless: bool = Field(
        default=False,
        validation_alias=AliasChoices("serverless", "vercel"),
        description="Running as a serverless function (no background refresh)",
    )

    # Nuvemshop (upstream order API)
    store_id: str | None = Field(default=None, description="Nuvemshop store id")
    nuvemshop_token: str | None = Field(default=None, description="Nuvemshop access token")
    nuvemshop_api_url: str = Field(
        default="https://api.nuvemshop.com.br/v1", description="Nuvemshop REST API base URL"
    )
    nuvemshop_user_agent: str = Field(
        default="nuvemflow (support@nuvemflow.app)",
        description="User-Agent sent to Nuvemshop (app name and contact are required)",
    )
    nuvemshop_timeout: float = Field(
        default=30.0, ge=1, le=300, description="Upstream HTTP timeout in seconds"
    )
    nuvemshop_page_size: int = Field(
        default=200, ge=1, le=200, description="Orders requested per page"
    )
    nuvemshop_max_pages: int = Field(
        default=50, ge=1, le=1000, description="Upper bound on pages fetched per refresh"
    )
    nuvemshop_client_id: str | None = Field(default=None, description="Nuvemshop app id")
    nuvemshop_client_secret: str | None = Field(
        default=None, description="Nuvemshop app client secret"
    )
    nuvemshop_auth_url: str = Field(
        default="https://www.tiendanube.com/apps/authorize/token",
        description="OAuth token endpoint",
    )
    nuvemshop_install_url: str = Field(
        default="https://www.nuvemshop.com.br/apps/{client_id}/authorize",
        description="App authorization page, formatted with the client id",
    )

    # Firestore
    firebase_service_account_path: str = Field(
        default="./serviceAccountKey.json", description="Service account JSON file path"
    )
    firebase_service_account_key: str | None = Field(
        default=None, description="Inline service account JSON (takes precedence over the file)"
    )
    firestore_orders_collection: str = Field(
        default="orders", description="Collection holding mirrored orders"
    )

    # Background refresh
    refresh_enabled: bool = Field(default=True, description="Enable periodic order refresh")
    refresh_interval_minutes: int = Field(
        default=5, ge=1, le=1440, description="Minutes between refresh cycles"
    )

    # OpenTelemetry
    otel_logging_enabled: bool = Field(
        default=False, description="Emit refresh cycles as OpenTelemetry log records"
    )
    otel_tracing_enabled: bool = Field(
        default=False, description="Enable OpenTelemetry tracing for upstream HTTP requests"
    )
    otel_endpoint: str = Field(
        default="http://localhost:4318",
        description="OpenTelemetry collector endpoint (HTTP/protobuf)",
    )
    otel_service_name: str = Field(default="nuvemflow", description="Service name for OTel")
    otel_service_version: str = Field(default="1.0.0", description="Service version for OTel")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def is_development(self) -> bool:
        """Whether error details may be exposed to clients"""
        return self.environment == "development" or self.serverless


# Global config instance
config = AppConfig()
