"""OpenTelemetry logging and tracing for refresh cycles and upstream calls"""

import logging
from datetime import datetime, timezone

from opentelemetry import trace
from opentelemetry._logs import SeverityNumber, set_logger_provider
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from nuvemflow.config import config
from nuvemflow.models.refresh_status import RefreshResult

logger = logging.getLogger(__name__)


def _resource() -> Resource:
    return Resource(
        attributes={
            SERVICE_NAME: config.otel_service_name,
            SERVICE_VERSION: config.otel_service_version,
        }
    )


def _signal_endpoint(path: str) -> str:
    endpoint = config.otel_endpoint
    if not endpoint.endswith(path):
        endpoint = f"{endpoint.rstrip('/')}{path}"
    return endpoint


class TelemetryService:
    """Handle OpenTelemetry logging and tracing for refresh cycles"""

    def __init__(self):
        self.logging_enabled = config.otel_logging_enabled
        self.tracing_enabled = config.otel_tracing_enabled
        self.logger_provider = None
        self.tracer_provider = None
        self.otel_logger = None

        if self.logging_enabled:
            try:
                self._initialize_logging()
            except Exception as e:
                logger.warning(f"Failed to initialize OTel logging: {e}. Logging disabled.")
                self.logging_enabled = False

        if self.tracing_enabled:
            try:
                self._initialize_tracing()
            except Exception as e:
                logger.warning(f"Failed to initialize OTel tracing: {e}. Tracing disabled.")
                self.tracing_enabled = False

    def _initialize_logging(self) -> None:
        """Initialize OpenTelemetry logging with OTLP log exporter"""
        self.logger_provider = LoggerProvider(resource=_resource())

        log_endpoint = _signal_endpoint("/v1/logs")
        self.logger_provider.add_log_record_processor(
            BatchLogRecordProcessor(OTLPLogExporter(endpoint=log_endpoint))
        )
        set_logger_provider(self.logger_provider)
        self.otel_logger = self.logger_provider.get_logger(__name__)

        logger.info(f"OpenTelemetry logging initialized with endpoint: {log_endpoint}")

    def _initialize_tracing(self) -> None:
        """Initialize OpenTelemetry tracing with OTLP trace exporter"""
        self.tracer_provider = TracerProvider(resource=_resource())

        trace_endpoint = _signal_endpoint("/v1/traces")
        self.tracer_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=trace_endpoint))
        )
        trace.set_tracer_provider(self.tracer_provider)

        logger.info(f"OpenTelemetry tracing initialized with endpoint: {trace_endpoint}")

    def log_refresh(self, result: RefreshResult) -> None:
        """
        Emit a refresh cycle outcome as an OpenTelemetry log record

        Args:
            result: Outcome of the cycle
        """
        if not self.logging_enabled or not self.otel_logger:
            return

        try:
            # Low-cardinality attributes only; error text is bounded below
            attributes: dict[str, str | int | float | bool] = {
                "refresh.trigger": result.trigger,
                "refresh.success": result.success,
                "refresh.duration_seconds": result.duration_seconds,
                "refresh.orders_fetched": result.orders_fetched,
                "refresh.orders_written": result.orders_written,
                "refresh.orders_failed": result.orders_failed,
            }

            body_parts = [f"[refresh:{result.trigger}]"]
            if result.success:
                body_parts.append("SUCCESS")
            else:
                body_parts.append("FAILED")
            body_parts.append(
                f"written={result.orders_written}/{result.orders_fetched} "
                f"time={result.duration_seconds:.2f}s"
            )

            if result.error:
                error_message = result.error
                if len(error_message) > 500:
                    error_message = error_message[:500] + "..."
                attributes["error.message"] = error_message

            self.otel_logger.emit(
                body=" ".join(body_parts),
                severity_number=SeverityNumber.INFO if result.success else SeverityNumber.ERROR,
                attributes=attributes,
                timestamp=int(datetime.now(timezone.utc).timestamp() * 1e9),
            )

        except Exception as e:
            # Don't let telemetry errors break the refresh
            logger.warning(f"Failed to log telemetry: {e}")


# Global telemetry service instance
_telemetry_service: TelemetryService | None = None
_instrumentation_initialized = False


def _ensure_instrumentation_initialized() -> None:
    """Instrument httpx before the upstream client is created"""
    global _instrumentation_initialized
    if not _instrumentation_initialized and config.otel_tracing_enabled:
        try:
            HTTPXClientInstrumentor().instrument()
            _instrumentation_initialized = True
            logger.info("HTTP request tracing instrumentation initialized")
        except Exception as e:
            logger.warning(f"Failed to initialize HTTP tracing instrumentation: {e}")


def get_telemetry_service() -> TelemetryService:
    """Get or create the global telemetry service instance"""
    global _telemetry_service
    _ensure_instrumentation_initialized()
    if _telemetry_service is None:
        _telemetry_service = TelemetryService()
    return _telemetry_service
