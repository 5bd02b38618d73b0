import structlog
import logging
import sys
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import os

# Context variables copied onto every log entry when bound
PROPAGATED_CONTEXT_KEYS = (
    "service",
    "environment",
    "trace_id",
    "correlation_id",
    "idempotency_key",
    "session_id",
)


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "context-service"
) -> None:
    """Setup structured logging configuration"""

    # Configure Python logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO)
    )

    # Processors for structlog
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_service_context,
    ]

    # Add appropriate renderer based on format
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    # Configure structlog
    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Set service name in context
    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("ENVIRONMENT", "development"),
        version=os.getenv("SERVICE_VERSION", "unknown")
    )


def add_service_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add service and envelope identifiers to all log entries"""

    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()

    bound = structlog.contextvars.get_contextvars()
    for key in PROPAGATED_CONTEXT_KEYS:
        value = bound.get(key)
        if value and key not in event_dict:
            event_dict[key] = value

    return event_dict


class ContextLogger:
    """Specialized logger for context operations"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_context_mutation(
        self,
        action: str,
        context_id: str,
        version: Optional[int] = None,
        **kwargs
    ):
        """Log a successful create/update/delete"""

        self.logger.info(
            "context_mutation",
            action=action,
            context_id=context_id,
            version=version,
            **kwargs
        )

    def log_history_snapshot(
        self,
        context_id: str,
        version: int,
        history_id: Optional[str] = None,
        success: bool = True,
        error: Optional[str] = None
    ):
        """Log a history snapshot write"""

        if success:
            self.logger.info(
                "history_snapshot",
                context_id=context_id,
                version=version,
                history_id=history_id,
            )
        else:
            self.logger.error(
                "history_snapshot_failed",
                context_id=context_id,
                version=version,
                error=error,
            )

    def log_envelope(
        self,
        direction: str,
        kind: str,
        message_type: str,
        action: str,
        event_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log an inbound or outbound envelope"""

        self.logger.info(
            "envelope",
            direction=direction,
            kind=kind,
            message_type=message_type,
            action=action,
            event_name=event_name,
            details=details or {}
        )


# Global logger instance
context_logger = ContextLogger("context")


class MetricsCollector:
    """Collect and export metrics"""

    def __init__(self):
        self.metrics: Dict[str, Any] = {}

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        """Record operation latency"""

        key = f"latency.{operation}"
        if key not in self.metrics:
            self.metrics[key] = {
                "count": 0,
                "sum": 0,
                "min": float('inf'),
                "max": 0
            }

        self.metrics[key]["count"] += 1
        self.metrics[key]["sum"] += duration_ms
        self.metrics[key]["min"] = min(self.metrics[key]["min"], duration_ms)
        self.metrics[key]["max"] = max(self.metrics[key]["max"], duration_ms)

        context_logger.logger.debug(
            "metric",
            metric_type="latency",
            operation=operation,
            duration_ms=duration_ms,
            tags=tags or {}
        )

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        """Increment a counter metric"""

        if name not in self.metrics:
            self.metrics[name] = 0
        self.metrics[name] += value

        context_logger.logger.debug(
            "metric",
            metric_type="counter",
            name=name,
            value=value,
            tags=tags or {}
        )

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get summary of all metrics"""

        summary = {}
        for key, value in self.metrics.items():
            if isinstance(value, dict) and "count" in value:
                # Latency metric
                summary[key] = {
                    "count": value["count"],
                    "avg": value["sum"] / value["count"] if value["count"] > 0 else 0,
                    "min": value["min"] if value["min"] != float('inf') else 0,
                    "max": value["max"]
                }
            else:
                # Counter
                summary[key] = value

        return summary


# Global metrics collector
metrics = MetricsCollector()
