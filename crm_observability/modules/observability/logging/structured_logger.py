"""JSON-lines logger used as the high-visibility channel for critical events."""

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, TextIO

from pydantic import Field

from crm_observability.types import ConfiguredBaseModel


class LogLevel(str, Enum):
    """Severity of a structured entry."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogEntry(ConfiguredBaseModel):
    """One line of structured output.

    Attributes:
        timestamp: UTC time the entry was written (ISO 8601)
        level: Severity
        service: Emitting service (default: crm)
        component: Emitting part of the engine (e.g., alerts, reports)
        message: Operator-facing text
        alert_id: Alert the entry refers to, for correlation with the alert list
        extra: Metadata written as top-level keys of the JSON line
    """

    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    level: LogLevel
    service: str = "crm"
    component: Optional[str] = None
    message: str
    alert_id: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)

    def to_line(self) -> str:
        """Render the entry as a single JSON line (no trailing newline)."""
        payload = self.model_dump(exclude_none=True)
        payload.update(payload.pop("extra", {}))
        return json.dumps(payload, default=str)


class StructuredLogger:
    """JSON-lines channel for events that must not drown in ordinary logs.

    Entries go to ``output_stream`` (stderr unless given) and are mirrored to
    the stdlib logger ``crm_observability.<component>``.

    Example:
        channel = StructuredLogger("alerts")
        channel.critical("CRITICAL ALERT: Error rate is critically high",
                         alert_id="alert_1760860800000_k3j9x0a1b",
                         metric="error_rate", value=14, threshold=10)
    """

    def __init__(
        self,
        component: Optional[str] = None,
        service: str = "crm",
        output_stream: Optional[TextIO] = None,
    ):
        self.component = component
        self.service = service
        self.output_stream = output_stream or sys.stderr
        self._mirror = logging.getLogger(
            f"crm_observability.{component}" if component else "crm_observability"
        )

    def _write(
        self,
        level: LogLevel,
        message: str,
        alert_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        line = LogEntry(
            level=level,
            service=self.service,
            component=self.component,
            message=message,
            alert_id=alert_id,
            extra=extra,
        ).to_line()

        self.output_stream.write(f"{line}\n")
        self.output_stream.flush()
        self._mirror.log(logging.getLevelName(level.value), message)

    def info(self, message: str, alert_id: Optional[str] = None, **extra: Any) -> None:
        self._write(LogLevel.INFO, message, alert_id, **extra)

    def warning(self, message: str, alert_id: Optional[str] = None, **extra: Any) -> None:
        self._write(LogLevel.WARNING, message, alert_id, **extra)

    def error(
        self,
        message: str,
        alert_id: Optional[str] = None,
        exc_info: Optional[BaseException] = None,
        **extra: Any,
    ) -> None:
        """Write an error entry, flattening ``exc_info`` into type and message keys."""
        if exc_info is not None:
            extra.update(exception_type=type(exc_info).__name__, exception_message=str(exc_info))
        self._write(LogLevel.ERROR, message, alert_id, **extra)

    def critical(self, message: str, alert_id: Optional[str] = None, **extra: Any) -> None:
        self._write(LogLevel.CRITICAL, message, alert_id, **extra)


_channels: Dict[str, StructuredLogger] = {}


def get_logger(component: Optional[str] = None, service: str = "crm") -> StructuredLogger:
    """Return the shared channel for ``service.component``, creating it on first use."""
    key = f"{service}.{component}" if component else service
    channel = _channels.get(key)
    if channel is None:
        channel = _channels[key] = StructuredLogger(component=component, service=service)
    return channel
