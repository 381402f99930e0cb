"""Structured logging for high-visibility events.

Example:
    from crm_observability.modules.observability.logging import get_logger

    channel = get_logger("alerts")
    channel.critical("CRITICAL ALERT: Memory usage is critically high", value=93.1)

    # Output: {"timestamp": "2026-10-19T08:00:00+00:00", "level": "CRITICAL",
    #          "service": "crm", "component": "alerts", "message": "...", "value": 93.1}
"""

from .structured_logger import LogEntry, LogLevel, StructuredLogger, get_logger

__all__ = [
    "LogEntry",
    "LogLevel",
    "StructuredLogger",
    "get_logger",
]
