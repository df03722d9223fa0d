"""
Structured JSON logging configuration (Monolog-style).

Provides structured logging with channels (http, db, registry, notify, ai,
auth, console), request ID tracking, and context-rich log entries. All log
output is valid JSON written to stdout for container log aggregation.
"""

import logging
import json
import os
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

# Each incoming HTTP request gets a unique UUID, attached to every log entry
# produced while that request is being handled.
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Operator behind the current admin request; empty for public traffic
admin_id_var: ContextVar[str] = ContextVar("admin_id", default="")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CHANNELS = ["http", "db", "registry", "notify", "ai", "auth", "console"]


class StructuredJsonFormatter(logging.Formatter):
    """
    Logging formatter that outputs Monolog-style JSON log entries.

    Each log line is a single JSON object containing:
    - timestamp: ISO 8601 timestamp in UTC
    - level: Log severity (INFO, WARNING, ERROR, DEBUG)
    - message: Human-readable log message
    - channel: Log source category (http, db, registry, notify, ...)
    - context: Business context (request_id, admin_id, trainer_id, etc.)
    - extra: Additional metadata (ip, duration_ms, etc.)
    - exception: Formatted traceback, only when one was attached
    """

    def format(self, record: logging.LogRecord) -> str:
        context = {"request_id": request_id_var.get("")}
        if admin_id_var.get(""):
            context["admin_id"] = admin_id_var.get("")
        context.update(getattr(record, "context", {}) or {})

        log_entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", record.name.split(".")[-1] if "." in record.name else "app"),
            "context": context,
            "extra": getattr(record, "extra_data", {}) or {}
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging():
    """
    Configure the root logger and all channel-specific loggers.

    All output goes to stdout through a single JSON handler on the root
    logger; channel loggers only carry distinct names and levels.
    """
    formatter = StructuredJsonFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    root_logger.handlers = [handler]

    for channel in CHANNELS:
        logger = logging.getLogger(f"registry.{channel}")
        logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    return root_logger


def get_logger(channel: str) -> logging.Logger:
    """
    Get a channel-specific logger.

    Args:
        channel: Log channel name (http, db, registry, notify, ai, auth, console)

    Returns:
        Logger instance for the specified channel
    """
    return logging.getLogger(f"registry.{channel}")


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None, exc_info: bool = False):
    """
    Emit a structured log entry with business context and extra metadata.

    This is the primary logging function used throughout the application.

    Args:
        logger: The channel logger to use
        level: Log level string (INFO, WARNING, ERROR, DEBUG)
        message: Human-readable log message
        context: Business context dict (trainer_id, certification_id, log_id)
        extra_data: Additional metadata dict (ip, duration_ms, query_params)
        exc_info: Attach the exception currently being handled
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.log(
        log_level,
        message,
        exc_info=exc_info,
        extra={"context": context or {}, "extra_data": extra_data or {}, "channel": logger.name.split(".")[-1]}
    )


def generate_request_id() -> str:
    """Generate a new UUID for request tracking."""
    return str(uuid.uuid4())
