"""
Structured logging for the Registro API and CLI.

Standard library logging, JSON lines in production and colored text in
development. Keyword arguments passed to a logger call become structured
fields on the record:

    logger.info("Record updated", table="legajos", match_field="Legajo", key=2)

Field vocabulary used across the service:

    table          dynamic table the operation touched
    field          column named by a search or criterion
    match_field    column of an update/delete criterion
    key            primary key value of the affected row
    action         audit action (CREATE, UPDATE, DELETE)
    entry_id       audit_log row id
    actor          principal email, always passed through mask_email()
    operation      store operation that failed ("lectura de registros", ...)
    request_id     X-Request-ID, added by CorrelationIdFilter

The JSON formatter lifts table, action and request_id to top-level keys so
log queries can filter on them without unpacking "data".
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings

# Structured fields promoted to top-level keys in JSON output
TOP_LEVEL_FIELDS = ("table", "action")


def _request_id(record: logging.LogRecord) -> str | None:
    request_id = getattr(record, "request_id", None)
    return request_id if request_id and request_id != "-" else None


def _fields(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "extra_data", None) or {}


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: level, logger, message, context and data."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = _request_id(record)
        if request_id:
            entry["request_id"] = request_id

        data = dict(_fields(record))
        for name in TOP_LEVEL_FIELDS:
            if name in data:
                entry[name] = data.pop(name)
        if data:
            entry["data"] = data

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if settings.debug:
            entry["source"] = f"{record.filename}:{record.lineno}"

        return json.dumps(entry, default=str, ensure_ascii=False)


class DevelopmentFormatter(logging.Formatter):
    """Colored single-line output; table and action lead the message."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        parts = [f"{color}[{timestamp}] {record.levelname:8}{self.RESET}"]
        request_id = _request_id(record)
        if request_id:
            parts.append(f"{self.DIM}[{request_id[:8]}]{self.RESET}")

        data = dict(_fields(record))
        scope = "/".join(str(data.pop(name)) for name in TOP_LEVEL_FIELDS if name in data)
        parts.append(f"{record.name}{' ' + scope if scope else ''}: {record.getMessage()}")

        message = " ".join(parts)
        if data:
            message += " (" + " | ".join(f"{k}={v}" for k, v in data.items()) + ")"
        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"
        return message


class StructuredLogger(logging.Logger):
    """
    Logger whose keyword arguments become the record's structured fields.

    exc_info and extra keep their standard meaning; every other keyword is
    collected into record.extra_data.
    """

    def _log_with_data(
        self,
        level: int,
        msg: str,
        args: tuple,
        exc_info: Any = None,
        extra: dict | None = None,
        **fields: Any,
    ) -> None:
        if not self.isEnabledFor(level):
            return
        extra = dict(extra or {})
        extra["extra_data"] = fields or None
        super()._log(level, msg, args, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log_with_data(logging.DEBUG, msg, args, **fields)

    def info(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log_with_data(logging.INFO, msg, args, **fields)

    def warning(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log_with_data(logging.WARNING, msg, args, **fields)

    def error(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log_with_data(logging.ERROR, msg, args, **fields)

    def critical(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log_with_data(logging.CRITICAL, msg, args, **fields)


logging.setLoggerClass(StructuredLogger)


def setup_logging() -> None:
    """
    Install the stdout handler on the root logger. Called once by the
    FastAPI lifespan and by the CLI.
    """
    # Deferred: correlation imports this module for its logger
    from shared.infrastructure.correlation import CorrelationIdFilter

    log_level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(
        StructuredFormatter() if settings.environment == "production" else DevelopmentFormatter()
    )

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()
    root.addHandler(handler)

    # Statements are logged by the executor with table context; the engine echo is noise
    for name, level in (
        ("uvicorn.access", logging.WARNING),
        ("uvicorn.error", logging.INFO),
        ("sqlalchemy.engine", logging.WARNING),
        ("sqlalchemy.pool", logging.WARNING),
        ("httpx", logging.WARNING),
        ("httpcore", logging.WARNING),
    ):
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> StructuredLogger:
    """
    Logger for a module:

        logger = get_logger(__name__)
        logger.warning("Entity table missing, skipping enrichment", table="legajos", entity="cooperativas")
    """
    return logging.getLogger(name)  # type: ignore


def mask_email(email: str | None) -> str:
    """
    Actor email for log lines: "editor@coop.org.ar" -> "ed***@coop.org.ar".

    The audit_log row keeps the full address; logs only get the masked one.
    """
    if not email:
        return "<no-email>"

    local, sep, domain = email.partition("@")
    if not sep or not local:
        return "***@invalid"
    return f"{local[:2]}***@{domain}"


registro_logger = get_logger("registro_api")
audit_logger = get_logger("registro_api.audit")
