"""JSON log output for the service and the ingestion audit trail."""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

AUDIT_LOGGER_NAME = "docchat.ingest.audit"
AUDIT_LOG_FILENAME = "ingest_audit.log"

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


def _utc_timestamp(created: float) -> str:
    return datetime.fromtimestamp(created, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class MinimalJSONFormatter(logging.Formatter):
    """Render a record as one JSON object per line.

    Dict messages are merged into the top level, so telemetry events keep
    their keys; other messages go under ``"message"``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": _utc_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
        }
        if isinstance(record.msg, dict):
            payload.update(record.msg)
        elif record.getMessage():
            payload["message"] = record.getMessage()

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
        )
        return json.dumps(payload, ensure_ascii=False, default=str)


def _logging_config(log_dir: Path, level: str) -> dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"json": {"()": MinimalJSONFormatter}},
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "json"},
            "audit_file": {
                "class": "logging.FileHandler",
                "filename": str(log_dir / AUDIT_LOG_FILENAME),
                "encoding": "utf-8",
                "formatter": "json",
            },
        },
        "root": {"level": level.upper(), "handlers": ["console"]},
        "loggers": {
            AUDIT_LOGGER_NAME: {"level": "INFO", "handlers": ["audit_file"], "propagate": False},
        },
    }


def configure_logging(log_dir: str | Path = "logs", level: str = "INFO") -> None:
    """Send JSON logs to stderr and ingestion audit records to ``<log_dir>/ingest_audit.log``."""

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(_logging_config(log_dir, level))


__all__ = ["AUDIT_LOGGER_NAME", "AUDIT_LOG_FILENAME", "MinimalJSONFormatter", "configure_logging"]
