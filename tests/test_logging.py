from __future__ import annotations

import json
import logging

from docchat.logging_config import AUDIT_LOGGER_NAME, MinimalJSONFormatter, configure_logging
from docchat.telemetry import log_event, traced_duration


def make_record(msg, **extra) -> logging.LogRecord:
    record = logging.LogRecord("docchat.test", logging.INFO, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_merges_dict_messages() -> None:
    payload = json.loads(MinimalJSONFormatter().format(make_record({"step": "ingest.fetch", "document_id": "d1"})))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "docchat.test"
    assert payload["step"] == "ingest.fetch"
    assert payload["document_id"] == "d1"
    assert payload["ts"].endswith("Z")
    assert "message" not in payload


def test_formatter_keeps_plain_messages_and_extras() -> None:
    payload = json.loads(MinimalJSONFormatter().format(make_record("hello", scope_id="product-a")))

    assert payload["message"] == "hello"
    assert payload["scope_id"] == "product-a"


def test_log_event_builds_structured_payload(caplog) -> None:
    logger = logging.getLogger("docchat.test.events")

    with caplog.at_level(logging.INFO, logger="docchat.test.events"):
        log_event(logger, "retriever.search", scope_id="product-a", duration_ms=1.23456, details={"hits": 2})

    [record] = caplog.records
    assert record.msg == {
        "step": "retriever.search",
        "module": "docchat.test.events",
        "scope_id": "product-a",
        "duration_ms": 1.235,
        "details": {"hits": 2},
    }


def test_traced_duration_logs_errors(caplog) -> None:
    logger = logging.getLogger("docchat.test.trace")

    with caplog.at_level(logging.INFO, logger="docchat.test.trace"):
        try:
            with traced_duration("ingest.fetch", logger=logger, document_id="d1"):
                raise OSError("unreadable")
        except OSError:
            pass

    steps = [record.msg["step"] for record in caplog.records]
    assert steps == ["ingest.fetch.start", "ingest.fetch.failed"]
    assert caplog.records[1].levelname == "ERROR"
    assert "unreadable" in caplog.records[1].msg["exc"]
    assert caplog.records[1].msg["details"] == {"document_id": "d1"}


def test_configure_logging_writes_audit_file(tmp_path) -> None:
    configure_logging(tmp_path / "logs", "INFO")

    logging.getLogger(AUDIT_LOGGER_NAME).info({"event": "ingest_document", "status": "completed"})
    for handler in logging.getLogger(AUDIT_LOGGER_NAME).handlers:
        handler.flush()

    line = (tmp_path / "logs" / "ingest_audit.log").read_text(encoding="utf-8").strip().splitlines()[-1]
    assert json.loads(line)["status"] == "completed"
