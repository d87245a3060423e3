import json
import logging

from omnipos.core.logging_config import (
    CredentialFilter,
    StructuredFormatter,
    correlation_id_var,
    request_id_var,
    set_request_context,
)


def make_record(msg, **extra):
    record = logging.LogRecord("omnipos.test", logging.INFO, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_ledger_fields_are_promoted():
    formatter = StructuredFormatter("omnipos-ledger", "1.0.0", "test")
    record = make_record("Order 7 committed", extra_fields={"order_id": 7, "customer_id": 3, "line_count": 2})

    doc = json.loads(formatter.format(record))

    assert doc["service"] == "omnipos-ledger"
    assert doc["ledger"] == {"order_id": 7, "customer_id": 3}
    assert doc["custom"] == {"line_count": 2}


def test_request_context_is_attached():
    formatter = StructuredFormatter("omnipos-ledger", "1.0.0", "test")
    set_request_context("req-1")
    try:
        doc = json.loads(formatter.format(make_record("hello")))
    finally:
        request_id_var.set(None)
        correlation_id_var.set(None)

    assert doc["trace"] == {"request_id": "req-1", "correlation_id": "req-1"}


def test_database_password_is_masked():
    record = make_record("could not connect to postgresql+psycopg2://omnipos:hunter2@db:5432/omnipos")

    CredentialFilter().filter(record)

    assert "hunter2" not in record.msg
    assert "omnipos:***@db" in record.msg
