"""Tests for log formatting and the audit trail of rejected reservations."""

import json
import logging
import sys
from uuid import uuid4

import pytest

from app.core.logging_config import JsonFormatter, configure_logging
from app.services.discount_errors import DiscountError
from app.services.discount_redemption_service import DiscountRedemptionService
from app.services.discount_reservation_service import DiscountReservationService


def _record(msg="hello %s", args=("world",), **extra) -> logging.LogRecord:
    record = logging.LogRecord("app.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_renders_message_and_extras(self):
        line = JsonFormatter().format(_record(reservation_id="abc", attempts=2))
        payload = json.loads(line)
        assert payload["message"] == "hello world"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "app.test"
        assert payload["reservation_id"] == "abc"
        assert payload["attempts"] == 2

    def test_non_json_values_are_stringified(self):
        payload = json.loads(JsonFormatter().format(_record(codes={"A", "B"}, obj=object())))
        assert sorted(payload["codes"]) == ["A", "B"]
        assert payload["obj"].startswith("<object object")

    def test_includes_exception(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = logging.LogRecord(
                "app.test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )
        payload = json.loads(JsonFormatter().format(record))
        assert "ValueError: bad" in payload["exception"]


def test_configure_logging_json():
    root = logging.getLogger()
    original, original_level = root.handlers[:], root.level
    try:
        configure_logging(json_logs=True, level="debug")
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
    finally:
        root.handlers = original
        root.setLevel(original_level)


def test_rejections_are_info_audit_events(caplog, db_session, make_code, now):
    make_code("SUMMER2024", is_active=False)
    caplog.set_level(logging.DEBUG, logger="app.services.discount_reservation_service")

    with pytest.raises(DiscountError):
        DiscountReservationService(db_session).reserve("SUMMER2024", "a@example.com", now=now)

    [record] = [r for r in caplog.records if "rejected" in r.getMessage()]
    assert record.levelno == logging.INFO
    assert "INACTIVE" in record.getMessage()
    assert "SUMMER2024" not in record.getMessage()
    assert "a@example.com" not in record.getMessage()


def test_redemption_rejections_split_by_kind(caplog, db_session, make_code, now):
    make_code("FULL", max_uses=1, current_uses=1)
    caplog.set_level(logging.DEBUG, logger="app.services.discount_redemption_service")
    service = DiscountRedemptionService(db_session)

    with pytest.raises(DiscountError):
        service.redeem("sub_full", customer_email="a@example.com", code="FULL", now=now)
    with pytest.raises(DiscountError):
        service.redeem("sub_missing", reservation_id=uuid4(), now=now)

    levels = {
        r.getMessage().split("reason=")[1]: r.levelno
        for r in caplog.records
        if "rejected" in r.getMessage()
    }
    assert levels == {"MAX_USES": logging.INFO, "INVALID_REQUEST": logging.WARNING}
