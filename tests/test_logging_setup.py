import logging

import orjson

from nftwatch.logging_setup import JsonFormatter
from nftwatch.types import Category


def test_extra_fields_serialized():
    record = logging.LogRecord("nftwatch.pollers", logging.INFO, __file__, 1, "sales_alert_sent", None, None)
    record.category = Category.SALES.value
    record.contracts = frozenset({"0xabc"})
    record.when = object()

    entry = orjson.loads(JsonFormatter().format(record))

    assert entry["message"] == "sales_alert_sent"
    assert entry["level"] == "INFO"
    assert entry["category"] == "sales"
    assert entry["contracts"] == ["0xabc"]
    assert isinstance(entry["when"], str)
