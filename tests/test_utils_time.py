from datetime import datetime, timezone

import pytest

from nftwatch.utils_time import parse_timestamp


def test_unix_seconds():
    assert parse_timestamp(1_700_000_000) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


def test_iso_z_string():
    assert parse_timestamp("2024-01-27T12:00:00.000Z") == datetime(2024, 1, 27, 12, tzinfo=timezone.utc)


@pytest.mark.parametrize("value", [1_700_000_000_000, 10**20, float("nan"), "not a date", None, ""])
def test_unusable_values_give_none(value):
    assert parse_timestamp(value) is None
