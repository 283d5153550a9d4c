import math

from xctimeline.timestamps import (
    REFERENCE_DATE_OFFSET,
    coerce_timestamp,
    identity_timestamp,
    normalize_timestamp,
)


def test_reference_date_values_are_shifted_to_unix_epoch() -> None:
    assert normalize_timestamp(10.0) == 10.0 + REFERENCE_DATE_OFFSET
    assert normalize_timestamp(999_999_999.0) == 999_999_999.0 + REFERENCE_DATE_OFFSET


def test_unix_values_and_non_positive_values_pass_through() -> None:
    for value in (1_000_000_000.0, 1_700_000_000.25, 0.0, -5.0):
        assert normalize_timestamp(value) == value


def test_normalization_is_idempotent_on_unix_values() -> None:
    for raw in (1.0, 123_456.5, 978_307_200.0, 1_700_000_000.0):
        once = normalize_timestamp(raw)
        if once >= 1_000_000_000:
            assert normalize_timestamp(once) == once


def test_missing_and_unparsable_values_become_none() -> None:
    assert normalize_timestamp(None) is None
    assert normalize_timestamp("not a time") is None
    assert normalize_timestamp(float("nan")) is None
    assert normalize_timestamp(float("inf")) is None
    assert normalize_timestamp(True) is None
    assert normalize_timestamp([1.0]) is None


def test_numeric_strings_are_accepted() -> None:
    assert normalize_timestamp(" 1700000000.5 ") == 1_700_000_000.5
    assert coerce_timestamp("12") == 12.0
    assert identity_timestamp(10) == 10.0
    assert not math.isnan(identity_timestamp("3.5"))
