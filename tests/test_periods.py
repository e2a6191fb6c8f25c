from datetime import datetime, timedelta, timezone

import pytest

from dreamcatcher.utils.periods import (
    DAY,
    MONTH,
    ensure_utc,
    from_epoch_millis,
    from_epoch_seconds,
    get_periods,
    period_key,
)


def test_period_keys_are_utc_month_and_day():
    now = datetime(2026, 3, 5, 23, 59, tzinfo=timezone.utc)
    assert get_periods(now) == {MONTH: "2026-03", DAY: "2026-03-05"}


def test_non_utc_time_is_converted_before_keying():
    # 01:00 at UTC+2 on March 1st is still February 28th in UTC
    now = datetime(2026, 3, 1, 1, 0, tzinfo=timezone(timedelta(hours=2)))
    assert period_key(MONTH, now) == "2026-02"
    assert period_key(DAY, now) == "2026-02-28"


def test_naive_datetime_is_treated_as_utc():
    naive = datetime(2026, 1, 31, 12, 0)
    assert ensure_utc(naive) == datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc)
    assert period_key(DAY, naive) == "2026-01-31"


def test_unknown_granularity_raises():
    with pytest.raises(ValueError):
        period_key("week")


def test_epoch_conversions():
    assert from_epoch_seconds(None) is None
    assert from_epoch_seconds(0) is None
    assert from_epoch_seconds(1767225600) == datetime(2026, 1, 1, tzinfo=timezone.utc)

    assert from_epoch_millis("1767225600000") == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert from_epoch_millis("0") is None
    assert from_epoch_millis(None) is None
    assert from_epoch_millis("not-a-number") is None
