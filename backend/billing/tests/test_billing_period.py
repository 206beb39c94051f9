from datetime import datetime, timezone as dt_timezone
from unittest import mock

import pytest

from billing.services.charges import (
    BillingPeriod,
    InvalidBillingPeriodError,
    default_due_date,
    get_billing_key,
    parse_datetime_utc,
    resolve_billing_period,
)

UTC = dt_timezone.utc


@pytest.mark.parametrize(
    "value,expected",
    [
        ("2026-03", (2026, 3)),
        ("2026-03-15", (2026, 3)),
        ("2026-03-15T10:00:00Z", (2026, 3)),
        ("2026-12-31T23:59:59.999Z", (2026, 12)),
        # Local times near midnight land in the neighbouring month once converted to UTC.
        ("2026-03-01T01:00:00+03:00", (2026, 2)),
        ("2026-02-28T22:30:00-03:00", (2026, 3)),
        (datetime(2025, 7, 4, 12, 0, tzinfo=UTC), (2025, 7)),
    ],
)
def test_resolve_billing_period_uses_utc_month(value, expected):
    period = resolve_billing_period(value)
    assert (period.year, period.month) == expected


def test_resolve_billing_period_defaults_to_current_utc_month():
    fixed_now = datetime(2026, 10, 18, 9, 30, tzinfo=UTC)
    with mock.patch("billing.services.charges.timezone.now", return_value=fixed_now):
        period = resolve_billing_period()
    assert period == BillingPeriod(2026, 10)


@pytest.mark.parametrize("value", ["2026-13", "2026-00", "not-a-date", "03/2026"])
def test_resolve_billing_period_rejects_garbage(value):
    with pytest.raises(InvalidBillingPeriodError):
        resolve_billing_period(value)


def test_period_bounds_cover_whole_month():
    period = BillingPeriod(2026, 4)
    assert period.start == datetime(2026, 4, 1, 0, 0, 0, tzinfo=UTC)
    assert period.end == datetime(2026, 4, 30, 23, 59, 59, 999000, tzinfo=UTC)
    assert period.key == "2026-04"


def test_default_due_date_handles_leap_years():
    assert default_due_date(BillingPeriod(2024, 2)) == datetime(2024, 2, 29, 23, 59, 59, 999000, tzinfo=UTC)
    assert default_due_date(BillingPeriod(2025, 2)) == datetime(2025, 2, 28, 23, 59, 59, 999000, tzinfo=UTC)


def test_default_due_date_in_december():
    assert default_due_date(BillingPeriod(2026, 12)) == datetime(2026, 12, 31, 23, 59, 59, 999000, tzinfo=UTC)


def test_parse_datetime_utc_treats_naive_values_as_utc():
    assert parse_datetime_utc("2026-05-10T08:00:00") == datetime(2026, 5, 10, 8, 0, tzinfo=UTC)


def test_billing_key_is_deterministic():
    tenant_id = "ckv1q2w3e4r5t6y7u8i9o0p1a"
    assert get_billing_key(tenant_id, BillingPeriod(2026, 1)) == f"generate-{tenant_id}-2026-01"
    assert get_billing_key(tenant_id, resolve_billing_period("2026-01-31T10:00:00Z")) == f"generate-{tenant_id}-2026-01"
