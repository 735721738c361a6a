"""
Unit tests for subscription period arithmetic and the loose value parsers.
"""

from datetime import datetime, timezone

from app.domain.purchase import IMAGE_LICENSES, LicenseType, parse_license_type
from app.domain.subscription import (
    BillingInterval,
    PlanType,
    Subscription,
    add_months,
    calculate_period_end,
    get_plan,
    parse_billing_interval,
    parse_plan_type,
)


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestAddMonths:

    def test_plain_month(self):
        assert add_months(_utc(2026, 3, 10, 9, 15), 1) == _utc(2026, 4, 10, 9, 15)

    def test_clamps_to_end_of_february(self):
        assert add_months(_utc(2026, 1, 31), 1) == _utc(2026, 2, 28)

    def test_clamps_to_leap_day(self):
        assert add_months(_utc(2028, 1, 31), 1) == _utc(2028, 2, 29)

    def test_leap_day_plus_year(self):
        assert add_months(_utc(2028, 2, 29), 12) == _utc(2029, 2, 28)

    def test_crosses_year_boundary(self):
        assert add_months(_utc(2026, 12, 15), 1) == _utc(2027, 1, 15)

    def test_keeps_timezone(self):
        assert add_months(_utc(2026, 5, 1), 1).tzinfo == timezone.utc


class TestCalculatePeriodEnd:

    def test_monthly(self):
        assert calculate_period_end(_utc(2026, 8, 31), BillingInterval.MONTHLY) == _utc(2026, 9, 30)

    def test_yearly(self):
        assert calculate_period_end(_utc(2026, 8, 31), BillingInterval.YEARLY) == _utc(2027, 8, 31)


class TestParsers:

    def test_plan_type_case_insensitive(self):
        assert parse_plan_type("Premium") == PlanType.PREMIUM

    def test_plan_type_default(self):
        assert parse_plan_type(None) == PlanType.STANDARD
        assert parse_plan_type("gold", default=PlanType.COMMERCIAL) == PlanType.COMMERCIAL

    def test_billing_interval_aliases(self):
        assert parse_billing_interval("year") == BillingInterval.YEARLY
        assert parse_billing_interval("annual") == BillingInterval.YEARLY
        assert parse_billing_interval("MONTH") == BillingInterval.MONTHLY
        assert parse_billing_interval("weekly") == BillingInterval.MONTHLY

    def test_license_type_falls_back_to_standard(self):
        assert parse_license_type("commercial") == LicenseType.COMMERCIAL
        assert parse_license_type("extended") == LicenseType.STANDARD


class TestCatalog:

    def test_plan_prices(self):
        premium = get_plan(PlanType.PREMIUM)
        assert premium.price_for(BillingInterval.MONTHLY) == 19.99
        assert premium.price_for(BillingInterval.YEARLY) == 199.99

    def test_license_decimal_amount(self):
        assert IMAGE_LICENSES[LicenseType.PREMIUM].decimal_amount == "15.00"

    def test_external_id_follows_owner(self):
        subscription = Subscription(user_id="u", paypal_subscription_id="I-ABC")
        assert subscription.external_id == "I-ABC"
