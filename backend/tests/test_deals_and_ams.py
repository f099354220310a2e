"""
XY CRM - Deal codes, balances & AMS scheduling
Run: cd backend && pytest tests/test_deals_and_ams.py -v
"""

from datetime import datetime, timezone

import pytest

from services.ams_schedule import add_months, schedule_visits, visit_interval_months
from services.deal_codes import (
    build_deal_code,
    customer_prefix,
    deal_code_prefix,
    initial_balance,
    parse_amounts,
    recompute_balance,
    to_amount,
)


# ═══════════════════════════════════════════════════════════════
# 1. DEAL CODES
# ═══════════════════════════════════════════════════════════════

class TestDealCodes:
    """PREFIX(4 letters) + DDMM + 3-digit sequence."""

    def test_prefix_keeps_letters_only(self):
        assert customer_prefix("Acme Corp") == "ACME"
        assert customer_prefix("A-1 b.c") == "ABC"
        assert customer_prefix("") == ""

    def test_prefix_with_date(self):
        assert deal_code_prefix("Globex", datetime(2026, 3, 7)) == "GLOB0703"

    def test_first_code(self):
        assert build_deal_code("Acme Corp", datetime(2026, 10, 18), 0) == "ACME1810001"

    def test_sequence_follows_existing_count(self):
        assert build_deal_code("Acme Corp", datetime(2026, 10, 18), 11) == "ACME1810012"


class TestBalances:

    def test_to_amount(self):
        assert to_amount("1500.50") == 1500.5
        assert to_amount(None) == 0.0
        assert to_amount("abc") == 0.0
        assert to_amount("", default=None) is None

    def test_parse_amounts_accepts_numbers_and_numeric_strings(self):
        amounts, invalid = parse_amounts({"deal_value": 160000, "advance_payment": "2500.5", "balance_amount": ""})
        assert amounts == {"deal_value": 160000.0, "advance_payment": 2500.5}
        assert invalid == []

    def test_parse_amounts_reports_non_numeric_fields(self):
        amounts, invalid = parse_amounts({"deal_value": "abc", "deal_approval_value": 1000, "advance_payment": None})
        assert amounts == {"deal_approval_value": 1000.0}
        assert invalid == ["deal_value"]

    def test_initial_balance_defaults_to_approval_minus_advance(self):
        assert initial_balance(10000, 2500) == 7500.0
        assert initial_balance("10000", None) == 10000.0

    def test_initial_balance_explicit_value(self):
        assert initial_balance(10000, 2500, balance_amount=0) == 0.0

    def test_recompute_ignores_deal_advance_payment(self):
        payments = [
            {"amount": 2500, "payment_type": "Advance", "is_deal_advance": True},
            {"amount": "1000", "payment_type": "Bank Transfer"},
            {"amount": 500.25, "payment_type": "Cash"},
        ]
        assert recompute_balance(10000, 2500, payments) == 5999.75

    def test_recompute_without_payments(self):
        assert recompute_balance(10000, 0) == 10000.0


# ═══════════════════════════════════════════════════════════════
# 2. AMS SCHEDULING
# ═══════════════════════════════════════════════════════════════

class TestAmsSchedule:
    """N visits per year spaced 12 // N months, starting one interval after the first date."""

    def test_add_months_clamps_day(self):
        assert add_months(datetime(2026, 1, 31), 1) == datetime(2026, 2, 28)
        assert add_months(datetime(2028, 1, 31), 1) == datetime(2028, 2, 29)

    def test_add_months_across_year(self):
        assert add_months(datetime(2026, 11, 15), 3) == datetime(2027, 2, 15)

    def test_interval(self):
        assert visit_interval_months(1) == 12
        assert visit_interval_months(4) == 3
        assert visit_interval_months(5) == 2
        assert visit_interval_months(24) == 1

    def test_interval_rejects_non_positive(self):
        with pytest.raises(ValueError):
            visit_interval_months(0)

    def test_quarterly_visits(self):
        first = datetime(2026, 1, 10, tzinfo=timezone.utc)
        visits = schedule_visits(first, 4)
        assert [v.month for v in visits] == [4, 7, 10, 1]
        assert visits[-1].year == 2027

    def test_monthly_from_month_end(self):
        visits = schedule_visits(datetime(2026, 1, 31), 12)
        assert len(visits) == 12
        assert visits[0] == datetime(2026, 2, 28)
        assert visits[-1] == datetime(2027, 1, 31)

    def test_more_than_twelve_visits_keeps_count(self):
        visits = schedule_visits(datetime(2026, 1, 1), 24)
        assert len(visits) == 24
        assert visits[0] == datetime(2026, 2, 1)
