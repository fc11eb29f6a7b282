import pytest

from tools.admin import clear_financial_plan_data, seed_default_financial_plan
from tools.formatting import fmt_money, fmt_money_compact, fmt_pct, format_confirmation_summary, net_worth_status
from tools.models import NetWorthPoint
from tools.plan import (
    build_default_financial_plan,
    build_empty_financial_plan,
    build_financial_context,
    build_financial_plan,
    generate_projection_summary,
    summary_changes,
    validate_projection_settings,
)


def test_default_plan_summary():
    s = build_default_financial_plan().summary
    assert s.total_assets == 100_000
    assert s.total_liabilities == 350_000
    assert s.net_worth == -250_000
    assert s.monthly_income == 8500
    assert s.monthly_expenses == 2600
    assert s.monthly_savings == 5900
    assert s.savings_rate == pytest.approx(5900 / 8500)


def test_empty_plan():
    s = build_empty_financial_plan().summary
    assert s.net_worth == 0 and s.savings_rate == 0


def test_summary_changes_only_lists_differences():
    before = build_default_financial_plan()
    after = before.copy()
    after.summary.total_assets = 120_000
    assert summary_changes(before, after) == {"total_assets": 120_000}


def test_financial_context():
    assert build_financial_context(None) == "No financial data available."
    text = build_financial_context(build_default_financial_plan())
    assert "- Investment Portfolio (brokerage): $75,000" in text
    assert "- Rent: $2,000 monthly" in text
    assert build_financial_context(build_empty_financial_plan()).count("- none") == 4


def test_projection_settings_validation():
    assert validate_projection_settings(30, 65, 0.03, 0.05) == []
    errors = validate_projection_settings(30, 25, 0.3, 0.05)
    assert "Retirement age must be greater than current age" in errors
    assert "Inflation rate must be between 0% and 20%" in errors


def test_projection_summary():
    assert generate_projection_summary([], 30, 65) == "No projection data available."
    points = [NetWorthPoint(f"{2030 + i}-01-01T00:00:00.000Z", 0, 0, 1000 * i) for i in range(4)]
    assert generate_projection_summary(points, 30, 32) == "Projecting 2 years: from $0 now to $2,000 at age 32."


def test_formatting():
    assert fmt_money(1234.4) == "$1,234"
    assert fmt_money(-1234.4) == "-$1,234"
    assert fmt_money(None) == "-"
    assert fmt_money_compact(2_500_000) == "$2.5M"
    assert fmt_money_compact(1500) == "$1.5K"
    assert fmt_money_compact(999) == "$999"
    assert fmt_pct(0.25) == "25.0%"
    assert net_worth_status(150_000) == "Six Figures"
    assert net_worth_status(-60_000) == "High Debt"


def test_confirmation_summary():
    assert format_confirmation_summary({}) == "No changes to apply."
    assert format_confirmation_summary({"total_assets": 115_000, "monthly_expenses": 600}) == (
        "Updating: Assets: $115,000, Monthly Expenses: $600"
    )


def test_seed_and_clear(store):
    seed_default_financial_plan(store)
    plan = build_financial_plan(store)
    assert plan.summary.total_assets == 100_000
    assert len(store.scenarios.list()) == 3

    # seeding twice replaces rather than duplicates
    seed_default_financial_plan(store)
    assert len(store.assets.list()) == 2

    clear_financial_plan_data(store)
    assert build_financial_plan(store).summary.net_worth == 0
    assert store.scenarios.list() == []
