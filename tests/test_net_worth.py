import pytest

from tools.models import Asset, Liability, MonthlyCashFlow
from tools.net_worth import build_age_timeline, compute_net_worth, distribute_contribution, merge_assumptions, run_model, _AssetBucket

NO_CASH = MonthlyCashFlow(0, 0, 0)


def test_asset_compounds_yearly():
    points = compute_net_worth([Asset("Fund", "brokerage", 10_000, 0.10, id="a1")], [], NO_CASH, 30, 32, start_year=2030)
    assert [p.assets_total for p in points] == [10_000, 11_000, 12_100]
    assert points[0].date == "2030-01-01T00:00:00.000Z"
    assert points[-1].date == "2032-01-01T00:00:00.000Z"


def test_savings_without_assets_go_to_synthetic_bucket():
    cash = MonthlyCashFlow(1000, 0, 1000)
    points = compute_net_worth([], [], cash, 30, 31, start_year=2030,
                               assumptions={"default_asset_growth_rate": 0.05, "inflation_rate": 0.0})
    assert points[0].assets_total == 0
    assert points[1].assets_total == 12_600


def test_liability_paid_off_floors_at_zero():
    debt = Liability("Car loan", "auto", 10_000, 0.0, 1000, id="l1")
    points = compute_net_worth([], [debt], NO_CASH, 30, 32, start_year=2030)
    assert points[0].liabilities_total == 10_000
    assert points[1].liabilities_total == 0
    assert points[1].net_worth == 0


def test_projection_horizon_is_capped():
    points = compute_net_worth([], [], NO_CASH, 18, 100, assumptions={"max_projection_years": 60})
    assert len(points) == 61


def test_at_least_one_year_projected():
    points = compute_net_worth([], [], NO_CASH, 70, 65)
    assert len(points) == 2


def test_unknown_assumption_rejected():
    with pytest.raises(ValueError):
        merge_assumptions({"bogus": 1})


def test_withdrawal_drains_largest_bucket_first():
    buckets = [_AssetBucket("a", 1000, 0), _AssetBucket("b", 5000, 0)]
    distribute_contribution(buckets, -2000)
    assert buckets[1].value == 3000
    assert buckets[0].value == 1000


def test_contribution_split_by_value():
    buckets = [_AssetBucket("a", 1000, 0), _AssetBucket("b", 3000, 0)]
    distribute_contribution(buckets, 400)
    assert buckets[0].value == 1100
    assert buckets[1].value == 3300


def test_run_model_meta_and_timeline():
    out = run_model(
        assets=[{"current_value": 50_000, "annual_growth_rate": 0.04}],
        liabilities=[{"current_balance": 20_000, "interest_rate_apr": 0.05, "minimum_payment": 500}],
        monthly_income=6000,
        monthly_expenses=4000,
        current_age=40,
        retirement_age=45,
        start_year=2025,
    )
    assert len(out["net_worth_timeline"]) == 6
    assert out["meta"]["asset_count"] == 1
    assert out["meta"]["liability_count"] == 1
    assert out["net_worth_timeline"][0].net_worth == 30_000


def test_age_timeline_frame():
    points = compute_net_worth([Asset("Fund", "brokerage", 1000, 0.0, id="a1")], [], NO_CASH, 30, 33, start_year=2030)
    df = build_age_timeline(points, 30)
    assert list(df.columns) == ["age", "year", "assets", "liabilities", "net_worth"]
    assert df["age"].tolist() == [30, 31, 32, 33]
    assert df["year"].tolist() == [2030, 2031, 2032, 2033]


FIXED_RATES = {"default_asset_growth_rate": 0.05, "liability_interest_floor": 0.03, "inflation_rate": 0.0}


def test_overdraft_lands_on_first_bucket():
    buckets = [_AssetBucket("a", 1000, 0), _AssetBucket("b", 500, 0)]
    distribute_contribution(buckets, -2000)
    assert buckets[0].value == -500
    assert buckets[1].value == 0


def test_shortfall_drives_assets_negative():
    cash = MonthlyCashFlow(0, 500, -500)
    points = compute_net_worth([Asset("Cash", "cash", 1000, 0.0, id="a1")], [], cash, 30, 31,
                               start_year=2030, assumptions=FIXED_RATES)
    assert points[1].assets_total == -5000
    assert points[1].net_worth == -5000


@pytest.mark.parametrize("rate", [-0.1, float("nan")])
def test_invalid_growth_rate_uses_default(rate):
    points = compute_net_worth([Asset("Fund", "brokerage", 1000, rate, id="a1")], [], NO_CASH, 30, 31,
                               start_year=2030, assumptions=FIXED_RATES)
    assert points[1].assets_total == 1050


@pytest.mark.parametrize("apr", [-0.02, float("nan")])
def test_invalid_apr_uses_interest_floor(apr):
    debt = Liability("Loan", "personal", 10_000, apr, 0, id="l1")
    points = compute_net_worth([], [debt], NO_CASH, 30, 31, start_year=2030, assumptions=FIXED_RATES)
    assert points[1].liabilities_total == 10_300


def test_net_worth_is_assets_minus_liabilities_every_year():
    assets = [
        Asset("Fund", "brokerage", 75_123.45, 0.067, id="a1"),
        Asset("Cash", "cash", 9_999.99, 0.013, id="a2"),
    ]
    liabilities = [
        Liability("Mortgage", "mortgage", 350_000.01, 0.0325, 1733.33, id="l1"),
        Liability("Car", "auto", 18_500, 0.0278, 612.5, id="l2"),
    ]
    cash = MonthlyCashFlow(7321.17, 5012.83, 2308.34)
    points = compute_net_worth(assets, liabilities, cash, 31, 65, start_year=2030,
                               assumptions={"inflation_rate": 0.027})

    assert len(points) == 35
    for p in points:
        assert abs(p.net_worth - (p.assets_total - p.liabilities_total)) <= 0.01
        assert p.liabilities_total >= 0


def test_empty_plan_projects_zeros():
    points = compute_net_worth([], [], NO_CASH, 30, 35, start_year=2030)
    assert len(points) == 6
    assert all(p.assets_total == p.liabilities_total == p.net_worth == 0 for p in points)
