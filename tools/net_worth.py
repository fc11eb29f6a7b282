"""
Net-worth projection engine.

A yearly, deterministic simulation: savings are poured into (or drawn from)
asset buckets, buckets compound at their own growth rate, liabilities amortise
with their minimum payments, and income/expenses inflate each year.
"""
import math
import time
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from tools.cashflow import round_cents
from tools.models import Asset, Liability, MonthlyCashFlow, NetWorthPoint, utc_now_iso
from tools.policy import policy_section

SYNTHETIC_ASSET_ID = "synthetic-asset"


@dataclass
class ProjectionAssumptions:
    default_retirement_age: int = 65
    max_projection_years: int = 60
    inflation_rate: float = 0.03
    default_asset_growth_rate: float = 0.05
    cash_yield_rate: float = 0.02
    liability_interest_floor: float = 0.03


def default_assumptions() -> ProjectionAssumptions:
    known = {f.name for f in fields(ProjectionAssumptions)}
    cfg = {k: v for k, v in policy_section("projection").items() if k in known}
    return ProjectionAssumptions(**cfg)


def merge_assumptions(overrides: Optional[Dict[str, Any]]) -> ProjectionAssumptions:
    base = default_assumptions()
    if not overrides:
        return base
    known = {f.name for f in fields(ProjectionAssumptions)}
    unknown = set(overrides) - known
    if unknown:
        raise ValueError(f"unknown projection assumptions: {', '.join(sorted(unknown))}")
    return replace(base, **{k: v for k, v in overrides.items() if v is not None})


@dataclass
class _AssetBucket:
    id: str
    value: float
    rate: float


@dataclass
class _LiabilityBucket:
    id: str
    balance: float
    rate: float
    minimum_payment: float


def _valid_rate(rate) -> bool:
    return isinstance(rate, (int, float)) and math.isfinite(rate) and rate >= 0


def _asset_buckets(assets: Sequence[Asset], a: ProjectionAssumptions) -> List[_AssetBucket]:
    if not assets:
        return [_AssetBucket(SYNTHETIC_ASSET_ID, 0.0, a.default_asset_growth_rate)]
    return [
        _AssetBucket(
            id=asset.id,
            value=round_cents(asset.current_value),
            rate=asset.annual_growth_rate if _valid_rate(asset.annual_growth_rate) else a.default_asset_growth_rate,
        )
        for asset in assets
    ]


def _liability_buckets(liabilities: Sequence[Liability], a: ProjectionAssumptions) -> List[_LiabilityBucket]:
    return [
        _LiabilityBucket(
            id=item.id,
            balance=round_cents(item.current_balance),
            rate=item.interest_rate_apr if _valid_rate(item.interest_rate_apr) else a.liability_interest_floor,
            minimum_payment=max(item.minimum_payment, 0.0),
        )
        for item in liabilities
    ]


def distribute_contribution(buckets: List[_AssetBucket], amount: float) -> None:
    """Spread a yearly contribution (or withdrawal when negative) across buckets in place."""
    if amount == 0 or not buckets:
        return

    if amount > 0:
        positive = [b for b in buckets if b.value > 0]
        if not positive:
            buckets[0].value = round_cents(buckets[0].value + amount)
            return
        total = sum(b.value for b in positive)
        for b in positive:
            b.value = round_cents(b.value + amount * (b.value / total))
        return

    remaining = abs(amount)
    for b in sorted(buckets, key=lambda x: x.value, reverse=True):
        if remaining <= 0:
            break
        deduction = min(b.value, remaining)
        b.value = round_cents(b.value - deduction)
        remaining -= deduction
    if remaining > 0:
        # overdraft lands on the first bucket
        buckets[0].value = round_cents(buckets[0].value - remaining)


def _amortize(bucket: _LiabilityBucket) -> None:
    if bucket.balance <= 0:
        bucket.balance = 0.0
        return
    interest = bucket.balance * bucket.rate
    next_balance = bucket.balance + interest - bucket.minimum_payment * 12
    bucket.balance = round_cents(next_balance) if next_balance > 0 else 0.0


def compute_net_worth(
    assets: Sequence[Asset],
    liabilities: Sequence[Liability],
    monthly_cash_flow: MonthlyCashFlow,
    current_age: int,
    retirement_age: Optional[int] = None,
    start_year: Optional[int] = None,
    assumptions: Optional[Dict[str, Any]] = None,
) -> List[NetWorthPoint]:
    a = merge_assumptions(assumptions)
    retirement = a.default_retirement_age if retirement_age is None else retirement_age
    years = int(min(a.max_projection_years, max(1, retirement - current_age)))
    first_year = datetime.now(timezone.utc).year if start_year is None else start_year

    asset_buckets = _asset_buckets(assets, a)
    liability_buckets = _liability_buckets(liabilities, a)

    monthly_income = round_cents(monthly_cash_flow.monthly_income)
    monthly_expenses = round_cents(monthly_cash_flow.monthly_expenses)
    monthly_savings = round_cents(monthly_cash_flow.net_monthly)

    timeline: List[NetWorthPoint] = []
    for year in range(years + 1):
        assets_total = round_cents(sum(b.value for b in asset_buckets))
        liabilities_total = round_cents(sum(b.balance for b in liability_buckets))
        timeline.append(NetWorthPoint(
            date=f"{first_year + year:04d}-01-01T00:00:00.000Z",
            assets_total=assets_total,
            liabilities_total=liabilities_total,
            net_worth=round_cents(assets_total - liabilities_total),
        ))
        if year == years:
            break

        distribute_contribution(asset_buckets, round_cents(monthly_savings * 12))
        for b in asset_buckets:
            b.value = round_cents(b.value * (1 + b.rate))
            if b.id == SYNTHETIC_ASSET_ID:
                b.rate = a.default_asset_growth_rate
        for b in liability_buckets:
            _amortize(b)

        monthly_income = round_cents(monthly_income * (1 + a.inflation_rate))
        monthly_expenses = round_cents(monthly_expenses * (1 + a.inflation_rate))
        monthly_savings = round_cents(monthly_income - monthly_expenses)

    return timeline


def build_age_timeline(points: Sequence[NetWorthPoint], current_age: int) -> pd.DataFrame:
    """Tabulate projection points with age and calendar year, ready for charting."""
    rows = [
        {
            "age": current_age + i,
            "year": int(p.date[:4]),
            "assets": p.assets_total,
            "liabilities": p.liabilities_total,
            "net_worth": p.net_worth,
        }
        for i, p in enumerate(points)
    ]
    return pd.DataFrame(rows, columns=["age", "year", "assets", "liabilities", "net_worth"])


# ---------- loosely-typed requests (run-model) ----------

def _sanitize_assets(raw: Sequence[Dict[str, Any]], now: str) -> List[Asset]:
    out = []
    for i, item in enumerate(raw):
        growth = item.get("annual_growth_rate")
        out.append(Asset(
            id=item.get("id") or f"asset-{i}",
            name=item.get("name") or f"Asset {i + 1}",
            category=item.get("category") or "unspecified",
            current_value=float(item["current_value"]),
            annual_growth_rate=growth if isinstance(growth, (int, float)) else 0.0,
            notes=item.get("notes"),
            updated_at=item.get("updated_at") or now,
        ))
    return out


def _sanitize_liabilities(raw: Sequence[Dict[str, Any]], now: str) -> List[Liability]:
    out = []
    for i, item in enumerate(raw):
        apr = item.get("interest_rate_apr")
        payment = item.get("minimum_payment")
        out.append(Liability(
            id=item.get("id") or f"liability-{i}",
            name=item.get("name") or f"Liability {i + 1}",
            category=item.get("category") or "unspecified",
            current_balance=float(item["current_balance"]),
            interest_rate_apr=apr if isinstance(apr, (int, float)) else 0.03,
            minimum_payment=payment if isinstance(payment, (int, float)) else 0.0,
            notes=item.get("notes"),
            updated_at=item.get("updated_at") or now,
        ))
    return out


def run_model(
    assets: Sequence[Dict[str, Any]],
    liabilities: Sequence[Dict[str, Any]],
    monthly_income: float,
    monthly_expenses: float,
    current_age: int,
    retirement_age: Optional[int] = None,
    start_year: Optional[int] = None,
    assumptions: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Run a projection from snake_case dicts; returns timeline points and timing meta."""
    started = time.perf_counter()
    now = utc_now_iso()
    cash_flow = MonthlyCashFlow(
        monthly_income=monthly_income,
        monthly_expenses=monthly_expenses,
        net_monthly=monthly_income - monthly_expenses,
    )
    timeline = compute_net_worth(
        assets=_sanitize_assets(assets, now),
        liabilities=_sanitize_liabilities(liabilities, now),
        monthly_cash_flow=cash_flow,
        current_age=current_age,
        retirement_age=retirement_age,
        start_year=start_year,
        assumptions=assumptions,
    )
    duration_ms = round((time.perf_counter() - started) * 1000, 2)
    return {
        "net_worth_timeline": timeline,
        "meta": {
            "duration_ms": duration_ms,
            "asset_count": len(assets),
            "liability_count": len(liabilities),
        },
    }
