from decimal import Decimal, ROUND_HALF_UP
import math
from typing import Iterable

from tools.models import Expense, Income, MonthlyCashFlow

MONTHLY_FACTORS = {
    "weekly": 52 / 12,
    "biweekly": 26 / 12,
    "monthly": 1.0,
    "quarterly": 1 / 3,
    "yearly": 1 / 12,
}

def round_cents(value: float) -> float:
    """Half-up rounding to cents; non-finite values collapse to 0."""
    if value is None or not math.isfinite(value):
        return 0.0
    return float(Decimal(repr(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))

def round_dollars(value: float) -> int:
    if value is None or not math.isfinite(value):
        return 0
    return int(Decimal(repr(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def to_monthly_amount(amount: float, frequency: str) -> float:
    # unknown cadence is treated as monthly
    return round_cents(amount * MONTHLY_FACTORS.get(frequency, 1.0))

def compute_monthly_cash_flow(incomes: Iterable[Income], expenses: Iterable[Expense]) -> MonthlyCashFlow:
    monthly_income = round_cents(sum(to_monthly_amount(i.amount, i.frequency) for i in incomes))
    monthly_expenses = round_cents(sum(to_monthly_amount(e.amount, e.frequency) for e in expenses))
    return MonthlyCashFlow(
        monthly_income=monthly_income,
        monthly_expenses=monthly_expenses,
        net_monthly=round_cents(monthly_income - monthly_expenses),
    )
