"""
The financial plan: every entity in the store plus derived cash-flow and
net-worth summary. This is what the dashboard, the projection and the chat
context are built from.
"""
import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from tools.cashflow import compute_monthly_cash_flow, round_cents
from tools.formatting import fmt_money, fmt_pct
from tools.models import (
    Asset,
    Expense,
    Income,
    Liability,
    MonthlyCashFlow,
    NetWorthPoint,
    utc_now_iso,
)


@dataclass
class PlanSummary:
    total_assets: float = 0.0
    total_liabilities: float = 0.0
    net_worth: float = 0.0
    monthly_income: float = 0.0
    monthly_expenses: float = 0.0
    monthly_savings: float = 0.0
    savings_rate: float = 0.0


@dataclass
class FinancialPlan:
    assets: List[Asset] = field(default_factory=list)
    liabilities: List[Liability] = field(default_factory=list)
    incomes: List[Income] = field(default_factory=list)
    expenses: List[Expense] = field(default_factory=list)
    cashflow: MonthlyCashFlow = field(default_factory=MonthlyCashFlow)
    summary: PlanSummary = field(default_factory=PlanSummary)
    last_updated: str = ""

    def copy(self) -> "FinancialPlan":
        return copy.deepcopy(self)


def recalc_summary(plan: FinancialPlan) -> FinancialPlan:
    """Refresh totals from the entity lists and the cash-flow figures, in place."""
    s = plan.summary
    s.total_assets = round_cents(sum(a.current_value for a in plan.assets))
    s.total_liabilities = round_cents(sum(l.current_balance for l in plan.liabilities))
    s.net_worth = round_cents(s.total_assets - s.total_liabilities)
    s.monthly_income = plan.cashflow.monthly_income
    s.monthly_expenses = plan.cashflow.monthly_expenses
    s.monthly_savings = round_cents(s.monthly_income - s.monthly_expenses)
    s.savings_rate = s.monthly_savings / s.monthly_income if s.monthly_income > 0 else 0.0
    plan.cashflow.net_monthly = s.monthly_savings
    return plan


def assemble_plan(assets, liabilities, incomes, expenses) -> FinancialPlan:
    plan = FinancialPlan(
        assets=list(assets),
        liabilities=list(liabilities),
        incomes=list(incomes),
        expenses=list(expenses),
        cashflow=compute_monthly_cash_flow(incomes, expenses),
        last_updated=utc_now_iso(),
    )
    return recalc_summary(plan)


def build_financial_plan(store) -> FinancialPlan:
    return assemble_plan(
        store.assets.list(),
        store.liabilities.list(),
        store.incomes.list(),
        store.expenses.list(),
    )


def build_default_financial_plan() -> FinancialPlan:
    ts = utc_now_iso()
    return assemble_plan(
        assets=[
            Asset("Investment Portfolio", "brokerage", 75_000, 0.07, "Robo-advisor and ETFs", "mock-asset-1", ts),
            Asset("Emergency Fund", "cash", 25_000, 0.02, "High-yield savings", "mock-asset-2", ts),
        ],
        liabilities=[
            Liability("Mortgage", "mortgage", 350_000, 0.035, 2200, "30-year fixed", "mock-liability-1", ts),
        ],
        incomes=[
            Income("Software Engineering", 8500, "monthly", ts, "employment", "Full-time role", "mock-income-1", ts),
        ],
        expenses=[
            Expense("Rent", 2000, "monthly", "housing", "City apartment", "mock-expense-1", ts),
            Expense("Groceries", 600, "monthly", "food", "Household essentials", "mock-expense-2", ts),
        ],
    )


def build_empty_financial_plan() -> FinancialPlan:
    return assemble_plan([], [], [], [])


# ---------- projection settings ----------

def validate_projection_settings(
    current_age: int,
    retirement_age: int,
    inflation_rate: float,
    average_return_rate: float,
) -> List[str]:
    errors = []
    if current_age < 18 or current_age > 100:
        errors.append("Current age must be between 18 and 100")
    if retirement_age <= current_age:
        errors.append("Retirement age must be greater than current age")
    if retirement_age > 100:
        errors.append("Retirement age must be 100 or less")
    if inflation_rate < 0 or inflation_rate > 0.2:
        errors.append("Inflation rate must be between 0% and 20%")
    if average_return_rate < -0.5 or average_return_rate > 0.5:
        errors.append("Average return rate must be between -50% and 50%")
    return errors


def generate_projection_summary(points: Sequence[NetWorthPoint], current_age: int, retirement_age: int) -> str:
    if not points:
        return "No projection data available."
    index = min(max(retirement_age - current_age, 0), len(points) - 1)
    first, at_retirement = points[0], points[index]
    return (
        f"Projecting {index} years: from {fmt_money(first.net_worth)} now "
        f"to {fmt_money(at_retirement.net_worth)} at age {current_age + index}."
    )


def build_financial_context(plan: Optional[FinancialPlan]) -> str:
    """Compact plain-text rendition of the plan used to prime the LLM."""
    if plan is None:
        return "No financial data available."
    lines = ["Assets:"]
    lines += [f"- {a.name} ({a.category}): {fmt_money(a.current_value)}" for a in plan.assets] or ["- none"]
    lines.append("Liabilities:")
    lines += [f"- {l.name} ({l.category}): {fmt_money(l.current_balance)}" for l in plan.liabilities] or ["- none"]
    lines.append("Incomes:")
    lines += [f"- {i.source}: {fmt_money(i.amount)} {i.frequency}" for i in plan.incomes] or ["- none"]
    lines.append("Expenses:")
    lines += [f"- {e.payee}: {fmt_money(e.amount)} {e.frequency}" for e in plan.expenses] or ["- none"]
    s = plan.summary
    lines.append(
        f"Summary: net worth {fmt_money(s.net_worth)}, monthly income {fmt_money(s.monthly_income)}, "
        f"monthly expenses {fmt_money(s.monthly_expenses)}, savings rate {fmt_pct(s.savings_rate)}."
    )
    return "\n".join(lines)


def summary_changes(before: FinancialPlan, after: FinancialPlan) -> Dict[str, Any]:
    """Summary fields whose value differs between two plans."""
    out = {}
    for key in ("total_assets", "total_liabilities", "monthly_income", "monthly_expenses"):
        old, new = getattr(before.summary, key), getattr(after.summary, key)
        if old != new:
            out[key] = new
    return out
