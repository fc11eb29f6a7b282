import calendar
import re
from dataclasses import replace
from datetime import date
from typing import Dict, Optional, Tuple

from tools.cashflow import round_dollars
from tools.models import (
    BalancePoint,
    CompositionPoint,
    Expense,
    Liability,
    MortgageAmortization,
    MortgageInputs,
    MortgageSnapshot,
    PropertyScenario,
    validate,
)
from tools.policy import policy_section

MONTHS_IN_YEAR = 12
PROPERTY_PLANNER_NOTE_PREFIX = "property-planner::"
PLANNER_TYPES = ("hdb", "condo", "landed")

def annuity_payment(principal: float, monthly_rate: float, months: int) -> float:
    """Monthly payment for loan 'principal' at 'monthly_rate' over 'months'."""
    if months <= 0:
        return 0.0
    if monthly_rate == 0:
        return principal / months
    f = (1 + monthly_rate) ** months
    return principal * monthly_rate * f / (f - 1)

def principal_from_payment(target_monthly: float, monthly_rate: float, months: int) -> float:
    """Solve principal P from given monthly payment."""
    if months <= 0:
        return 0.0
    if monthly_rate == 0:
        return target_monthly * months
    f = (1 + monthly_rate) ** months
    return target_monthly * (f - 1) / (monthly_rate * f)

def _start_year(loan_start_month: str) -> int:
    head = (loan_start_month or "").split("-")[0]
    return int(head) if head.isdigit() else date.today().year

def loan_end_date(loan_start_month: str, loan_term_years: int) -> str:
    m = re.match(r"^(\d{4})-(\d{1,2})$", (loan_start_month or "").strip())
    if not m or int(m.group(1)) == 0 or not 1 <= int(m.group(2)) <= 12:
        return "—"
    index = int(m.group(1)) * 12 + int(m.group(2)) - 1 + int(loan_term_years) * 12
    year, month = divmod(index, 12)
    return f"{calendar.month_abbr[month + 1]} {year}"

def build_amortization(
    loan_amount: float,
    monthly_payment: float,
    monthly_rate: float,
    total_months: int,
    loan_start_year: int,
) -> MortgageAmortization:
    """Yearly balance and interest/principal split of a fixed-payment loan."""
    if not monthly_payment or monthly_payment <= 0 or monthly_payment == float("inf"):
        return MortgageAmortization()

    balance_points, composition = [], []
    remaining = loan_amount
    interest_acc = principal_acc = 0.0

    for month in range(1, total_months + 1):
        interest = remaining * monthly_rate if monthly_rate > 0 else 0.0
        principal = min(max(monthly_payment - interest, 0.0), remaining)
        remaining = max(remaining - principal, 0.0)
        interest_acc += interest
        principal_acc += principal

        if month % MONTHS_IN_YEAR == 0 or month == total_months:
            year_index = -(-month // MONTHS_IN_YEAR)
            year = loan_start_year + year_index - 1
            balance_points.append(BalancePoint(f"Year {year_index}", round_dollars(remaining), year, year_index))
            composition.append(CompositionPoint(
                f"Year {year_index}", round_dollars(interest_acc), round_dollars(principal_acc), year, year_index
            ))
            interest_acc = principal_acc = 0.0

        if remaining <= 0:
            break

    if not balance_points:
        balance_points.append(BalancePoint("Year 1", round_dollars(remaining), loan_start_year, 1))
    if not composition:
        composition.append(CompositionPoint(
            "Year 1",
            round_dollars(loan_amount * monthly_rate * MONTHS_IN_YEAR),
            round_dollars(monthly_payment * MONTHS_IN_YEAR),
            loan_start_year,
            1,
        ))
    return MortgageAmortization(balance_points, composition)

def build_mortgage_scenario(inputs: MortgageInputs) -> Tuple[MortgageAmortization, MortgageSnapshot]:
    total_months = int(inputs.loan_term_years) * MONTHS_IN_YEAR
    monthly_rate = inputs.fixed_rate / 100 / MONTHS_IN_YEAR
    payment = annuity_payment(inputs.loan_amount, monthly_rate, total_months)
    amortization = build_amortization(
        inputs.loan_amount, payment, monthly_rate, total_months, _start_year(inputs.loan_start_month)
    )
    cap = float(policy_section("planner").get("msr_ratio_cap", 1.5))
    msr = min(max(payment / inputs.household_income, 0.0), cap) if inputs.household_income else 0.0
    snapshot = MortgageSnapshot(
        monthly_payment=payment,
        total_interest=payment * total_months - inputs.loan_amount,
        loan_end_date=loan_end_date(inputs.loan_start_month, inputs.loan_term_years),
        msr_ratio=msr,
    )
    return amortization, snapshot

def max_loan_at_msr_limit(inputs: MortgageInputs) -> float:
    """Largest loan whose instalment stays within the MSR limit of household income."""
    limit = float(policy_section("planner").get("msr_limit", 0.30))
    budget = max(inputs.household_income, 0.0) * limit
    monthly_rate = inputs.fixed_rate / 100 / MONTHS_IN_YEAR
    return principal_from_payment(budget, monthly_rate, int(inputs.loan_term_years) * MONTHS_IN_YEAR)

def refresh_scenario(scenario: PropertyScenario) -> PropertyScenario:
    """Recompute amortization and snapshot after the inputs changed."""
    amortization, snapshot = build_mortgage_scenario(scenario.inputs)
    return replace(scenario, amortization=amortization, snapshot=snapshot)

# ---------- planner notes ----------

def build_planner_note(scenario_id: str, scenario_type: str) -> str:
    return f"{PROPERTY_PLANNER_NOTE_PREFIX}{scenario_id}::{scenario_type}"

def parse_planner_note(note: Optional[str]) -> Optional[Dict[str, str]]:
    if not note or not note.startswith(PROPERTY_PLANNER_NOTE_PREFIX):
        return None
    m = re.match(r"^property-planner::([^:]+)::(.+)$", note)
    if not m:
        return None
    return {"scenario_id": m.group(1), "scenario_type": m.group(2)}

# ---------- sample scenarios ----------

_SAMPLE_INPUTS = {
    "hdb": dict(
        headline="4-Room BTO in Tampines North",
        subheadline="Ballot this year, key collection about three years out",
        inputs=MortgageInputs(480000, 25, "first-time", "", 25, 2.6, 2.6, 11000, 0),
        cash_buffer=58000,
    ),
    "condo": dict(
        headline="2-Bedroom Condo near Paya Lebar",
        subheadline="Resale unit with a 5-year fixed package",
        inputs=MortgageInputs(1050000, 30, "first-time", "", 5, 3.1, 3.8, 18000, 600),
        cash_buffer=320000,
    ),
    "landed": dict(
        headline="Terrace House in Serangoon Gardens",
        subheadline="Rebuild reserve kept in cash for years 3 to 5",
        inputs=MortgageInputs(2400000, 30, "upgrader", "", 3, 3.3, 4.0, 32000, 1500),
        cash_buffer=900000,
    ),
}

def sample_scenario(scenario_type: str, today: Optional[date] = None) -> PropertyScenario:
    if scenario_type not in _SAMPLE_INPUTS:
        raise ValueError(f"unknown planner scenario type: {scenario_type}")
    today = today or date.today()
    spec = _SAMPLE_INPUTS[scenario_type]
    inputs = replace(spec["inputs"], loan_start_month=f"{today.year + 1}-01")
    amortization, snapshot = build_mortgage_scenario(inputs)
    ten_year = next((p.balance for p in amortization.balance_points if p.year_index == 10), 0)
    headroom = round_dollars(max_loan_at_msr_limit(inputs))

    return PropertyScenario(
        type=scenario_type,
        headline=spec["headline"],
        subheadline=spec["subheadline"],
        last_refreshed="Sample data",
        inputs=inputs,
        amortization=amortization,
        snapshot=snapshot,
        summary=[
            {"id": "cash", "label": "Cash Buffer Needed", "value": spec["cash_buffer"],
             "helper": "Downpayment, stamp duty and legal fees"},
            {"id": "loan", "label": "Loan Amount", "value": inputs.loan_amount,
             "helper": f"{inputs.loan_term_years}-year tenure at {inputs.fixed_rate:.2f}% p.a."},
            {"id": "payment", "label": "Monthly Instalment", "value": round(snapshot.monthly_payment, 2),
             "helper": f"{snapshot.msr_ratio:.0%} of household income"},
        ],
        timeline=[
            {"id": "t0", "year": today.year, "label": "Option & downpayment",
             "cashOutlay": spec["cash_buffer"], "cpfUsage": 0, "loanBalance": 0, "valuation": 0},
            {"id": "t10", "year": today.year + 10, "label": "Year 10 balance",
             "cashOutlay": 0, "cpfUsage": 0, "loanBalance": ten_year, "valuation": 0},
        ],
        milestones=[
            {"id": "m1", "title": "Loan starts", "description": "First instalment due",
             "timeframe": inputs.loan_start_month, "tone": "info"},
            {"id": "m2", "title": "Loan ends", "description": "Final instalment",
             "timeframe": snapshot.loan_end_date, "tone": "success"},
        ],
        insights=[
            {"id": "i1", "title": "Interest over the loan",
             "detail": f"About ${snapshot.total_interest:,.0f} in total interest at the fixed rate.",
             "tone": "info"},
            {"id": "i2", "title": "Borrowing headroom",
             "detail": f"Household income supports a loan of up to ${headroom:,.0f} within the MSR limit.",
             "tone": "success" if headroom >= inputs.loan_amount else "warning"},
        ],
    )

def default_scenarios(today: Optional[date] = None):
    return [sample_scenario(t, today) for t in PLANNER_TYPES]

# ---------- applying a scenario to the plan ----------

def apply_scenario(store, scenario_id: str) -> Dict[str, str]:
    """Upsert the scenario's mortgage liability and monthly payment expense."""
    scenario = store.scenarios.get(scenario_id)
    note = build_planner_note(scenario_id, scenario.type)

    liability = Liability(
        name=f"{scenario.headline} Mortgage",
        category="mortgage",
        current_balance=scenario.inputs.loan_amount,
        interest_rate_apr=scenario.inputs.fixed_rate / 100,
        minimum_payment=scenario.snapshot.monthly_payment,
        notes=note,
    )
    expense = Expense(
        payee=f"{scenario.headline} Mortgage Payment",
        amount=scenario.snapshot.monthly_payment,
        frequency="monthly",
        category="mortgage",
        notes=note,
    )
    # both records must be valid before either is written
    validate(liability)
    validate(expense)

    existing = next((l for l in store.liabilities.list() if l.notes == note), None)
    if existing:
        liability.id = existing.id
        liability = store.liabilities.update(liability)
    else:
        liability = store.liabilities.create(liability)

    existing = next((e for e in store.expenses.list() if e.notes == note), None)
    if existing:
        expense.id = existing.id
        expense = store.expenses.update(expense)
    else:
        expense = store.expenses.create(expense)

    return {"liability_id": liability.id, "expense_id": expense.id}
