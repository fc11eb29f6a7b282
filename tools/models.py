"""
Domain records shared by the calculators, the stores and the HTTP layer.

Records are plain dataclasses with snake_case fields. On the wire (API, remote
backend) the same records travel as camelCase JSON; `to_payload` and
`from_payload` convert between the two.
"""
import math
import re
import uuid
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

FREQUENCIES = ("weekly", "biweekly", "monthly", "quarterly", "yearly")


class ValidationError(ValueError):
    """Raised when a record is missing a required field or has a bad value."""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_id() -> str:
    return uuid.uuid4().hex


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing 'Z'."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


@dataclass
class Asset:
    name: str
    category: str
    current_value: float
    annual_growth_rate: float = 0.0
    notes: Optional[str] = None
    id: str = ""
    updated_at: str = ""


@dataclass
class Liability:
    name: str
    category: str
    current_balance: float
    interest_rate_apr: float = 0.0
    minimum_payment: float = 0.0
    notes: Optional[str] = None
    id: str = ""
    updated_at: str = ""


@dataclass
class Income:
    source: str
    amount: float
    frequency: str = "monthly"
    start_date: str = ""
    category: str = ""
    notes: Optional[str] = None
    id: str = ""
    updated_at: str = ""


@dataclass
class Expense:
    payee: str
    amount: float
    frequency: str = "monthly"
    category: str = ""
    notes: Optional[str] = None
    id: str = ""
    updated_at: str = ""


@dataclass
class MonthlyCashFlow:
    monthly_income: float = 0.0
    monthly_expenses: float = 0.0
    net_monthly: float = 0.0


@dataclass
class NetWorthPoint:
    date: str
    assets_total: float
    liabilities_total: float
    net_worth: float


@dataclass
class MortgageInputs:
    loan_amount: float = 0.0
    loan_term_years: int = 25
    borrower_type: str = "first-time"
    loan_start_month: str = ""
    fixed_years: int = 0
    fixed_rate: float = 0.0
    floating_rate: float = 0.0
    household_income: float = 0.0
    other_debt: float = 0.0


@dataclass
class BalancePoint:
    label: str
    balance: float
    year: int
    year_index: int


@dataclass
class CompositionPoint:
    label: str
    interest: float
    principal: float
    year: int
    year_index: int


@dataclass
class MortgageAmortization:
    balance_points: List[BalancePoint] = field(default_factory=list)
    composition: List[CompositionPoint] = field(default_factory=list)


@dataclass
class MortgageSnapshot:
    monthly_payment: float = 0.0
    total_interest: float = 0.0
    loan_end_date: str = "—"
    msr_ratio: float = 0.0


@dataclass
class PropertyScenario:
    type: str
    headline: str
    subheadline: str = ""
    last_refreshed: str = ""
    inputs: MortgageInputs = field(default_factory=MortgageInputs)
    amortization: MortgageAmortization = field(default_factory=MortgageAmortization)
    snapshot: MortgageSnapshot = field(default_factory=MortgageSnapshot)
    # summary / timeline / milestones / insights are display rows kept as wire dicts
    summary: List[Dict[str, Any]] = field(default_factory=list)
    timeline: List[Dict[str, Any]] = field(default_factory=list)
    milestones: List[Dict[str, Any]] = field(default_factory=list)
    insights: List[Dict[str, Any]] = field(default_factory=list)
    id: str = ""
    updated_at: str = ""


# ---------- wire conversion ----------

def camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p[:1].upper() + p[1:] for p in rest)


_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")

def snake(name: str) -> str:
    return _CAMEL_RE.sub("_", name).lower()


def to_payload(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return {camel(f.name): to_payload(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, list):
        return [to_payload(v) for v in value]
    if isinstance(value, dict):
        return {k: to_payload(v) for k, v in value.items()}
    return value


_NESTED = {
    (PropertyScenario, "inputs"): MortgageInputs,
    (PropertyScenario, "amortization"): MortgageAmortization,
    (PropertyScenario, "snapshot"): MortgageSnapshot,
    (MortgageAmortization, "balance_points"): BalancePoint,
    (MortgageAmortization, "composition"): CompositionPoint,
}


def from_payload(cls, data: Optional[Dict[str, Any]]):
    """Build `cls` from a camelCase (or snake_case) dict, ignoring unknown keys."""
    data = data or {}
    normalized = {snake(k): v for k, v in data.items()}
    kwargs = {}
    for f in fields(cls):
        if f.name not in normalized:
            continue
        value = normalized[f.name]
        nested = _NESTED.get((cls, f.name))
        if nested is not None:
            if isinstance(value, list):
                value = [from_payload(nested, v) for v in value]
            elif isinstance(value, dict):
                value = from_payload(nested, value)
        kwargs[f.name] = value
    try:
        return cls(**kwargs)
    except TypeError as e:
        raise ValidationError(f"invalid {cls.__name__} payload: {e}") from e


# ---------- validation ----------

def _clean(value: Optional[str], label: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{label} must be a string")
    return value.strip()


def _require(value: Optional[str], label: str) -> str:
    text = _clean(value, label)
    if not text:
        raise ValidationError(f"{label} is required")
    return text


def _number(value: Any, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError(f"{label} must be a finite number")
    return float(value)


def _frequency(value: str) -> str:
    if not isinstance(value, str) or value not in FREQUENCIES:
        raise ValidationError(f'frequency "{value}" is invalid')
    return value


def _notes(value: Optional[str]) -> Optional[str]:
    text = _clean(value, "notes")
    return text or None


def validate_asset(asset: Asset) -> Asset:
    asset.name = _require(asset.name, "name")
    asset.category = _require(asset.category, "category")
    asset.current_value = _number(asset.current_value, "currentValue")
    asset.annual_growth_rate = _number(asset.annual_growth_rate, "annualGrowthRate")
    asset.notes = _notes(asset.notes)
    return asset


def validate_liability(liability: Liability) -> Liability:
    liability.name = _require(liability.name, "name")
    liability.category = _require(liability.category, "category")
    liability.current_balance = _number(liability.current_balance, "currentBalance")
    liability.interest_rate_apr = _number(liability.interest_rate_apr, "interestRateApr")
    liability.minimum_payment = _number(liability.minimum_payment, "minimumPayment")
    liability.notes = _notes(liability.notes)
    return liability


def validate_income(income: Income) -> Income:
    income.source = _require(income.source, "source")
    if _number(income.amount, "amount") <= 0:
        raise ValidationError("amount must be greater than zero")
    income.frequency = _frequency(income.frequency)
    start = _require(income.start_date, "startDate")
    try:
        parse_iso(start)
    except ValueError as e:
        raise ValidationError(f"invalid startDate: {start}") from e
    income.start_date = start
    income.category = _clean(income.category, "category")
    income.notes = _notes(income.notes)
    return income


def validate_expense(expense: Expense) -> Expense:
    expense.payee = _require(expense.payee, "payee")
    if _number(expense.amount, "amount") <= 0:
        raise ValidationError("amount must be greater than zero")
    expense.frequency = _frequency(expense.frequency)
    expense.category = _clean(expense.category, "category")
    expense.notes = _notes(expense.notes)
    return expense


def validate_scenario(scenario: PropertyScenario) -> PropertyScenario:
    scenario.type = _require(scenario.type, "type")
    scenario.headline = _require(scenario.headline, "headline")
    scenario.subheadline = _clean(scenario.subheadline, "subheadline")
    scenario.last_refreshed = _clean(scenario.last_refreshed, "lastRefreshed")
    return scenario


VALIDATORS = {
    Asset: validate_asset,
    Liability: validate_liability,
    Income: validate_income,
    Expense: validate_expense,
    PropertyScenario: validate_scenario,
}


def validate(record):
    return VALIDATORS[type(record)](record)
