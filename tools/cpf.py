"""
CPF (Central Provident Fund) contribution calculator.

Rates are age-banded and the contributable wage is capped at the monthly
ordinary wage ceiling for the reference year. Bands and ceilings live in
config/assumptions.yaml.
"""
import json
import logging
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, Optional

from tools.cashflow import round_dollars
from tools.policy import policy_section

logger = logging.getLogger(__name__)

CPF_EMPLOYER_CONTRIBUTION_SOURCE = "CPF Employer Contribution"
CPF_EMPLOYER_CONTRIBUTION_CATEGORY = "government_benefit"
CPF_EMPLOYEE_CONTRIBUTION_SOURCE = "CPF Employee Contribution"
CPF_EMPLOYEE_CONTRIBUTION_CATEGORY = "retirement_savings"

CPF_SALARY_METADATA_PREFIX = "CPF_SALARY_METADATA::"
DEFAULT_SALARY_AGE = 32

# Used when the YAML file is absent.
_DEFAULT_BANDS = [
    {"min_age": 0, "max_age": 35, "employee_rate": 0.20, "employer_rate": 0.17},
    {"min_age": 60, "max_age": 65, "employee_rate": 0.20, "employer_rate": 0.17},
    {"min_age": 36, "max_age": 50, "employee_rate": 0.20, "employer_rate": 0.17},
    {"min_age": 51, "max_age": 55, "employee_rate": 0.20, "employer_rate": 0.15},
    {"min_age": 56, "max_age": 60, "employee_rate": 0.13, "employer_rate": 0.10},
    {"min_age": 66, "max_age": None, "employee_rate": 0.05, "employer_rate": 0.075},
]
_DEFAULT_CEILINGS = [
    {"from_year": 0, "ceiling": 6800},
    {"from_year": 2025, "ceiling": 7400},
    {"from_year": 2026, "ceiling": 8000},
]


@dataclass
class CPFRates:
    employee_rate: float
    employer_rate: float
    total_rate: float


@dataclass
class CPFContribution:
    employee_amount: int
    employer_amount: int
    total_amount: int


@dataclass
class CPFSalaryMetadata:
    input_type: str  # "gross" | "net"
    gross_amount: float
    net_amount: float
    cpf_employee_amount: float
    cpf_employer_amount: float
    updated_at: str


def get_cpf_rates(age: int) -> CPFRates:
    bands = policy_section("cpf").get("rate_bands") or _DEFAULT_BANDS
    for band in bands:
        lo, hi = band["min_age"], band["max_age"]
        if age >= lo and (hi is None or age <= hi):
            emp, er = float(band["employee_rate"]), float(band["employer_rate"])
            return CPFRates(emp, er, round(emp + er, 4))
    # below every band: youngest bracket
    first = bands[0]
    emp, er = float(first["employee_rate"]), float(first["employer_rate"])
    return CPFRates(emp, er, round(emp + er, 4))


def get_cpf_salary_ceiling(reference_date: Optional[date] = None) -> float:
    year = (reference_date or date.today()).year
    ceilings = policy_section("cpf").get("salary_ceilings") or _DEFAULT_CEILINGS
    applicable = [c for c in ceilings if c["from_year"] <= year]
    chosen = max(applicable, key=lambda c: c["from_year"]) if applicable else ceilings[0]
    return float(chosen["ceiling"])


def calculate_cpf_contribution(
    monthly_salary: float,
    age: int = DEFAULT_SALARY_AGE,
    reference_date: Optional[date] = None,
) -> CPFContribution:
    rates = get_cpf_rates(age)
    wage = min(monthly_salary, get_cpf_salary_ceiling(reference_date))
    employee = round_dollars(wage * rates.employee_rate)
    employer = round_dollars(wage * rates.employer_rate)
    return CPFContribution(employee, employer, employee + employer)


def get_cpf_contribution_description(
    monthly_salary: float,
    age: int = DEFAULT_SALARY_AGE,
    reference_date: Optional[date] = None,
) -> str:
    ceiling = get_cpf_salary_ceiling(reference_date)
    wage = min(monthly_salary, ceiling)
    if monthly_salary > ceiling:
        return f"Based on ${wage:,.0f} contributable wage (capped), age {age}"
    return f"Based on ${wage:,.0f} salary, age {age}"


def derive_gross_from_net(
    net_salary: float,
    age: int = DEFAULT_SALARY_AGE,
    reference_date: Optional[date] = None,
) -> float:
    """Invert the employee deduction: the gross wage whose take-home equals `net_salary`."""
    if net_salary <= 0:
        return 0.0
    rates = get_cpf_rates(age)
    ceiling = get_cpf_salary_ceiling(reference_date)

    # above the ceiling the deduction is a flat employee_rate * ceiling
    with_ceiling = net_salary + rates.employee_rate * ceiling
    if with_ceiling > ceiling:
        return with_ceiling
    return min(net_salary / (1 - rates.employee_rate), ceiling)


def normalize_salary_amount(
    amount: float,
    input_type: str = "gross",
    age: int = DEFAULT_SALARY_AGE,
    reference_date: Optional[date] = None,
) -> Dict[str, Any]:
    gross = derive_gross_from_net(amount, age, reference_date) if input_type == "net" else amount
    contribution = calculate_cpf_contribution(gross, age, reference_date)
    return {
        "gross_salary": gross,
        "net_salary": gross - contribution.employee_amount,
        "cpf_contribution": contribution,
    }


def encode_cpf_salary_metadata(metadata: CPFSalaryMetadata) -> str:
    return CPF_SALARY_METADATA_PREFIX + json.dumps(asdict(metadata))


def decode_cpf_salary_metadata(notes: Optional[str]) -> Optional[CPFSalaryMetadata]:
    if not notes or not notes.startswith(CPF_SALARY_METADATA_PREFIX):
        return None
    try:
        payload = json.loads(notes[len(CPF_SALARY_METADATA_PREFIX):])
        return CPFSalaryMetadata(**payload)
    except (ValueError, TypeError) as e:
        logger.error("Failed to parse CPF salary metadata: %s", e)
        return None


def is_salary_income_record(name: Optional[str], category: Optional[str]) -> bool:
    text = f"{name or ''} {category or ''}".lower()
    return "salary" in text or "employment" in text


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def is_cpf_employer_contribution_name(value: Optional[str]) -> bool:
    return _norm(value) == _norm(CPF_EMPLOYER_CONTRIBUTION_SOURCE)


def is_cpf_employee_contribution_name(value: Optional[str]) -> bool:
    return _norm(value) == _norm(CPF_EMPLOYEE_CONTRIBUTION_SOURCE)
