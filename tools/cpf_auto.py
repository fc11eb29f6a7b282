import logging
from datetime import date
from typing import Any, Dict, Optional

from tools.cashflow import round_cents
from tools.cpf import (
    CPF_EMPLOYEE_CONTRIBUTION_CATEGORY,
    CPF_EMPLOYEE_CONTRIBUTION_SOURCE,
    CPF_EMPLOYER_CONTRIBUTION_CATEGORY,
    CPF_EMPLOYER_CONTRIBUTION_SOURCE,
    DEFAULT_SALARY_AGE,
    CPFSalaryMetadata,
    calculate_cpf_contribution,
    encode_cpf_salary_metadata,
    get_cpf_contribution_description,
    is_cpf_employee_contribution_name,
    is_cpf_employer_contribution_name,
    is_salary_income_record,
    normalize_salary_amount,
)
from tools.finance_client import FinancialClientError
from tools.models import Income, ValidationError, utc_now_iso, validate
from tools.store import StoreError

logger = logging.getLogger(__name__)

BACKEND_ERRORS = (StoreError, FinancialClientError)


def create_cpf_contributions(
    store,
    monthly_salary: float,
    age: int = DEFAULT_SALARY_AGE,
    reference_date: Optional[date] = None,
) -> Dict[str, Any]:
    """Add the employer and employee CPF shares as monthly incomes."""
    calc = calculate_cpf_contribution(monthly_salary, age, reference_date)
    description = get_cpf_contribution_description(monthly_salary, age, reference_date)
    now = utc_now_iso()

    employer = Income(
        source=CPF_EMPLOYER_CONTRIBUTION_SOURCE,
        amount=calc.employer_amount,
        frequency="monthly",
        start_date=now,
        category=CPF_EMPLOYER_CONTRIBUTION_CATEGORY,
        notes=description,
    )
    # employee share is forced savings, so it counts as income too
    employee = Income(
        source=CPF_EMPLOYEE_CONTRIBUTION_SOURCE,
        amount=calc.employee_amount,
        frequency="monthly",
        start_date=now,
        category=CPF_EMPLOYEE_CONTRIBUTION_CATEGORY,
        notes=description,
    )
    # a zero share would fail after the other was written
    validate(employer)
    validate(employee)

    try:
        employer = store.incomes.create(employer)
        employee = store.incomes.create(employee)
    except BACKEND_ERRORS as e:
        logger.error("Failed to create CPF contributions: %s", e)
        raise

    logger.info("CPF contributions created: employer=%s employee=%s", employer.id, employee.id)
    return {"employer_contribution": employer, "employee_contribution": employee, "calculation": calc}


def check_existing_cpf_contributions(store) -> bool:
    try:
        incomes = store.incomes.list()
    except BACKEND_ERRORS as e:
        logger.error("Failed to check existing CPF contributions: %s", e)
        return False
    return any(
        is_cpf_employer_contribution_name(i.source) or is_cpf_employee_contribution_name(i.source)
        for i in incomes
    )


def update_cpf_contributions(
    store,
    new_monthly_salary: float,
    age: int = DEFAULT_SALARY_AGE,
    reference_date: Optional[date] = None,
):
    """Re-price existing CPF contribution incomes for a new salary."""
    calc = calculate_cpf_contribution(new_monthly_salary, age, reference_date)
    description = get_cpf_contribution_description(new_monthly_salary, age, reference_date)

    try:
        incomes = store.incomes.list()
        expenses = store.expenses.list()

        changed = []
        for income in incomes:
            if is_cpf_employer_contribution_name(income.source):
                income.source = CPF_EMPLOYER_CONTRIBUTION_SOURCE
                income.category = CPF_EMPLOYER_CONTRIBUTION_CATEGORY
                income.amount = calc.employer_amount
            elif is_cpf_employee_contribution_name(income.source):
                income.source = CPF_EMPLOYEE_CONTRIBUTION_SOURCE
                income.category = CPF_EMPLOYEE_CONTRIBUTION_CATEGORY
                income.amount = calc.employee_amount
            else:
                continue
            income.frequency = "monthly"
            income.notes = description
            changed.append(validate(income))
        for income in changed:
            store.incomes.update(income)

        # older versions booked the employee share as an expense
        for expense in expenses:
            if is_cpf_employee_contribution_name(expense.payee):
                store.expenses.delete(expense.id)
    except BACKEND_ERRORS as e:
        logger.error("Failed to update CPF contributions: %s", e)
        raise

    logger.info("CPF contributions updated for new salary: %s", new_monthly_salary)
    return calc


def save_income(
    store,
    income: Income,
    create: bool = True,
    input_type: str = "gross",
    age: int = DEFAULT_SALARY_AGE,
    reference_date: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Create or update an income record.

    Salary incomes are stored gross, with the gross/net/CPF breakdown encoded
    in their notes, and the CPF contribution incomes follow the new salary.
    A CPF failure is logged and leaves the saved salary in place.
    """
    if input_type not in ("gross", "net"):
        raise ValidationError(f'salary input type "{input_type}" is invalid')
    income = validate(income)
    is_salary = is_salary_income_record(income.source, income.category)

    if is_salary:
        normalized = normalize_salary_amount(income.amount, input_type, age, reference_date)
        contribution = normalized["cpf_contribution"]
        income.amount = round_cents(normalized["gross_salary"])
        income.notes = encode_cpf_salary_metadata(CPFSalaryMetadata(
            input_type=input_type,
            gross_amount=income.amount,
            net_amount=round_cents(normalized["net_salary"]),
            cpf_employee_amount=contribution.employee_amount,
            cpf_employer_amount=contribution.employer_amount,
            updated_at=utc_now_iso(),
        ))

    saved = store.incomes.create(income) if create else store.incomes.update(income)
    if not is_salary:
        return {"income": saved, "cpf_contributions": "skipped"}

    try:
        if not create:
            update_cpf_contributions(store, saved.amount, age, reference_date)
            status = "updated"
        elif check_existing_cpf_contributions(store):
            status = "existing"
        else:
            create_cpf_contributions(store, saved.amount, age, reference_date)
            status = "created"
    except (ValidationError,) + BACKEND_ERRORS as e:
        logger.warning("Salary income %s saved but CPF contributions were not: %s", saved.id, e)
        status = "failed"
    return {"income": saved, "cpf_contributions": status}
