from datetime import date

import pytest

from tools.cpf import CPF_EMPLOYEE_CONTRIBUTION_SOURCE, CPF_EMPLOYER_CONTRIBUTION_SOURCE, decode_cpf_salary_metadata
from tools.cpf_auto import (
    check_existing_cpf_contributions,
    create_cpf_contributions,
    save_income,
    update_cpf_contributions,
)
from tools.models import Expense, Income, ValidationError

JAN_2024 = date(2024, 1, 1)
TS = "2024-01-01T00:00:00.000Z"


def _by_source(store):
    return {i.source: i for i in store.incomes.list()}


def test_create_then_update_contributions(store):
    assert not check_existing_cpf_contributions(store)

    out = create_cpf_contributions(store, 5000, 30, JAN_2024)
    assert out["calculation"].total_amount == 1850
    incomes = _by_source(store)
    assert incomes[CPF_EMPLOYER_CONTRIBUTION_SOURCE].amount == 850
    assert incomes[CPF_EMPLOYEE_CONTRIBUTION_SOURCE].amount == 1000
    assert check_existing_cpf_contributions(store)

    update_cpf_contributions(store, 6000, 30, JAN_2024)
    incomes = _by_source(store)
    assert len(incomes) == 2
    assert incomes[CPF_EMPLOYER_CONTRIBUTION_SOURCE].amount == 1020
    assert incomes[CPF_EMPLOYEE_CONTRIBUTION_SOURCE].amount == 1200
    assert "6,000" in incomes[CPF_EMPLOYEE_CONTRIBUTION_SOURCE].notes


def test_update_drops_legacy_employee_expense(store):
    create_cpf_contributions(store, 5000, 30, JAN_2024)
    store.expenses.create(Expense(CPF_EMPLOYEE_CONTRIBUTION_SOURCE, 1000))
    store.expenses.create(Expense("Rent", 2000))

    update_cpf_contributions(store, 5000, 30, JAN_2024)
    assert [e.payee for e in store.expenses.list()] == ["Rent"]


def test_zero_salary_creates_nothing(store):
    with pytest.raises(ValidationError):
        create_cpf_contributions(store, 0, 30, JAN_2024)
    assert store.incomes.list() == []


def test_zero_salary_leaves_existing_contributions(store):
    create_cpf_contributions(store, 5000, 30, JAN_2024)
    with pytest.raises(ValidationError):
        update_cpf_contributions(store, 0, 30, JAN_2024)
    assert {i.amount for i in store.incomes.list()} == {850, 1000}


def test_save_income_normalises_salary(store):
    salary = Income("Monthly Salary", 4000, "monthly", TS, "employment")
    out = save_income(store, salary, input_type="net", reference_date=JAN_2024)

    assert out["cpf_contributions"] == "created"
    saved = out["income"]
    assert saved.amount == 5000
    meta = decode_cpf_salary_metadata(saved.notes)
    assert (meta.gross_amount, meta.net_amount) == (5000, 4000)
    assert (meta.cpf_employee_amount, meta.cpf_employer_amount) == (1000, 850)

    second = save_income(store, Income("Side Salary", 1000, "monthly", TS), reference_date=JAN_2024)
    assert second["cpf_contributions"] == "existing"


def test_save_income_leaves_other_incomes_alone(store):
    out = save_income(store, Income("Dividends", 300, "monthly", TS, "investment", "DBS"))
    assert out["cpf_contributions"] == "skipped"
    assert out["income"].notes == "DBS"
    assert len(store.incomes.list()) == 1


def test_save_income_rejects_unknown_input_type(store):
    with pytest.raises(ValidationError):
        save_income(store, Income("Salary", 4000, "monthly", TS), input_type="take-home")
