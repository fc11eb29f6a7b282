from datetime import date

import pytest

from tools.cpf import (
    CPF_EMPLOYEE_CONTRIBUTION_SOURCE,
    CPF_SALARY_METADATA_PREFIX,
    CPFSalaryMetadata,
    calculate_cpf_contribution,
    decode_cpf_salary_metadata,
    derive_gross_from_net,
    encode_cpf_salary_metadata,
    get_cpf_contribution_description,
    get_cpf_rates,
    get_cpf_salary_ceiling,
    is_cpf_employee_contribution_name,
    is_cpf_employer_contribution_name,
    is_salary_income_record,
    normalize_salary_amount,
)

JUNE_2024 = date(2024, 6, 1)


def test_contribution_below_ceiling():
    c = calculate_cpf_contribution(5000, 30, JUNE_2024)
    assert (c.employee_amount, c.employer_amount, c.total_amount) == (1000, 850, 1850)


@pytest.mark.parametrize("year,ceiling", [(2023, 6800), (2024, 6800), (2025, 7400), (2026, 8000), (2031, 8000)])
def test_salary_ceiling_by_year(year, ceiling):
    assert get_cpf_salary_ceiling(date(year, 1, 1)) == ceiling


def test_contribution_capped_at_ceiling():
    c = calculate_cpf_contribution(10_000, 30, JUNE_2024)
    assert c.employee_amount == 1360
    assert c.employer_amount == 1156
    assert "capped" in get_cpf_contribution_description(10_000, 30, JUNE_2024)


def test_rate_bands():
    assert get_cpf_rates(58).employee_rate == 0.13
    assert get_cpf_rates(53).employer_rate == 0.15
    assert get_cpf_rates(70).employer_rate == 0.075
    # 60-65 band is checked before 56-60
    assert get_cpf_rates(60).employee_rate == 0.20


def test_gross_from_net_below_ceiling():
    assert derive_gross_from_net(4000, 30, JUNE_2024) == pytest.approx(5000)
    out = normalize_salary_amount(4000, "net", 30, JUNE_2024)
    assert out["gross_salary"] == pytest.approx(5000)
    assert out["net_salary"] == pytest.approx(4000)
    assert out["cpf_contribution"].employee_amount == 1000


def test_gross_from_net_above_ceiling():
    gross = derive_gross_from_net(7000, 30, JUNE_2024)
    assert gross == pytest.approx(8360)
    assert normalize_salary_amount(7000, "net", 30, JUNE_2024)["net_salary"] == pytest.approx(7000)


def test_gross_from_net_non_positive():
    assert derive_gross_from_net(0) == 0.0


def test_salary_metadata_roundtrip_and_garbage():
    meta = CPFSalaryMetadata("gross", 5000, 4000, 1000, 850, "2024-06-01T00:00:00.000Z")
    assert decode_cpf_salary_metadata(encode_cpf_salary_metadata(meta)) == meta
    assert decode_cpf_salary_metadata(CPF_SALARY_METADATA_PREFIX + "{not json") is None
    assert decode_cpf_salary_metadata("plain notes") is None


def test_name_matchers():
    assert is_cpf_employee_contribution_name("  cpf employee contribution ")
    assert not is_cpf_employer_contribution_name(CPF_EMPLOYEE_CONTRIBUTION_SOURCE)
    assert is_salary_income_record("Software Engineering", "employment")
    assert not is_salary_income_record("Dividends", "investment")
