from datetime import date

import pytest

from tools.models import Asset, BalancePoint, Income, Liability, MortgageInputs
from tools.mortgage import sample_scenario
from tools.store import InvalidInputError, NotFoundError

TS = "2024-01-01T00:00:00.000Z"


def test_create_assigns_id_and_timestamp(store):
    created = store.assets.create(Asset("Emergency Fund", "cash", 25_000, 0.02))
    assert created.id
    assert created.updated_at.endswith("Z")
    assert store.assets.get(created.id) == created
    assert [a.name for a in store.assets.list()] == ["Emergency Fund"]


def test_create_keeps_given_id_and_rejects_duplicates(store):
    store.liabilities.create(Liability("Mortgage", "mortgage", 350_000, 0.035, 2200, id="mortgage-1"))
    with pytest.raises(InvalidInputError):
        store.liabilities.create(Liability("Mortgage", "mortgage", 1, id="mortgage-1"))


def test_validation_errors(store):
    with pytest.raises(InvalidInputError):
        store.assets.create(Asset("  ", "cash", 10))
    with pytest.raises(InvalidInputError):
        store.incomes.create(Income("Salary", 0, "monthly", TS))
    with pytest.raises(InvalidInputError):
        store.incomes.create(Income("Salary", 100, "fortnightly", TS))
    with pytest.raises(InvalidInputError):
        store.incomes.create(Income("Salary", 100, "monthly", "not-a-date"))


def test_update_and_delete(store):
    income = store.incomes.create(Income("Salary", 5000, "monthly", TS, "employment"))
    income.amount = 5500
    store.incomes.update(income)
    assert store.incomes.get(income.id).amount == 5500

    store.incomes.delete(income.id)
    with pytest.raises(NotFoundError):
        store.incomes.get(income.id)
    with pytest.raises(NotFoundError):
        store.incomes.delete(income.id)


def test_update_requires_existing_id(store):
    with pytest.raises(InvalidInputError):
        store.assets.update(Asset("Cash", "cash", 1))
    with pytest.raises(NotFoundError):
        store.assets.update(Asset("Cash", "cash", 1, id="missing"))


def test_scenario_keeps_nested_records(store):
    created = store.scenarios.create(sample_scenario("hdb", date(2024, 5, 1)))
    loaded = store.scenarios.get(created.id)
    assert isinstance(loaded.inputs, MortgageInputs)
    assert isinstance(loaded.amortization.balance_points[0], BalancePoint)
    assert loaded.snapshot.monthly_payment == pytest.approx(created.snapshot.monthly_payment)
    assert loaded.summary[0]["label"] == "Cash Buffer Needed"

    loaded.headline = "Renamed"
    store.scenarios.update(loaded)
    assert store.scenarios.get(created.id).headline == "Renamed"


def test_action_events_filter_and_limit(store):
    store.record_action_event("i1:0", "update", "asset", "Fund", 100.0, "SGD", {"raw": "x"}, chat_id="c1")
    store.record_action_event("i1:1", "remove-item", "expense", "Rent", chat_id="c1")
    store.record_action_event("i2:0", "add-item", "asset", "Boat", 5.0, chat_id="c2")

    c1 = store.list_action_events("c1")
    assert {e["intent_id"] for e in c1} == {"i1:0", "i1:1"}
    assert len(store.list_action_events()) == 3
    assert len(store.list_action_events(limit=0)) == 1

    first = next(e for e in c1 if e["intent_id"] == "i1:0")
    assert first["payload"] == {"raw": "x"}
    assert first["currency"] == "SGD"


def test_transaction_rolls_back_every_write(store):
    with pytest.raises(NotFoundError):
        with store.transaction():
            store.assets.create(Asset("Gold", "commodity", 5000))
            store.liabilities.delete("missing")
    assert store.assets.list() == []

    with store.transaction():
        store.assets.create(Asset("Gold", "commodity", 5000))
    assert [a.name for a in store.assets.list()] == ["Gold"]


def test_text_fields_must_be_strings(store):
    with pytest.raises(InvalidInputError, match="name must be a string"):
        store.assets.create(Asset(123, "cash", 10))
    with pytest.raises(InvalidInputError, match="notes must be a string"):
        store.assets.create(Asset("Cash", "cash", 10, notes=["x"]))
    with pytest.raises(InvalidInputError, match="frequency"):
        store.incomes.create(Income("Bonus", 10, ["monthly"], TS))
