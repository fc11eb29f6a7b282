import pytest

from assistant.dispatcher import (
    IntentDispatchError,
    apply_intent_actions,
    derive_entity_name,
    preview_intent_actions,
)
from tools.admin import seed_default_financial_plan
from tools.plan import build_default_financial_plan


@pytest.fixture
def plan():
    return build_default_financial_plan()


def test_update_sets_absolute_value_on_a_copy(plan, make_action):
    after = preview_intent_actions(plan, [make_action("update", "asset", "investment portfolio", 90_000)])
    assert after.summary.total_assets == 115_000
    assert plan.summary.total_assets == 100_000
    assert plan.assets[0].current_value == 75_000


def test_add_item_adds_to_matched_record(plan, make_action):
    after = preview_intent_actions(plan, [make_action("add-item", "asset", "Emergency Fund", 5000)])
    fund = next(a for a in after.assets if a.name == "Emergency Fund")
    assert fund.current_value == 30_000


def test_substring_match(plan, make_action):
    after = preview_intent_actions(plan, [make_action("remove-item", "liability", "mortg", 15_000)])
    assert after.summary.total_liabilities == 335_000


def test_target_containing_a_record_name_creates_a_new_record(plan, make_action):
    after = preview_intent_actions(plan, [make_action("add-item", "asset", "Emergency Fund Bonds", 5000)])
    assert len(after.assets) == 3
    assert next(a for a in after.assets if a.name == "Emergency Fund").current_value == 25_000
    assert next(a for a in after.assets if a.name == "Emergency Fund Bonds").current_value == 5000


def test_creates_new_asset_and_liability(plan, make_action):
    after = preview_intent_actions(plan, [
        make_action("add-item", "asset", "a new asset called savings account", 5000),
        make_action("add-item", "liability", "a new liability called student loan", 12_000),
    ])
    created = next(a for a in after.assets if a.name == "savings account")
    assert created.category == "chat"
    assert created.notes == "Added via chat intent"
    assert created.annual_growth_rate == 0.05
    loan = next(l for l in after.liabilities if l.name == "student loan")
    assert loan.minimum_payment == 240.0
    assert after.summary.total_assets == 105_000
    assert after.summary.total_liabilities == 362_000


def test_new_income_changes_cash_flow(plan, make_action):
    after = preview_intent_actions(plan, [make_action("add-item", "income", "a new income called freelance design", 1200)])
    assert after.summary.monthly_income == 9700
    assert after.summary.monthly_savings == 7100


def test_remove_without_amount_deletes(plan, make_action):
    after = preview_intent_actions(plan, [make_action("remove-item", "expense", "rent")])
    assert [e.payee for e in after.expenses] == ["Groceries"]
    assert after.summary.monthly_expenses == 600
    assert after.summary.monthly_savings == 7900


def test_values_floor_at_zero(plan, make_action):
    after = preview_intent_actions(plan, [make_action("remove-item", "asset", "emergency fund", 100_000)])
    fund = next(a for a in after.assets if a.name == "Emergency Fund")
    assert fund.current_value == 0


def test_income_reduced_to_zero_is_removed(plan, make_action):
    after = preview_intent_actions(plan, [make_action("update", "income", "software engineering", 0)])
    assert after.incomes == []
    assert after.summary.monthly_income == 0
    assert after.summary.savings_rate == 0


def test_missing_amount_or_match_is_an_error(plan, make_action):
    with pytest.raises(IntentDispatchError):
        preview_intent_actions(plan, [make_action("add-item", "asset", "boat")])
    with pytest.raises(IntentDispatchError):
        preview_intent_actions(plan, [make_action("update", "asset", "yacht", 10)])
    with pytest.raises(IntentDispatchError):
        preview_intent_actions(plan, [make_action("update", "asset", "emergency fund")])


def test_derive_entity_name():
    assert derive_entity_name("a new asset called savings account", "New Asset") == "savings account"
    assert derive_entity_name("an new income named Tutoring", "New Income") == "Tutoring"
    assert derive_entity_name("expense", "New Expense") == "New Expense"
    assert derive_entity_name(None, "New Asset") == "New Asset"


def test_apply_persists_and_audits(store, make_action):
    seed_default_financial_plan(store)
    results = apply_intent_actions(store, [
        make_action("update", "asset", "investment portfolio", 90_000),
        make_action("remove-item", "expense", "groceries"),
    ], "intent-1", chat_id="chat-9")

    assert [r["op"] for r in results] == ["set", "delete"]
    assert store.assets.get("mock-asset-1").current_value == 90_000
    assert [e.payee for e in store.expenses.list()] == ["Rent"]

    events = store.list_action_events("chat-9")
    assert {e["intent_id"] for e in events} == {"intent-1:0", "intent-1:1"}


def test_apply_clamps_liability_payment(store, make_action):
    seed_default_financial_plan(store)
    apply_intent_actions(store, [make_action("update", "liability", "mortgage", 1000)], "intent-2")
    mortgage = store.liabilities.get("mock-liability-1")
    assert mortgage.current_balance == 1000
    assert mortgage.minimum_payment == 1000


def test_apply_requires_actions(store):
    with pytest.raises(IntentDispatchError):
        apply_intent_actions(store, [], "intent-3")


def test_planner_update_recomputes_scenario(store, make_action):
    seed_default_financial_plan(store)
    hdb = next(s for s in store.scenarios.list() if s.type == "hdb")

    apply_intent_actions(store, [make_action(
        "update", "property-planner", "hdb plan", 400_000,
        planner_scenario_type="hdb", planner_field="loanAmount",
    )], "intent-4")

    updated = store.scenarios.get(hdb.id)
    assert updated.inputs.loan_amount == 400_000
    assert updated.snapshot.monthly_payment < hdb.snapshot.monthly_payment


def test_planner_text_field_and_lifecycle(store, make_action):
    seed_default_financial_plan(store)
    apply_intent_actions(store, [make_action(
        "update", "property-planner", "condo", None,
        planner_scenario_type="condo", planner_field="loanStartMonth", planner_string_value="2030-06",
    )], "intent-5")
    condo = next(s for s in store.scenarios.list() if s.type == "condo")
    assert condo.inputs.loan_start_month == "2030-06"
    assert condo.snapshot.loan_end_date == "Jun 2060"

    apply_intent_actions(store, [make_action("remove-item", "property-planner", "condo",
                                             planner_scenario_type="condo")], "intent-6")
    assert "condo" not in {s.type for s in store.scenarios.list()}

    apply_intent_actions(store, [make_action("add-item", "property-planner", "condo",
                                             planner_scenario_type="condo")], "intent-7")
    assert "condo" in {s.type for s in store.scenarios.list()}


def test_failed_batch_leaves_store_untouched(store, make_action):
    seed_default_financial_plan(store)
    with pytest.raises(IntentDispatchError):
        apply_intent_actions(store, [
            make_action("update", "asset", "investment portfolio", 1),
            make_action("update", "liability", "yacht loan", 10),
        ], "intent-8", chat_id="chat-8")

    assert store.assets.get("mock-asset-1").current_value == 75_000
    assert store.list_action_events("chat-8") == []


def test_batch_sees_earlier_actions(store, make_action):
    seed_default_financial_plan(store)
    results = apply_intent_actions(store, [
        make_action("add-item", "asset", "a new asset called gold", 1000),
        make_action("add-item", "asset", "gold", 500),
    ], "intent-9")

    gold = [a for a in store.assets.list() if a.name == "gold"]
    assert len(gold) == 1
    assert gold[0].current_value == 1500
    assert results[0]["id"] == results[1]["id"] == gold[0].id


def test_unknown_planner_field_is_rejected(store, make_action):
    seed_default_financial_plan(store)
    hdb = next(s for s in store.scenarios.list() if s.type == "hdb")
    with pytest.raises(IntentDispatchError, match="bogusField"):
        apply_intent_actions(store, [make_action(
            "update", "property-planner", "hdb", 123,
            planner_scenario_type="hdb", planner_field="bogusField",
        )], "intent-10")
    assert store.scenarios.get(hdb.id).inputs == hdb.inputs
