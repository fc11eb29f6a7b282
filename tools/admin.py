from tools.mortgage import default_scenarios
from tools.plan import FinancialPlan, build_default_financial_plan


def clear_financial_plan_data(store) -> None:
    for resource in (store.assets, store.liabilities, store.incomes, store.expenses, store.scenarios):
        for record in resource.list():
            resource.delete(record.id)


def seed_default_financial_plan(store) -> FinancialPlan:
    """Replace whatever is stored with the demo plan and the three sample scenarios."""
    plan = build_default_financial_plan()
    clear_financial_plan_data(store)

    for asset in plan.assets:
        store.assets.create(asset)
    for liability in plan.liabilities:
        store.liabilities.create(liability)
    for income in plan.incomes:
        store.incomes.create(income)
    for expense in plan.expenses:
        store.expenses.create(expense)
    for scenario in default_scenarios():
        store.scenarios.create(scenario)
    return plan
