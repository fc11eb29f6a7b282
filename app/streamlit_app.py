import os
import uuid
from datetime import date

import pandas as pd
import streamlit as st

from assistant.answer import synthesize_answer
from assistant.dispatcher import IntentDispatchError, apply_intent_actions, preview_intent_actions
from assistant.intent import IntentParseError, parse_intent
from tools.cpf import (
    calculate_cpf_contribution,
    decode_cpf_salary_metadata,
    get_cpf_contribution_description,
    normalize_salary_amount,
)
from tools.cpf_auto import (
    check_existing_cpf_contributions,
    create_cpf_contributions,
    save_income,
    update_cpf_contributions,
)
from tools.finance_client import FinancialClient, FinancialClientError
from tools.formatting import fmt_money, fmt_money_compact, fmt_pct, format_confirmation_summary, net_worth_status
from tools.models import FREQUENCIES, Asset, Expense, Income, Liability, ValidationError, utc_now_iso
from tools.mortgage import PLANNER_TYPES, apply_scenario, max_loan_at_msr_limit, refresh_scenario, sample_scenario
from tools.net_worth import build_age_timeline, compute_net_worth, default_assumptions
from tools.plan import (
    build_financial_context,
    build_financial_plan,
    generate_projection_summary,
    summary_changes,
    validate_projection_settings,
)
from tools.store import FinancialStore, StoreError

st.set_page_config(page_title="SG Finance Assistant", layout="wide")
st.title("🇸🇬 SG Finance Assistant")

BACKEND_ERRORS = (StoreError, FinancialClientError)


@st.cache_resource
def get_store():
    # Point FINANCE_API_URL at a running `api.main` to share one DuckDB file with the API
    url = os.getenv("FINANCE_API_URL")
    return FinancialClient(url) if url else FinancialStore()

store = get_store()

if isinstance(store, FinancialClient):
    st.caption(f"Data: remote backend at {store.base_url}")
else:
    st.caption("Data: local DuckDB store • seed it with `python db/init_duckdb.py --seed`")

try:
    plan = build_financial_plan(store)
except BACKEND_ERRORS as e:
    st.error(f"Could not load your financial plan: {e}")
    st.stop()

defaults = default_assumptions()

with st.sidebar:
    st.header("Profile")
    current_age = st.number_input("Current age", min_value=18, max_value=100, value=32, step=1)
    retirement_age = st.number_input(
        "Retirement age", min_value=19, max_value=100, value=defaults.default_retirement_age, step=1
    )

    st.divider()
    st.header("Assumptions")
    inflation = st.slider("Inflation % p.a.", 0.0, 20.0, defaults.inflation_rate * 100, 0.5) / 100
    growth = st.slider("Default asset growth % p.a.", -50.0, 50.0, defaults.default_asset_growth_rate * 100, 0.5) / 100

    problems = validate_projection_settings(current_age, retirement_age, inflation, growth)
    for p in problems:
        st.warning(p)


tabs = st.tabs(["Overview", "Data", "CPF", "Property Planner", "Chat"])

with tabs[0]:
    st.subheader("Overview")
    s = plan.summary
    c1, c2, c3, c4 = st.columns(4)
    with c1:
        st.metric("Net Worth", fmt_money(s.net_worth), help=net_worth_status(s.net_worth))
    with c2:
        st.metric("Assets", fmt_money_compact(s.total_assets))
        st.caption(f"Liabilities: {fmt_money_compact(s.total_liabilities)}")
    with c3:
        st.metric("Monthly Savings", fmt_money(s.monthly_savings))
        st.caption(f"{fmt_money(s.monthly_income)} in • {fmt_money(s.monthly_expenses)} out")
    with c4:
        st.metric("Savings Rate", fmt_pct(s.savings_rate))

    st.divider()
    if problems:
        st.info("Fix the profile settings in the sidebar to see the projection.")
    else:
        points = compute_net_worth(
            plan.assets,
            plan.liabilities,
            plan.cashflow,
            current_age,
            retirement_age,
            assumptions={"inflation_rate": inflation, "default_asset_growth_rate": growth},
        )
        st.write(generate_projection_summary(points, current_age, retirement_age))
        df = build_age_timeline(points, current_age)
        if not df.empty:
            st.line_chart(df.set_index("age")[["assets", "liabilities", "net_worth"]])
            with st.expander("Projection table"):
                st.dataframe(df, use_container_width=True)

with tabs[1]:
    st.subheader("Your Data")

    def _table(records, columns):
        if not records:
            st.caption("Nothing here yet.")
            return
        st.dataframe(pd.DataFrame([{c: getattr(r, c) for c in columns} for r in records]), use_container_width=True)

    def _delete_picker(label, records, name_attr, resource):
        if not records:
            return
        options = {f"{getattr(r, name_attr)} ({r.id[:8]})": r.id for r in records}
        choice = st.selectbox(f"Delete {label}", ["—"] + list(options), key=f"del-{label}")
        if choice != "—" and st.button(f"Delete {label}", key=f"del-btn-{label}"):
            resource.delete(options[choice])
            st.rerun()

    col_a, col_l = st.columns(2)
    with col_a:
        st.write("**Assets**")
        _table(plan.assets, ["name", "category", "current_value", "annual_growth_rate"])
        with st.form("add-asset", clear_on_submit=True):
            name = st.text_input("Name")
            category = st.text_input("Category", "cash")
            value = st.number_input("Current value (SGD)", min_value=0.0, step=1000.0)
            rate = st.number_input("Annual growth %", value=5.0, step=0.5)
            if st.form_submit_button("Add asset"):
                try:
                    store.assets.create(Asset(name, category, value, rate / 100))
                    st.rerun()
                except BACKEND_ERRORS as e:
                    st.error(str(e))
        _delete_picker("asset", plan.assets, "name", store.assets)

    with col_l:
        st.write("**Liabilities**")
        _table(plan.liabilities, ["name", "category", "current_balance", "interest_rate_apr", "minimum_payment"])
        with st.form("add-liability", clear_on_submit=True):
            name = st.text_input("Name")
            category = st.text_input("Category", "loan")
            balance = st.number_input("Balance (SGD)", min_value=0.0, step=1000.0)
            apr = st.number_input("Interest % p.a.", value=3.0, step=0.1)
            payment = st.number_input("Minimum monthly payment", min_value=0.0, step=50.0)
            if st.form_submit_button("Add liability"):
                try:
                    store.liabilities.create(Liability(name, category, balance, apr / 100, payment))
                    st.rerun()
                except BACKEND_ERRORS as e:
                    st.error(str(e))
        _delete_picker("liability", plan.liabilities, "name", store.liabilities)

    st.divider()
    col_i, col_e = st.columns(2)
    with col_i:
        st.write("**Incomes**")
        _table(plan.incomes, ["source", "amount", "frequency", "category"])
        for i in plan.incomes:
            meta = decode_cpf_salary_metadata(i.notes)
            if meta:
                st.caption(
                    f"{i.source}: {fmt_money(meta.gross_amount)} gross, {fmt_money(meta.net_amount)} take-home "
                    f"(entered as {meta.input_type})"
                )
        with st.form("add-income", clear_on_submit=True):
            source = st.text_input("Source")
            amount = st.number_input("Amount (SGD)", min_value=0.0, step=100.0)
            frequency = st.selectbox("Frequency", FREQUENCIES, index=FREQUENCIES.index("monthly"))
            category = st.text_input("Category", "employment")
            input_type = st.radio("Salary amount is", ["gross", "net"], horizontal=True)
            if st.form_submit_button("Add income"):
                try:
                    out = save_income(
                        store, Income(source, amount, frequency, utc_now_iso(), category),
                        input_type=input_type, age=current_age,
                    )
                    if out["cpf_contributions"] == "failed":
                        st.warning("Salary saved, but the CPF contribution incomes could not be added.")
                    else:
                        st.rerun()
                except (ValidationError,) + BACKEND_ERRORS as e:
                    st.error(str(e))
        _delete_picker("income", plan.incomes, "source", store.incomes)

    with col_e:
        st.write("**Expenses**")
        _table(plan.expenses, ["payee", "amount", "frequency", "category"])
        with st.form("add-expense", clear_on_submit=True):
            payee = st.text_input("Payee")
            amount = st.number_input("Amount (SGD)", min_value=0.0, step=50.0)
            frequency = st.selectbox("Frequency", FREQUENCIES, index=FREQUENCIES.index("monthly"))
            category = st.text_input("Category", "living")
            if st.form_submit_button("Add expense"):
                try:
                    store.expenses.create(Expense(payee, amount, frequency, category))
                    st.rerun()
                except BACKEND_ERRORS as e:
                    st.error(str(e))
        _delete_picker("expense", plan.expenses, "payee", store.expenses)

with tabs[2]:
    st.subheader("CPF Contributions")
    st.caption("Ordinary wage contributions with age bands and the monthly salary ceiling. Verify on cpf.gov.sg.")

    col1, col2 = st.columns(2)
    with col1:
        input_type = st.radio("Salary entered as", ["gross", "net"], horizontal=True)
        salary = st.number_input("Monthly salary (SGD)", min_value=0.0, value=6000.0, step=100.0)
        ref_date = st.date_input("As of", value=date.today())
    normalized = normalize_salary_amount(salary, input_type, current_age, ref_date)
    gross = normalized["gross_salary"]
    calc = calculate_cpf_contribution(gross, current_age, ref_date)
    with col2:
        st.metric("Gross salary", fmt_money(gross))
        st.metric("Take-home", fmt_money(normalized["net_salary"]))
        st.write(f"- Employee: **{fmt_money(calc.employee_amount)}**")
        st.write(f"- Employer: **{fmt_money(calc.employer_amount)}**")
        st.write(f"- Total: **{fmt_money(calc.total_amount)}**")
        st.caption(get_cpf_contribution_description(gross, current_age, ref_date))

    has_cpf = check_existing_cpf_contributions(store)
    if st.button("Update CPF incomes" if has_cpf else "Add CPF incomes to my plan"):
        try:
            if has_cpf:
                update_cpf_contributions(store, gross, current_age, ref_date)
            else:
                create_cpf_contributions(store, gross, current_age, ref_date)
            st.rerun()
        except BACKEND_ERRORS as e:
            st.error(str(e))

with tabs[3]:
    st.subheader("Property Planner")
    try:
        scenarios = store.scenarios.list()
    except BACKEND_ERRORS as e:
        st.error(str(e))
        scenarios = []

    missing = [t for t in PLANNER_TYPES if t not in {s.type for s in scenarios}]
    if missing:
        new_type = st.selectbox("Add a sample scenario", missing)
        if st.button("Add scenario"):
            store.scenarios.create(sample_scenario(new_type))
            st.rerun()

    for sc in scenarios:
        with st.expander(f"{sc.type.upper()} • {sc.headline}", expanded=len(scenarios) == 1):
            st.caption(sc.subheadline)
            c1, c2, c3 = st.columns(3)
            with c1:
                st.metric("Monthly instalment", fmt_money(sc.snapshot.monthly_payment))
            with c2:
                st.metric("Total interest", fmt_money_compact(sc.snapshot.total_interest))
            with c3:
                st.metric("MSR", fmt_pct(sc.snapshot.msr_ratio))
                st.caption(f"Loan ends {sc.snapshot.loan_end_date}")
            st.caption(f"Income supports a loan of up to {fmt_money(max_loan_at_msr_limit(sc.inputs))} within the MSR limit.")

            with st.form(f"edit-{sc.id}"):
                loan = st.number_input("Loan amount", min_value=0.0, value=float(sc.inputs.loan_amount), step=10000.0)
                term = st.slider("Tenure (years)", 5, 35, int(sc.inputs.loan_term_years))
                rate = st.number_input("Fixed rate % p.a.", min_value=0.0, value=float(sc.inputs.fixed_rate), step=0.05)
                income = st.number_input(
                    "Household income", min_value=0.0, value=float(sc.inputs.household_income), step=500.0
                )
                if st.form_submit_button("Recalculate"):
                    sc.inputs.loan_amount, sc.inputs.loan_term_years = loan, term
                    sc.inputs.fixed_rate, sc.inputs.household_income = rate, income
                    updated = refresh_scenario(sc)
                    updated.last_refreshed = utc_now_iso()
                    store.scenarios.update(updated)
                    st.rerun()

            balances = pd.DataFrame([{"year": p.year, "balance": p.balance} for p in sc.amortization.balance_points])
            if not balances.empty:
                st.line_chart(balances.set_index("year"))

            b1, b2 = st.columns(2)
            with b1:
                if st.button("Apply to my plan", key=f"apply-{sc.id}"):
                    try:
                        apply_scenario(store, sc.id)
                        st.rerun()
                    except (ValidationError,) + BACKEND_ERRORS as e:
                        st.error(str(e))
            with b2:
                if st.button("Remove scenario", key=f"rm-{sc.id}"):
                    store.scenarios.delete(sc.id)
                    st.rerun()

with tabs[4]:
    st.subheader("Chat")
    st.caption("Ask about your finances, or describe a change (e.g. 'my emergency fund is now 30k').")

    if "chat_id" not in st.session_state:
        st.session_state.chat_id = uuid.uuid4().hex
    st.session_state.setdefault("messages", [])
    st.session_state.setdefault("pending", None)

    for m in st.session_state.messages:
        with st.chat_message(m["role"]):
            st.markdown(m["content"])

    pending = st.session_state.pending
    if pending:
        st.write("**Pending changes**")
        for a in pending["actions"]:
            amount = fmt_money(a.amount) if a.amount is not None else "—"
            st.write(f"- `{a.verb}` {a.entity} **{a.target}**: {amount}")
        try:
            preview = preview_intent_actions(plan, pending["actions"])
            st.caption(format_confirmation_summary(summary_changes(plan, preview)))
        except IntentDispatchError as e:
            st.warning(str(e))

        c1, c2 = st.columns(2)
        with c1:
            if st.button("Confirm"):
                try:
                    apply_intent_actions(store, pending["actions"], pending["intent_id"], st.session_state.chat_id)
                    st.session_state.messages.append({"role": "assistant", "content": "Done, your plan is updated."})
                    st.session_state.pending = None
                    st.rerun()
                except (IntentDispatchError, *BACKEND_ERRORS) as e:
                    st.error(str(e))
        with c2:
            if st.button("Dismiss"):
                st.session_state.pending = None
                st.rerun()

    message = st.chat_input("Message")
    if message:
        history = list(st.session_state.messages)
        st.session_state.messages.append({"role": "user", "content": message})
        ans = synthesize_answer(message, plan, history, current_age)
        st.session_state.messages.append({"role": "assistant", "content": ans["answer_markdown"]})
        try:
            result = parse_intent(message, build_financial_context(plan))
            if result.actions:
                st.session_state.pending = {"intent_id": uuid.uuid4().hex, "actions": result.actions}
        except IntentParseError as e:
            # answers still show; only the change review is skipped
            st.session_state.pending = None
            if ans["intent_hint"]:
                st.session_state.messages.append({"role": "assistant", "content": f"_{e}_"})
        st.rerun()


st.write("")
st.caption("Estimates only. CPF rates and ceilings change over time; confirm on the official CPF and HDB pages.")
