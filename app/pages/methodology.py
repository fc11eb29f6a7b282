import pandas as pd
import streamlit as st

from tools.policy import POLICY_PATH, policy_section

st.set_page_config(page_title="Methodology • SG Finance Assistant", layout="wide")
st.title("🧩 Methodology")
st.caption("How the numbers are produced, and which assumptions drive them")

st.markdown("""
## Architecture Overview
The app has three cooperating layers:

1. **Financial Store (DuckDB or remote backend)**
   - Assets, liabilities, incomes, expenses and property-planner scenarios.
   - An append-only log of confirmed chat actions.
   - Served over HTTP by the FastAPI app in `api/main.py`.

2. **Deterministic Calculators**
   - **Cash flow**: every income/expense converted to a monthly amount
     (weekly × 52/12, biweekly × 26/12, quarterly ÷ 3, yearly ÷ 12).
   - **Net-worth projection**: yearly compounding of assets, yearly
     paydown of liabilities from their minimum payments, savings spread across assets by value.
   - **CPF**: age-banded contribution rates capped at the ordinary wage ceiling.
   - **Mortgage planner**: annuity payment, yearly amortisation, MSR ratio.

3. **Chat & Intents**
   - Questions are answered from your plan (OpenAI if a key is set, else an offline summary).
   - Requests that change the plan are turned into structured actions you confirm before anything is saved.
""")

st.markdown("---")
st.header("Current Assumptions")
st.caption(f"Loaded from `{POLICY_PATH.name}` on every page load. Edit the YAML to change them.")

projection = policy_section("projection")
if projection:
    st.subheader("Projection")
    st.table(pd.DataFrame([{"assumption": k, "value": v} for k, v in projection.items()]))

cpf = policy_section("cpf")
if cpf.get("rate_bands"):
    st.subheader("CPF rate bands")
    st.caption("Bands are checked in order; the first band containing the age wins.")
    st.table(pd.DataFrame(cpf["rate_bands"]))
if cpf.get("salary_ceilings"):
    st.subheader("CPF salary ceilings")
    st.table(pd.DataFrame(cpf["salary_ceilings"]))

intent = policy_section("intent")
if intent:
    st.subheader("Records created from chat")
    st.table(pd.DataFrame([{"default": k, "value": v} for k, v in intent.items()]))

st.markdown("---")
st.header("Chat Intent Flow")
st.graphviz_chart("""
digraph Intent {
  graph [rankdir=LR, fontsize=10];
  node [shape=box, style="rounded,filled", fillcolor="#eef6ff"];

  User[label="Chat message\\n(e.g., 'my portfolio is now 90k')", fillcolor="#e8fff2"];
  Context[label="Plan context\\n(entities + summary)"];
  LLM[label="Intent extraction\\n(JSON actions, validated)"];
  Review[label="Pending actions\\n(preview of new totals)"];
  Apply[label="Apply on confirm\\n(store + audit log)", fillcolor="#e8fff2"];

  User -> LLM; Context -> LLM; LLM -> Review -> Apply;
}
""")

st.markdown("""
---

## Repro & Refresh
- **Seed demo data**: `python db/init_duckdb.py --seed`
- **Start the API**: `uvicorn api.main:app --reload`
- **Start the UI**: `streamlit run app/streamlit_app.py`

## Validation
- Unit tests cover cash-flow conversion, projections, CPF bands, mortgage maths and the intent flow.
- Figures are estimates; confirm CPF and HDB rules on the official pages.
""")
