import os
import re
from typing import Dict, List, Optional

from openai import OpenAI

from tools.cpf import DEFAULT_SALARY_AGE
from tools.formatting import fmt_money, format_summary_text
from tools.net_worth import compute_net_worth, default_assumptions
from tools.plan import FinancialPlan, build_financial_context

_ACTION_WORDS = re.compile(
    r"\b(add|added|increase|increased|update|set|change|remove|delete|paid|pay off|reduce|reduced|bought|sold|"
    r"raise|got a|new)\b",
    re.IGNORECASE,
)
_HISTORY_TURNS = 6


def looks_like_intent(message: str) -> bool:
    """Cheap check for messages that probably describe a change to the plan."""
    return bool(_ACTION_WORDS.search(message or "")) and bool(re.search(r"\d", message or ""))


def synthesize_answer(
    message: str,
    plan: FinancialPlan,
    history: Optional[List[Dict[str, str]]] = None,
    current_age: int = DEFAULT_SALARY_AGE,
) -> Dict:
    """
    If OPENAI_API_KEY set, ask the model to answer using the plan as context.
    Else, return a short deterministic summary of the plan.
    """
    intent_hint = looks_like_intent(message)

    if os.getenv("OPENAI_API_KEY"):
        client = OpenAI()
        prompt = f"""You are a personal finance assistant for someone living in Singapore. Answer the user's question using ONLY the financial state below.
Be concise, use bullet points where it helps, and show amounts in dollars. Do not invent accounts that are not listed.
If the user describes a change to their finances, acknowledge it briefly; the change is applied separately after they confirm.

Financial state:
{build_financial_context(plan)}
"""
        messages = [{"role": "system", "content": prompt}]
        for turn in (history or [])[-_HISTORY_TURNS:]:
            if turn.get("role") in ("user", "assistant") and turn.get("content"):
                messages.append({"role": turn["role"], "content": turn["content"]})
        messages.append({"role": "user", "content": message})

        resp = client.chat.completions.create(
            model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            messages=messages,
            temperature=0.2,
        )
        return {"answer_markdown": resp.choices[0].message.content, "intent_hint": intent_hint}

    # Fallback: deterministic plan summary
    retirement_age = default_assumptions().default_retirement_age
    points = compute_net_worth(plan.assets, plan.liabilities, plan.cashflow, current_age, retirement_age)
    bullets = [
        f"- {format_summary_text(plan)}",
        f"- Assets {fmt_money(plan.summary.total_assets)}, liabilities {fmt_money(plan.summary.total_liabilities)}.",
    ]
    if points:
        bullets.append(f"- Projected net worth at {retirement_age}: {fmt_money(points[-1].net_worth)}.")
    if intent_hint:
        bullets.append("- This looks like a change to your plan; review the pending actions below to confirm.")
    answer_md = "**Your plan at a glance (offline summary):**\n" + "\n".join(bullets)
    return {"answer_markdown": answer_md, "intent_hint": intent_hint}
