def fmt_money(x):
    try:
        if x < 0:
            return f"-${-x:,.0f}"
        return f"${x:,.0f}"
    except Exception:
        return "-"

def fmt_money_compact(x):
    try:
        if abs(x) >= 1_000_000:
            return f"${x / 1_000_000:.1f}M"
        if abs(x) >= 1_000:
            return f"${x / 1_000:.1f}K"
        return fmt_money(x)
    except Exception:
        return "-"

def fmt_pct(x, decimals=1):
    try:
        return f"{x * 100:.{decimals}f}%"
    except Exception:
        return "-"

def net_worth_status(net_worth: float) -> str:
    if net_worth >= 1_000_000:
        return "Millionaire"
    if net_worth >= 500_000:
        return "Half Millionaire"
    if net_worth >= 100_000:
        return "Six Figures"
    if net_worth >= 0:
        return "Positive Net Worth"
    if net_worth >= -50_000:
        return "Building Wealth"
    return "High Debt"

def format_summary_text(plan) -> str:
    s = plan.summary
    return (
        f"Current net worth: {fmt_money(s.net_worth)}. "
        f"Saving {fmt_money(s.monthly_savings)}/month ({fmt_pct(s.savings_rate)} savings rate)."
    )

_CHANGE_LABELS = {
    "total_assets": "Assets",
    "total_liabilities": "Liabilities",
    "monthly_income": "Monthly Income",
    "monthly_expenses": "Monthly Expenses",
}

def format_confirmation_summary(changes: dict) -> str:
    parts = [f"{label}: {fmt_money(changes[key])}" for key, label in _CHANGE_LABELS.items() if key in changes]
    if not parts:
        return "No changes to apply."
    return "Updating: " + ", ".join(parts)
