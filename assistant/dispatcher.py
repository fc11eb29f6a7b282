"""
Applies confirmed intent actions to the financial plan.

Two paths share the same resolution rules: `preview_intent_actions` works on a
copy of an in-memory plan, `apply_intent_actions` persists to a store and
leaves an audit trail. Resolution decides, per action, whether a record is
created, set to a new value or deleted.
"""
import logging
import re
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from assistant.intent import IntentAction
from assistant.llm import PROPERTY_PLANNER_FIELDS
from tools.cashflow import compute_monthly_cash_flow, round_cents
from tools.models import Asset, Expense, Income, Liability, ValidationError, camel, snake, utc_now_iso, validate
from tools.mortgage import PLANNER_TYPES, refresh_scenario, sample_scenario
from tools.plan import FinancialPlan, recalc_summary
from tools.policy import policy_section

logger = logging.getLogger(__name__)


class IntentDispatchError(Exception):
    pass


def _intent_defaults() -> Dict[str, Any]:
    cfg = policy_section("intent")
    return {
        "asset_growth_rate": float(cfg.get("asset_growth_rate", 0.05)),
        "liability_interest_rate": float(cfg.get("liability_interest_rate", 0.05)),
        "liability_min_payment_factor": float(cfg.get("liability_min_payment_factor", 0.02)),
        "created_note": cfg.get("created_note", "Added via chat intent"),
        "created_category": cfg.get("created_category", "chat"),
    }


def derive_entity_name(target: Optional[str], fallback: str) -> str:
    if not target:
        return fallback
    name = target.strip()
    m = re.search(r"(?:called|named)\s+(.+)", name, re.IGNORECASE)
    if m:
        name = m.group(1)
    name = re.sub(r"^(a|an)\s+new\s+", "", name, flags=re.IGNORECASE)
    name = re.sub(r"\b(asset|liability|income|expense)\b", "", name, flags=re.IGNORECASE)
    name = re.sub(r"\s+", " ", name).strip()
    return name or fallback


def _new_asset(action: IntentAction, d) -> Asset:
    return Asset(
        name=derive_entity_name(action.target, "New Asset"),
        category=d["created_category"],
        current_value=max(0.0, action.amount),
        annual_growth_rate=d["asset_growth_rate"],
        notes=d["created_note"],
    )


def _new_liability(action: IntentAction, d) -> Liability:
    balance = max(0.0, action.amount)
    return Liability(
        name=derive_entity_name(action.target, "New Liability"),
        category=d["created_category"],
        current_balance=balance,
        interest_rate_apr=d["liability_interest_rate"],
        minimum_payment=round_cents(balance * d["liability_min_payment_factor"]),
        notes=d["created_note"],
    )


def _new_income(action: IntentAction, d) -> Income:
    return Income(
        source=derive_entity_name(action.target, "New Income"),
        amount=max(0.0, action.amount),
        frequency="monthly",
        start_date=utc_now_iso(),
        category=d["created_category"],
        notes=d["created_note"],
    )


def _new_expense(action: IntentAction, d) -> Expense:
    return Expense(
        payee=derive_entity_name(action.target, "New Expense"),
        amount=max(0.0, action.amount),
        frequency="monthly",
        category=d["created_category"],
        notes=d["created_note"],
    )


@dataclass
class EntityKind:
    plural: str          # plan attribute and store resource name
    name_field: str
    value_field: str
    factory: Callable
    # income/expense records cannot hold a zero amount
    delete_at_zero: bool = False


ENTITY_KINDS = {
    "asset": EntityKind("assets", "name", "current_value", _new_asset),
    "liability": EntityKind("liabilities", "name", "current_balance", _new_liability),
    "income": EntityKind("incomes", "source", "amount", _new_income, delete_at_zero=True),
    "expense": EntityKind("expenses", "payee", "amount", _new_expense, delete_at_zero=True),
}


def find_matching_record(records: Sequence[Any], kind: EntityKind, target: Optional[str]):
    """Exact case-insensitive name first, then a record whose name contains the target."""
    needle = (target or "").strip().lower()
    if not needle:
        return None
    names = [(r, (getattr(r, kind.name_field) or "").strip().lower()) for r in records]
    for record, name in names:
        if name == needle:
            return record
    for record, name in names:
        if needle in name:
            return record
    return None


@dataclass
class Resolution:
    op: str              # "create" | "set" | "delete"
    record: Any
    value: Optional[float] = None


def _require_amount(action: IntentAction) -> float:
    if action.amount is None:
        raise IntentDispatchError(f'Amount is required to {action.verb} "{action.target}"')
    return action.amount


def resolve_action(records: Sequence[Any], action: IntentAction) -> Resolution:
    kind = ENTITY_KINDS.get(action.entity)
    if kind is None:
        raise IntentDispatchError(f"Unsupported entity: {action.entity}")
    match = find_matching_record(records, kind, action.target)

    if match is None:
        if action.verb == "add-item" and action.amount is not None:
            return Resolution("create", kind.factory(action, _intent_defaults()))
        if action.verb == "add-item":
            _require_amount(action)
        raise IntentDispatchError(f'No {action.entity} matching "{action.target}"')

    current = getattr(match, kind.value_field) or 0.0
    if action.verb == "add-item":
        value = current + _require_amount(action)
    elif action.verb == "update":
        value = _require_amount(action)
    elif action.verb == "remove-item":
        if action.amount is None:
            return Resolution("delete", match)
        value = current - action.amount
    else:
        raise IntentDispatchError(f"Unsupported verb: {action.verb}")

    value = round_cents(max(0.0, value))
    if kind.delete_at_zero and value == 0:
        return Resolution("delete", match)
    return Resolution("set", match, value)


# ---------- preview (pure) ----------

def preview_intent_actions(plan: FinancialPlan, actions: Sequence[IntentAction]) -> FinancialPlan:
    """Plan as it would look after the actions; `plan` itself is left untouched."""
    draft = plan.copy()
    for action in actions:
        if action.entity == "property-planner":
            # scenarios are not part of the plan totals
            continue
        kind = ENTITY_KINDS.get(action.entity)
        records = getattr(draft, kind.plural) if kind else []
        res = resolve_action(records, action)
        if res.op == "create":
            res.record.id = f"preview-{action.id}"
            records.append(res.record)
        elif res.op == "delete":
            records.remove(res.record)
        else:
            setattr(res.record, kind.value_field, res.value)

    draft.cashflow = compute_monthly_cash_flow(draft.incomes, draft.expenses)
    draft.last_updated = utc_now_iso()
    return recalc_summary(draft)


# ---------- persisted ----------

class _Draft:
    """
    Store snapshot a batch is resolved against. Writes are staged while the
    batch resolves and only sent to the store once every action succeeded.
    """

    def __init__(self, store):
        self._store = store
        self._records: Dict[str, List[Any]] = {}
        self._writes: List[tuple] = []

    def records(self, plural: str) -> List[Any]:
        if plural not in self._records:
            self._records[plural] = getattr(self._store, plural).list()
        return self._records[plural]

    def stage(self, plural: str, op: str, record, outcome: Dict[str, Any]) -> Dict[str, Any]:
        if op != "delete":
            try:
                validate(record)
            except ValidationError as e:
                raise IntentDispatchError(str(e)) from e
        self._writes.append((plural, op, record, outcome))
        return outcome

    def commit(self) -> None:
        for plural, op, record, outcome in self._writes:
            resource = getattr(self._store, plural)
            if op == "create":
                record.id = resource.create(record).id
            elif op == "update":
                resource.update(record)
            else:
                resource.delete(record.id)
            outcome["id"] = record.id


def _stage_entity_action(draft: _Draft, action: IntentAction) -> Dict[str, Any]:
    kind = ENTITY_KINDS[action.entity]
    records = draft.records(kind.plural)
    res = resolve_action(records, action)
    if res.op == "create":
        records.append(res.record)
        return draft.stage(kind.plural, "create", res.record, {"op": "create", "id": None})
    if res.op == "delete":
        records.remove(res.record)
        return draft.stage(kind.plural, "delete", res.record, {"op": "delete", "id": res.record.id})
    setattr(res.record, kind.value_field, res.value)
    if action.entity == "liability" and res.record.minimum_payment > res.value:
        res.record.minimum_payment = res.value
    return draft.stage(kind.plural, "update", res.record, {"op": "set", "id": res.record.id, "value": res.value})


_TEXT_PLANNER_FIELDS = ("headline", "subheadline", "loanStartMonth", "borrowerType")
_INT_PLANNER_FIELDS = ("loanTermYears", "fixedYears")


def _find_scenario(scenarios: Sequence[Any], action: IntentAction):
    scenario_type = (action.metadata.get("planner_scenario_type") or "").lower()
    if scenario_type:
        return scenario_type, next((s for s in scenarios if s.type == scenario_type), None)
    needle = (action.target or "").strip().lower()
    for s in scenarios:
        if s.type in needle or (needle and needle in s.headline.lower()):
            return s.type, s
    return "", None


def _apply_planner_field(scenario, field_name: str, action: IntentAction):
    if field_name not in PROPERTY_PLANNER_FIELDS:
        raise IntentDispatchError(f'Unknown planner field "{field_name}"')
    if field_name in _TEXT_PLANNER_FIELDS:
        value = action.metadata.get("planner_string_value")
        if not value:
            raise IntentDispatchError(f"A text value is required for {field_name}")
    else:
        value = _require_amount(action)
        if field_name in _INT_PLANNER_FIELDS:
            value = int(round(value))

    if field_name in ("headline", "subheadline"):
        setattr(scenario, field_name, value)
    else:
        setattr(scenario.inputs, snake(field_name), value)


def _stage_planner_action(draft: _Draft, action: IntentAction) -> Dict[str, Any]:
    scenarios = draft.records("scenarios")
    scenario_type, scenario = _find_scenario(scenarios, action)

    if action.verb == "add-item":
        if scenario is not None:
            return {"op": "noop", "id": scenario.id}
        if scenario_type not in PLANNER_TYPES:
            raise IntentDispatchError(f'Unknown planner scenario type "{scenario_type}"')
        created = sample_scenario(scenario_type)
        scenarios.append(created)
        return draft.stage("scenarios", "create", created, {"op": "create", "id": None})

    if scenario is None:
        raise IntentDispatchError(f'No planner scenario matching "{action.target}"')

    if action.verb == "remove-item":
        scenarios.remove(scenario)
        return draft.stage("scenarios", "delete", scenario, {"op": "delete", "id": scenario.id})

    field_name = action.metadata.get("planner_field")
    if not field_name:
        raise IntentDispatchError("plannerField is required to update a planner scenario")
    field_name = camel(snake(field_name))
    _apply_planner_field(scenario, field_name, action)
    refreshed = refresh_scenario(scenario)
    scenario.amortization, scenario.snapshot = refreshed.amortization, refreshed.snapshot
    scenario.last_refreshed = utc_now_iso()
    return draft.stage("scenarios", "update", scenario, {"op": "set", "id": scenario.id, "field": field_name})


def _stage_action(draft: _Draft, action: IntentAction) -> Dict[str, Any]:
    if action.entity == "property-planner":
        return _stage_planner_action(draft, action)
    if action.entity not in ENTITY_KINDS:
        raise IntentDispatchError(f"Unsupported entity: {action.entity}")
    return _stage_entity_action(draft, action)


def apply_intent_actions(
    store,
    actions: Sequence[IntentAction],
    intent_id: str,
    chat_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Persist confirmed actions and record one audit event per action.

    The batch is all-or-nothing: every action is resolved against a snapshot
    first, so an action that cannot be applied leaves the store untouched.
    On the local store the writes and audit events share one transaction.
    """
    if not actions:
        raise IntentDispatchError("No actions to apply")

    draft = _Draft(store)
    results = [_stage_action(draft, action) for action in actions]

    transaction = getattr(store, "transaction", None)
    with transaction() if transaction else nullcontext():
        draft.commit()
        for index, (action, outcome) in enumerate(zip(actions, results)):
            if hasattr(store, "record_action_event"):
                store.record_action_event(
                    intent_id=f"{intent_id}:{index}",
                    verb=action.verb,
                    entity=action.entity,
                    target=action.target,
                    amount=action.amount,
                    currency=action.currency,
                    payload={"raw": action.raw, "metadata": action.metadata, "result": outcome},
                    chat_id=chat_id,
                )
            else:
                logger.info("Audit skipped for %s:%d, backend keeps no action log", intent_id, index)

    for action, outcome in zip(actions, results):
        logger.info("Applied %s %s %r -> %s", action.verb, action.entity, action.target, outcome["op"])
    return results
