"""CRUD routers over the entity resources of whichever backend is active."""
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Body, Depends, Response

from tools.cpf_auto import save_income
from tools.models import Asset, Expense, Income, Liability, PropertyScenario, from_payload, to_payload
from tools.mortgage import refresh_scenario


def deep_merge(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """Merge `patch` over `base`; nested dicts merge key by key, anything else is replaced."""
    merged = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _save_default(store, resource_name: str, record, payload: Dict[str, Any], create: bool):
    res = getattr(store, resource_name)
    return res.create(record) if create else res.update(record)


def _save_income(store, resource_name: str, record, payload: Dict[str, Any], create: bool):
    result = save_income(store, record, create=create, input_type=payload.get("salaryInputType", "gross"))
    return result["income"]


def _save_scenario(store, resource_name: str, record, payload: Dict[str, Any], create: bool):
    # amortization and snapshot are derived from the inputs
    return _save_default(store, resource_name, refresh_scenario(record), payload, create)


def build_crud_router(
    prefix: str,
    resource_name: str,
    cls,
    get_store: Callable,
    on_change: Callable,
    save: Optional[Callable] = None,
) -> APIRouter:
    """
    One router per resource: GET list, POST create, GET/PATCH/DELETE by id.
    `save` writes a built record (defaults to the resource's create/update);
    `on_change` runs after every write so cached plans can be dropped.
    """
    router = APIRouter(prefix=prefix)
    save = save or _save_default

    def resource(store=Depends(get_store)):
        return getattr(store, resource_name)

    @router.get("")
    def list_records(res=Depends(resource)):
        return [to_payload(r) for r in res.list()]

    @router.post("", status_code=201)
    def create_record(payload: Dict[str, Any] = Body(...), store=Depends(get_store)):
        created = save(store, resource_name, from_payload(cls, payload), payload, True)
        on_change()
        return to_payload(created)

    @router.get("/{record_id}")
    def get_record(record_id: str, res=Depends(resource)):
        return to_payload(res.get(record_id))

    @router.patch("/{record_id}")
    def update_record(record_id: str, payload: Dict[str, Any] = Body(...), store=Depends(get_store)):
        current = to_payload(getattr(store, resource_name).get(record_id))
        merged = deep_merge(current, payload)
        merged["id"] = record_id
        updated = save(store, resource_name, from_payload(cls, merged), payload, False)
        on_change()
        return to_payload(updated)

    @router.delete("/{record_id}", status_code=204)
    def delete_record(record_id: str, res=Depends(resource)):
        res.delete(record_id)
        on_change()
        return Response(status_code=204)

    return router


# (prefix, store attribute, record class, save hook)
CRUD_RESOURCES = [
    ("/assets", "assets", Asset, None),
    ("/liabilities", "liabilities", Liability, None),
    ("/cashflow/incomes", "incomes", Income, _save_income),
    ("/cashflow/expenses", "expenses", Expense, None),
    ("/property-planner/scenarios", "scenarios", PropertyScenario, _save_scenario),
]
