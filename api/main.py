"""
FastAPI application for the SG finance assistant.

Routes cover CRUD over the financial entities, the aggregated financial plan
(with a short in-process cache), the net-worth projection, CPF calculators,
chat answers and the intent flow: parse a message into pending actions,
preview them, then apply the confirmed ones with an audit trail.

The backend is the local DuckDB store unless FINANCE_API_URL points at a
remote financial service, in which case every entity call is proxied there.

Run locally with:  uvicorn api.main:app --reload
"""
import logging
import os
import threading
import time
import uuid
from typing import Any, Dict, Optional

import duckdb
from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.crud import CRUD_RESOURCES, build_crud_router
from api.schemas import (
    ActionsRequest,
    ApplyScenarioRequest,
    ChatRequest,
    CPFContributionRequest,
    CPFSalaryRequest,
    IntentPreviewRequest,
    IntentRequest,
    RunModelRequest,
)
from assistant.answer import synthesize_answer
from assistant.dispatcher import IntentDispatchError, apply_intent_actions, preview_intent_actions
from assistant.intent import IntentParseError, parse_intent
from tools.admin import clear_financial_plan_data, seed_default_financial_plan
from tools.cashflow import compute_monthly_cash_flow
from tools.cpf import calculate_cpf_contribution, get_cpf_contribution_description, normalize_salary_amount
from tools.cpf_auto import check_existing_cpf_contributions, create_cpf_contributions, update_cpf_contributions
from tools.finance_client import FinancialClient, FinancialClientError
from tools.formatting import format_confirmation_summary
from tools.models import ValidationError, camel, snake, to_payload
from tools.mortgage import apply_scenario
from tools.net_worth import run_model
from tools.plan import build_default_financial_plan, build_financial_context, build_financial_plan, summary_changes
from tools.store import FinancialStore, InvalidInputError, NotFoundError, StoreError

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 30.0
BACKEND_ERRORS = (StoreError, FinancialClientError, duckdb.Error)


class PlanCache:
    """Tiny TTL cache keyed by data source (MOCK / LIVE)."""

    def __init__(self, ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)

    def invalidate(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)


def build_backend():
    url = os.getenv("FINANCE_API_URL")
    if url:
        logger.info("Using remote financial backend at %s", url)
        return FinancialClient(url)
    store = FinancialStore()
    logger.info("Using local DuckDB store")
    return store


def get_store(request: Request):
    state = request.app.state
    with state.store_lock:
        if state.store is None:
            state.store = build_backend()
    return state.store


def _camel_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    return {camel(k): v for k, v in data.items()}


def _action_payload(action) -> Dict[str, Any]:
    body = to_payload(action)
    body["metadata"] = _camel_keys(action.metadata)
    return body


def _error(status: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message, **extra})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(InvalidInputError)
    async def invalid_input(request: Request, exc: InvalidInputError):
        return _error(400, str(exc))

    @app.exception_handler(ValidationError)
    async def invalid_record(request: Request, exc: ValidationError):
        return _error(400, str(exc))

    @app.exception_handler(IntentParseError)
    async def intent_parse(request: Request, exc: IntentParseError):
        return _error(400, str(exc))

    @app.exception_handler(IntentDispatchError)
    async def intent_dispatch(request: Request, exc: IntentDispatchError):
        return _error(400, str(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation(request: Request, exc: RequestValidationError):
        details = [
            {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
            for err in exc.errors()
        ]
        return _error(400, "Invalid request", details=details)

    @app.exception_handler(FinancialClientError)
    async def remote_backend(request: Request, exc: FinancialClientError):
        if exc.status in (400, 404):
            return _error(exc.status, str(exc), details=exc.details)
        logger.error("Financial backend error on %s: %s", request.url.path, exc)
        return _error(503, "Financial service unavailable", details=exc.details)

    @app.exception_handler(StoreError)
    @app.exception_handler(duckdb.Error)
    async def local_backend(request: Request, exc: Exception):
        logger.error("Store error on %s: %s", request.url.path, exc)
        return _error(503, "Financial store unavailable")

    @app.exception_handler(Exception)
    async def unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")


def create_app(store=None, cache_ttl_seconds: Optional[float] = None) -> FastAPI:
    """Build the API. Pass `store` to pin a backend (tests); otherwise one is built on first use."""
    if cache_ttl_seconds is None:
        cache_ttl_seconds = float(os.getenv("PLAN_CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS))

    app = FastAPI(
        title="SG Finance Assistant API",
        description="Financial plan CRUD, projections, CPF calculators and chat intents",
        version="0.1.0",
    )
    app.state.store = store
    app.state.store_lock = threading.Lock()
    app.state.plan_cache = PlanCache(cache_ttl_seconds)

    origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:8501").split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Cache-Status", "X-Data-Source", "Retry-After"],
    )
    register_exception_handlers(app)

    def invalidate_plan():
        app.state.plan_cache.invalidate()

    for prefix, resource_name, cls, save in CRUD_RESOURCES:
        app.include_router(build_crud_router(prefix, resource_name, cls, get_store, invalidate_plan, save))

    # ---------- health / cashflow ----------

    @app.get("/health")
    def health(store=Depends(get_store)):
        body = {"status": "ok", "backend": store.backend}
        if isinstance(store, FinancialClient):
            body["reachable"] = store.health()
        return body

    @app.get("/cashflow")
    def cashflow(store=Depends(get_store)):
        incomes, expenses = store.incomes.list(), store.expenses.list()
        return {
            "incomes": to_payload(incomes),
            "expenses": to_payload(expenses),
            "summary": to_payload(compute_monthly_cash_flow(incomes, expenses)),
        }

    # ---------- financial plan ----------

    @app.get("/financial-plan")
    def get_financial_plan(
        response: Response,
        mock: bool = False,
        refresh: bool = False,
        store=Depends(get_store),
    ):
        key = "MOCK" if mock else "LIVE"
        cached = None if refresh else app.state.plan_cache.get(key)
        if cached is not None:
            response.headers["X-Cache-Status"] = "HIT"
            response.headers["X-Data-Source"] = key
            return cached

        try:
            plan = build_default_financial_plan() if mock else build_financial_plan(store)
        except BACKEND_ERRORS as e:
            logger.error("Failed to aggregate financial data: %s", e)
            return JSONResponse(
                status_code=503,
                headers={"Retry-After": "60"},
                content={
                    "error": "Financial service unavailable",
                    "message": "The financial backend is currently unavailable. Try mock mode with ?mock=true.",
                },
            )

        payload = to_payload(plan)
        app.state.plan_cache.set(key, payload)
        response.headers["X-Cache-Status"] = "MISS"
        response.headers["X-Data-Source"] = key
        return payload

    @app.post("/financial-plan", status_code=202)
    def invalidate_financial_plan(response: Response):
        invalidate_plan()
        response.headers["X-Cache-Action"] = "INVALIDATED"
        return {"message": "Financial plan cache invalidated. Fresh data will be loaded on next request."}

    # ---------- projection ----------

    @app.post("/run-model")
    def run_projection(body: RunModelRequest):
        try:
            result = run_model(
                assets=[a.model_dump() for a in body.assets],
                liabilities=[l.model_dump() for l in body.liabilities],
                monthly_income=body.monthly_income,
                monthly_expenses=body.monthly_expenses,
                current_age=body.current_age,
                retirement_age=body.retirement_age,
                start_year=body.start_year,
                assumptions={snake(k): v for k, v in (body.assumptions or {}).items()},
            )
        except ValueError as e:
            return _error(400, str(e))
        logger.info("run-model finished in %.2f ms", result["meta"]["duration_ms"])
        return {
            "netWorthTimeline": to_payload(result["net_worth_timeline"]),
            "meta": _camel_keys(result["meta"]),
        }

    # ---------- intents ----------

    @app.post("/intent")
    def create_intent(body: IntentRequest, store=Depends(get_store)):
        try:
            context = build_financial_context(build_financial_plan(store))
        except BACKEND_ERRORS as e:
            logger.warning("Intent parsed without plan context: %s", e)
            context = None
        result = parse_intent(body.message, context)
        return {"intentId": uuid.uuid4().hex, "actions": [_action_payload(a) for a in result.actions]}

    @app.post("/intent/preview")
    def preview_intent(body: IntentPreviewRequest, store=Depends(get_store)):
        before = build_financial_plan(store)
        after = preview_intent_actions(before, [a.to_action() for a in body.actions])
        changes = summary_changes(before, after)
        return {
            "summary": to_payload(after.summary),
            "changes": _camel_keys(changes),
            "message": format_confirmation_summary(changes),
        }

    @app.post("/actions", status_code=201)
    def record_actions(body: ActionsRequest, store=Depends(get_store)):
        actions = [a.to_action() for a in body.actions]
        if body.apply:
            results = apply_intent_actions(store, actions, body.intent_id, body.chat_id)
            invalidate_plan()
            return {"applied": True, "results": results}

        if not hasattr(store, "record_action_event"):
            logger.info("Audit skipped for %s, backend keeps no action log", body.intent_id)
            return {"applied": False, "events": []}
        events = [
            store.record_action_event(
                intent_id=f"{body.intent_id}:{i}",
                verb=a.verb,
                entity=a.entity,
                target=a.target,
                amount=a.amount,
                currency=a.currency,
                payload={"raw": a.raw, "metadata": a.metadata},
                chat_id=body.chat_id,
                user_id=body.user_id,
            )
            for i, a in enumerate(actions)
        ]
        return {"applied": False, "events": [_camel_keys(e) for e in events]}

    @app.get("/actions")
    def list_actions(
        chat_id: Optional[str] = Query(None, alias="chatId"),
        limit: int = 50,
        store=Depends(get_store),
    ):
        if not hasattr(store, "list_action_events"):
            return []
        return [_camel_keys(e) for e in store.list_action_events(chat_id, limit)]

    # ---------- property planner ----------

    @app.post("/property-planner/apply")
    def apply_property_scenario(body: ApplyScenarioRequest, store=Depends(get_store)):
        ids = apply_scenario(store, body.scenario_id)
        invalidate_plan()
        return _camel_keys(ids)

    # ---------- dev toggles ----------

    @app.post("/dev/financial-plan/populate", status_code=201)
    def populate_financial_plan(store=Depends(get_store)):
        plan = seed_default_financial_plan(store)
        invalidate_plan()
        logger.info("Seeded default financial plan")
        return to_payload(plan)

    @app.post("/dev/financial-plan/clear")
    def clear_financial_plan(store=Depends(get_store)):
        clear_financial_plan_data(store)
        invalidate_plan()
        logger.info("Cleared financial plan data")
        return {"message": "Financial plan data cleared."}

    # ---------- CPF ----------

    @app.post("/cpf/contribution")
    def cpf_contribution(body: CPFContributionRequest):
        calc = calculate_cpf_contribution(body.monthly_salary, body.age, body.reference_date)
        return {
            **to_payload(calc),
            "description": get_cpf_contribution_description(body.monthly_salary, body.age, body.reference_date),
        }

    @app.post("/cpf/salary")
    def cpf_salary(body: CPFSalaryRequest, store=Depends(get_store)):
        normalized = normalize_salary_amount(body.amount, body.input_type, body.age, body.reference_date)
        out = {
            "grossSalary": normalized["gross_salary"],
            "netSalary": normalized["net_salary"],
            "cpfContribution": to_payload(normalized["cpf_contribution"]),
        }
        if body.apply:
            gross = normalized["gross_salary"]
            if check_existing_cpf_contributions(store):
                update_cpf_contributions(store, gross, body.age, body.reference_date)
                out["contributions"] = "updated"
            else:
                create_cpf_contributions(store, gross, body.age, body.reference_date)
                out["contributions"] = "created"
            invalidate_plan()
        return out

    # ---------- chat ----------

    @app.post("/chat")
    def chat(body: ChatRequest, store=Depends(get_store)):
        plan = build_financial_plan(store)
        history = [t.model_dump() for t in body.history]
        answer = synthesize_answer(body.message, plan, history, body.current_age)

        pending, intent_error = [], None
        try:
            result = parse_intent(body.message, build_financial_context(plan))
            pending = [_action_payload(a) for a in result.actions]
        except IntentParseError as e:
            # chat still answers when the message is not an actionable request
            intent_error = str(e)

        return {
            "answer": answer["answer_markdown"],
            "intentHint": answer["intent_hint"],
            "intentId": uuid.uuid4().hex if pending else None,
            "pendingActions": pending,
            "intentError": intent_error,
        }

    return app


app = create_app()
