"""
HTTP client for a remote financial backend that speaks the same JSON routes
as `api.main` (camelCase records under /assets, /liabilities, /cashflow/...).
"""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from tools.models import (
    Asset,
    Expense,
    Income,
    Liability,
    MonthlyCashFlow,
    PropertyScenario,
    from_payload,
    to_payload,
)

logger = logging.getLogger(__name__)


class FinancialClientError(Exception):
    def __init__(self, message: str, status: int, details: Any = None):
        super().__init__(message)
        self.status = status
        self.details = details


class _TransientError(Exception):
    def __init__(self, error: FinancialClientError):
        super().__init__(str(error))
        self.error = error


class _Resource:
    def __init__(self, client: "FinancialClient", path: str, cls):
        self._client = client
        self.path = "/" + path.strip("/")
        self.cls = cls

    def _item(self, id: str) -> str:
        return f"{self.path}/{quote(id, safe='')}"

    def _body(self, record) -> Dict[str, Any]:
        body = to_payload(record)
        body.pop("updatedAt", None)
        if not body.get("id"):
            body.pop("id", None)
        return body

    def list(self) -> List[Any]:
        return [from_payload(self.cls, item) for item in self._client.request("GET", self.path) or []]

    def get(self, id: str):
        return from_payload(self.cls, self._client.request("GET", self._item(id)))

    def create(self, record):
        return from_payload(self.cls, self._client.request("POST", self.path, self._body(record)))

    def update(self, record):
        return from_payload(self.cls, self._client.request("PATCH", self._item(record.id), self._body(record)))

    def delete(self, id: str) -> None:
        self._client.request("DELETE", self._item(id))


class FinancialClient:
    backend = "remote"

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        retries: int = 3,
        backoff: float = 0.3,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json", **(headers or {})})
        self.timeout = timeout
        self.retries = retries
        self.backoff = backoff

        self.assets = _Resource(self, "assets", Asset)
        self.liabilities = _Resource(self, "liabilities", Liability)
        self.incomes = _Resource(self, "cashflow/incomes", Income)
        self.expenses = _Resource(self, "cashflow/expenses", Expense)
        self.scenarios = _Resource(self, "property-planner/scenarios", PropertyScenario)

    def resolve_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return self.base_url + ("" if path.startswith("/") else "/") + path

    def _send_once(self, method: str, url: str, body: Optional[Dict[str, Any]]):
        try:
            resp = self.session.request(method, url, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise _TransientError(FinancialClientError(f"Request to {url} failed: {e}", 503))
        if resp.status_code >= 400:
            try:
                details = resp.json()
            except ValueError:
                details = resp.text
            error = FinancialClientError(
                f"Request to {url} failed with status {resp.status_code}", resp.status_code, details
            )
            if resp.status_code >= 500:
                raise _TransientError(error)
            raise error
        if not resp.content:
            return None
        return resp.json()

    def request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None):
        url = self.resolve_url(path)
        try:
            for attempt in Retrying(
                reraise=True,
                stop=stop_after_attempt(self.retries),
                wait=wait_exponential(multiplier=self.backoff, min=0, max=6),
                retry=retry_if_exception_type(_TransientError),
            ):
                with attempt:
                    return self._send_once(method, url, body)
        except _TransientError as e:
            logger.warning("Financial backend unavailable after %d attempts: %s", self.retries, e)
            raise e.error

    def cashflow_summary(self) -> Dict[str, Any]:
        payload = self.request("GET", "/cashflow") or {}
        return {
            "incomes": [from_payload(Income, i) for i in payload.get("incomes", [])],
            "expenses": [from_payload(Expense, e) for e in payload.get("expenses", [])],
            "summary": from_payload(MonthlyCashFlow, payload.get("summary")),
        }

    def health(self) -> bool:
        try:
            self.request("GET", "/health")
        except FinancialClientError:
            return False
        return True
