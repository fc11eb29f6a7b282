import json

import pytest
import requests

from tools.finance_client import FinancialClient, FinancialClientError
from tools.models import Asset


class FakeResponse:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.content = json.dumps(payload).encode() if payload is not None else text.encode()
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self.headers = {}
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, json=None, timeout=None):
        self.calls.append((method, url, json))
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp


def _client(responses):
    session = FakeSession(responses)
    return FinancialClient("http://backend:8080/", session=session, backoff=0), session


ASSET = {"id": "a1", "name": "Fund", "category": "brokerage", "currentValue": 1000,
         "annualGrowthRate": 0.05, "notes": None, "updatedAt": "2024-01-01T00:00:00.000Z"}


def test_list_converts_camel_case():
    client, session = _client([FakeResponse(200, [ASSET])])
    assets = client.assets.list()
    assert assets == [Asset("Fund", "brokerage", 1000, 0.05, None, "a1", "2024-01-01T00:00:00.000Z")]
    assert session.calls[0][:2] == ("GET", "http://backend:8080/assets")


def test_update_uses_patch_without_timestamp():
    client, session = _client([FakeResponse(200, ASSET)])
    client.assets.update(Asset("Fund", "brokerage", 1000, 0.05, id="a1", updated_at="old"))
    method, url, body = session.calls[0]
    assert method == "PATCH"
    assert url == "http://backend:8080/assets/a1"
    assert "updatedAt" not in body
    assert body["currentValue"] == 1000


def test_client_error_is_not_retried():
    client, session = _client([FakeResponse(404, {"error": "asset not found"})])
    with pytest.raises(FinancialClientError) as err:
        client.assets.get("nope")
    assert err.value.status == 404
    assert err.value.details == {"error": "asset not found"}
    assert len(session.calls) == 1


def test_server_error_is_retried():
    client, session = _client([FakeResponse(502, text="bad gateway"), FakeResponse(200, [ASSET])])
    assert len(client.assets.list()) == 1
    assert len(session.calls) == 2


def test_connection_errors_exhaust_retries():
    client, session = _client([requests.ConnectionError("refused")] * 3)
    with pytest.raises(FinancialClientError) as err:
        client.incomes.list()
    assert err.value.status == 503
    assert len(session.calls) == 3
    assert session.calls[0][1] == "http://backend:8080/cashflow/incomes"


def test_delete_with_empty_body():
    client, session = _client([FakeResponse(204)])
    assert client.expenses.delete("e1") is None
    assert session.calls[0][:2] == ("DELETE", "http://backend:8080/cashflow/expenses/e1")


def test_health():
    client, _ = _client([FakeResponse(200, {"status": "ok"})])
    assert client.health() is True
