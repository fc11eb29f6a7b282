"""
DuckDB-backed financial store.

This is the local stand-in for the financial backend: one table per entity,
property-planner scenarios stored as a JSON body, plus an append-only audit
table for confirmed chat actions. Every entity store exposes the same
list/get/create/update/delete surface as the remote `FinancialClient`.
"""
import json
import threading
from contextlib import contextmanager
from dataclasses import fields
from typing import Any, Dict, List, Optional

from tools.models import (
    Asset,
    Expense,
    Income,
    Liability,
    PropertyScenario,
    ValidationError,
    from_payload,
    new_id,
    to_payload,
    utc_now_iso,
    validate,
)
from tools.sql_utils import duckdb_conn


class StoreError(Exception):
    pass


class NotFoundError(StoreError):
    def __init__(self, entity: str, id: str):
        super().__init__(f"{entity} {id!r} not found")
        self.entity = entity
        self.id = id


class InvalidInputError(StoreError):
    pass


SCHEMA_SQL = [
    """
    CREATE TABLE IF NOT EXISTS assets (
      id TEXT PRIMARY KEY,
      name TEXT NOT NULL,
      category TEXT NOT NULL,
      current_value DOUBLE,
      annual_growth_rate DOUBLE,
      notes TEXT,
      updated_at TEXT
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS liabilities (
      id TEXT PRIMARY KEY,
      name TEXT NOT NULL,
      category TEXT NOT NULL,
      current_balance DOUBLE,
      interest_rate_apr DOUBLE,
      minimum_payment DOUBLE,
      notes TEXT,
      updated_at TEXT
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS incomes (
      id TEXT PRIMARY KEY,
      source TEXT NOT NULL,
      amount DOUBLE,
      frequency TEXT,
      start_date TEXT,
      category TEXT,
      notes TEXT,
      updated_at TEXT
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS expenses (
      id TEXT PRIMARY KEY,
      payee TEXT NOT NULL,
      amount DOUBLE,
      frequency TEXT,
      category TEXT,
      notes TEXT,
      updated_at TEXT
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS property_scenarios (
      id TEXT PRIMARY KEY,
      type TEXT NOT NULL,
      headline TEXT NOT NULL,
      body TEXT NOT NULL,
      updated_at TEXT
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS action_events (
      id TEXT PRIMARY KEY,
      intent_id TEXT NOT NULL,
      chat_id TEXT,
      user_id TEXT,
      verb TEXT NOT NULL,
      entity TEXT NOT NULL,
      target TEXT,
      amount DOUBLE,
      currency TEXT,
      payload TEXT,
      created_at TEXT
    );
    """,
]


def ensure_schema(con) -> None:
    for ddl in SCHEMA_SQL:
        con.execute(ddl)


class EntityStore:
    """CRUD over one flat table whose columns match the record's dataclass fields."""

    def __init__(self, con, lock: threading.RLock, table: str, cls, label: str):
        self._con = con
        self._lock = lock
        self.table = table
        self.cls = cls
        self.label = label
        self.columns = [f.name for f in fields(cls)]

    def _row_to_record(self, row):
        return self.cls(**dict(zip(self.columns, row)))

    def _record_to_row(self, record) -> List[Any]:
        return [getattr(record, c) for c in self.columns]

    def _check(self, record):
        try:
            return validate(record)
        except ValidationError as e:
            raise InvalidInputError(str(e)) from e

    def list(self) -> List[Any]:
        with self._lock:
            rows = self._con.execute(
                f"SELECT {', '.join(self.columns)} FROM {self.table} ORDER BY updated_at, id"
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def get(self, id: str):
        with self._lock:
            row = self._con.execute(
                f"SELECT {', '.join(self.columns)} FROM {self.table} WHERE id = ?", [id]
            ).fetchone()
        if row is None:
            raise NotFoundError(self.label, id)
        return self._row_to_record(row)

    def create(self, record):
        record = self._check(record)
        record.id = record.id or new_id()
        record.updated_at = utc_now_iso()
        placeholders = ", ".join("?" for _ in self.columns)
        with self._lock:
            exists = self._con.execute(f"SELECT 1 FROM {self.table} WHERE id = ?", [record.id]).fetchone()
            if exists:
                raise InvalidInputError(f"{self.label} {record.id!r} already exists")
            self._con.execute(
                f"INSERT INTO {self.table} ({', '.join(self.columns)}) VALUES ({placeholders})",
                self._record_to_row(record),
            )
        return record

    def update(self, record):
        if not record.id:
            raise InvalidInputError("id is required")
        record = self._check(record)
        record.updated_at = utc_now_iso()
        cols = [c for c in self.columns if c != "id"]
        assignments = ", ".join(f"{c} = ?" for c in cols)
        with self._lock:
            exists = self._con.execute(f"SELECT 1 FROM {self.table} WHERE id = ?", [record.id]).fetchone()
            if not exists:
                raise NotFoundError(self.label, record.id)
            self._con.execute(
                f"UPDATE {self.table} SET {assignments} WHERE id = ?",
                [getattr(record, c) for c in cols] + [record.id],
            )
        return record

    def delete(self, id: str) -> None:
        with self._lock:
            exists = self._con.execute(f"SELECT 1 FROM {self.table} WHERE id = ?", [id]).fetchone()
            if not exists:
                raise NotFoundError(self.label, id)
            self._con.execute(f"DELETE FROM {self.table} WHERE id = ?", [id])


class ScenarioStore(EntityStore):
    """Scenarios keep their nested inputs/amortization/snapshot as a JSON body."""

    def __init__(self, con, lock):
        super().__init__(con, lock, "property_scenarios", PropertyScenario, "property scenario")
        self.columns = ["id", "type", "headline", "body", "updated_at"]

    def _row_to_record(self, row):
        id, _type, _headline, body, updated_at = row
        scenario = from_payload(PropertyScenario, json.loads(body))
        scenario.id = id
        scenario.updated_at = updated_at
        return scenario

    def _record_to_row(self, record) -> List[Any]:
        return [record.id, record.type, record.headline, json.dumps(to_payload(record)), record.updated_at]

    def update(self, record):
        if not record.id:
            raise InvalidInputError("id is required")
        record = self._check(record)
        record.updated_at = utc_now_iso()
        with self._lock:
            exists = self._con.execute("SELECT 1 FROM property_scenarios WHERE id = ?", [record.id]).fetchone()
            if not exists:
                raise NotFoundError(self.label, record.id)
            self._con.execute(
                "UPDATE property_scenarios SET type = ?, headline = ?, body = ?, updated_at = ? WHERE id = ?",
                [record.type, record.headline, json.dumps(to_payload(record)), record.updated_at, record.id],
            )
        return record


class FinancialStore:
    backend = "duckdb"

    def __init__(self, path=None, con=None):
        self._con = con if con is not None else duckdb_conn(path)
        ensure_schema(self._con)
        # re-entrant so a transaction can hold it across entity calls
        self._lock = threading.RLock()
        self.assets = EntityStore(self._con, self._lock, "assets", Asset, "asset")
        self.liabilities = EntityStore(self._con, self._lock, "liabilities", Liability, "liability")
        self.incomes = EntityStore(self._con, self._lock, "incomes", Income, "income")
        self.expenses = EntityStore(self._con, self._lock, "expenses", Expense, "expense")
        self.scenarios = ScenarioStore(self._con, self._lock)

    def close(self) -> None:
        self._con.close()

    @contextmanager
    def transaction(self):
        """Writes inside the block commit together or not at all."""
        with self._lock:
            self._con.begin()
            try:
                yield self
            except BaseException:
                self._con.rollback()
                raise
            self._con.commit()

    # ---------- action audit ----------

    def record_action_event(
        self,
        intent_id: str,
        verb: str,
        entity: str,
        target: Optional[str] = None,
        amount: Optional[float] = None,
        currency: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        chat_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        event = {
            "id": new_id(),
            "intent_id": intent_id,
            "chat_id": chat_id,
            "user_id": user_id,
            "verb": verb,
            "entity": entity,
            "target": target,
            "amount": amount,
            "currency": currency,
            "payload": payload or {},
            "created_at": utc_now_iso(),
        }
        with self._lock:
            self._con.execute(
                """
                INSERT INTO action_events
                  (id, intent_id, chat_id, user_id, verb, entity, target, amount, currency, payload, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    event["id"], intent_id, chat_id, user_id, verb, entity, target,
                    amount, currency, json.dumps(event["payload"]), event["created_at"],
                ],
            )
        return event

    def list_action_events(self, chat_id: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        limit = min(max(int(limit), 1), 100)
        where, params = "", []
        if chat_id:
            where, params = "WHERE chat_id = ?", [chat_id]
        cols = ["id", "intent_id", "chat_id", "user_id", "verb", "entity", "target",
                "amount", "currency", "payload", "created_at"]
        with self._lock:
            rows = self._con.execute(
                f"SELECT {', '.join(cols)} FROM action_events {where} ORDER BY created_at DESC, id LIMIT ?",
                params + [limit],
            ).fetchall()
        events = []
        for r in rows:
            e = dict(zip(cols, r))
            e["payload"] = json.loads(e["payload"]) if e["payload"] else {}
            events.append(e)
        return events
