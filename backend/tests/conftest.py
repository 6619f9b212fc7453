"""Shared fixtures: required settings and an in-memory Supabase stand-in."""

import copy
import itertools
import os
from types import SimpleNamespace
from typing import Any

import pytest

# Settings are validated at import time; seed the required secrets first.
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-key")
os.environ.setdefault("APP_SECRET_KEY", "test-secret-key")

from variable_api.db.supabase import SupabaseClient, supabase_circuit_breaker  # noqa: E402


class _Query:
    """Fluent query over one in-memory table, mirroring the postgrest builder."""

    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self._db = db
        self._table = table
        self._op = "select"
        self._payload: dict[str, Any] | None = None
        self._filters: list[tuple[str, Any]] = []
        self._limit: int | None = None
        self._order: tuple[str, bool] | None = None
        self._single = False

    def select(self, *_columns: str) -> "_Query":
        self._op = "select"
        return self

    def insert(self, row: dict[str, Any]) -> "_Query":
        self._op = "insert"
        self._payload = row
        return self

    def update(self, values: dict[str, Any]) -> "_Query":
        self._op = "update"
        self._payload = values
        return self

    def eq(self, column: str, value: Any) -> "_Query":
        self._filters.append((column, value))
        return self

    def limit(self, count: int) -> "_Query":
        self._limit = count
        return self

    def order(self, column: str, desc: bool = False) -> "_Query":
        self._order = (column, desc)
        return self

    def maybe_single(self) -> "_Query":
        self._single = True
        return self

    def execute(self) -> SimpleNamespace:
        if (self._table, self._op) in self._db.failures:
            raise Exception(f"{self._op} on {self._table} failed")

        rows = self._db.tables.setdefault(self._table, [])
        matched = [r for r in rows if all(r.get(col) == val for col, val in self._filters)]

        if self._op == "insert":
            new_row = {
                "id": f"{self._table}-{next(self._db.ids)}",
                "created_at": f"2026-01-01T00:00:{next(self._db.ticks):02d}+00:00",
                **copy.deepcopy(self._payload or {}),
            }
            rows.append(new_row)
            data: Any = [copy.deepcopy(new_row)]
        elif self._op == "update":
            for row in matched:
                row.update(copy.deepcopy(self._payload or {}))
            data = [copy.deepcopy(r) for r in matched]
        else:
            data = [copy.deepcopy(r) for r in matched]
            if self._order:
                column, desc = self._order
                data.sort(key=lambda r: r.get(column) or "", reverse=desc)
            if self._limit is not None:
                data = data[: self._limit]

        self._db.calls.append((self._table, self._op))
        if self._single:
            data = data[0] if data else None
        return SimpleNamespace(data=data)


class _Rpc:
    def __init__(self, db: "FakeSupabase", fn: str, params: dict[str, Any]) -> None:
        self._db = db
        self._fn = fn
        self._params = params

    def execute(self) -> SimpleNamespace:
        self._db.rpc_calls.append((self._fn, self._params))
        if ("rpc", self._fn) in self._db.failures:
            raise Exception(f"rpc {self._fn} failed")
        if self._fn != "create_company_and_link_profile":
            raise Exception(f"unknown rpc {self._fn}")

        company = (
            self._db.table("companies")
            .insert({"name": self._params["p_company_name"], "subscription_status": "none"})
            .execute()
            .data[0]
        )
        (
            self._db.table("profiles")
            .update({"company_id": company["id"], "role": "admin"})
            .eq("id", self._params["p_user_id"])
            .execute()
        )
        return SimpleNamespace(data=[{"company_id": company["id"], "company_name": company["name"]}])


class FakeSupabase:
    """Just enough of the Supabase client for the onboarding code paths.

    ``failures`` holds ``(table, op)`` or ``("rpc", name)`` pairs that raise.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.failures: set[tuple[str, str]] = set()
        self.calls: list[tuple[str, str]] = []
        self.rpc_calls: list[tuple[str, dict[str, Any]]] = []
        self.ids = itertools.count(1)
        self.ticks = itertools.count(1)

    def table(self, name: str) -> _Query:
        return _Query(self, name)

    def rpc(self, fn: str, params: dict[str, Any]) -> _Rpc:
        return _Rpc(self, fn, params)

    def add_profile(self, user_id: str, company_id: str | None = None, role: str = "user") -> None:
        self.tables.setdefault("profiles", []).append(
            {"id": user_id, "company_id": company_id, "role": role}
        )

    def add_company(self, company_id: str, subscription_status: str = "none", **fields: Any) -> None:
        self.tables.setdefault("companies", []).append(
            {"id": company_id, "subscription_status": subscription_status, **fields}
        )

    def row(self, table: str, **filters: Any) -> dict[str, Any] | None:
        for r in self.tables.get(table, []):
            if all(r.get(k) == v for k, v in filters.items()):
                return r
        return None

    def count(self, table: str) -> int:
        return len(self.tables.get(table, []))


@pytest.fixture()
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture(autouse=True)
def _reset_shared_state() -> Any:
    supabase_circuit_breaker.reset()
    SupabaseClient.reset_client()
    yield
    supabase_circuit_breaker.reset()
    SupabaseClient.reset_client()
