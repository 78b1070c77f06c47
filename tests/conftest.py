"""Shared fixtures for API tests.

The database is replaced by `FakeDatabase`, an in-memory stand-in installed
over the `core.db` functions. It understands exactly the statements the
application issues (matched by identity against the SQL constants in
`bootstrap.seed` and `cron.repository`), enforces the unique constraints of the
seed tables, and records every write so tests can assert on side effects.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

import pytest
from fastapi.testclient import TestClient

from bootstrap import coordinator, schema, seed
from core import db
from core.errors import UniqueViolationError
from cron import repository as cron_repository

CRON_SECRET = "test-cron-secret"

SEED_TABLES = (
    "roles",
    "permissions",
    "role_permissions",
    "users",
    "user_roles",
    "categories",
    "settings",
)

# sql -> (table, columns, unique keys)
INSERTS: dict[str, tuple[str, tuple[str, ...], tuple[tuple[str, ...], ...]]] = {
    seed.INSERT_ROLE_SQL: ("roles", ("name", "description"), (("name",),)),
    seed.INSERT_PERMISSION_SQL: (
        "permissions",
        ("name", "resource", "action", "description"),
        (("name",),),
    ),
    seed.INSERT_USER_SQL: (
        "users",
        ("username", "email", "password_hash", "full_name", "is_active"),
        (("username",), ("email",)),
    ),
    seed.INSERT_USER_ROLE_SQL: ("user_roles", ("user_id", "role_id"), (("user_id", "role_id"),)),
    seed.INSERT_ROLE_PERMISSION_SQL: (
        "role_permissions",
        ("role_id", "permission_id"),
        (("role_id", "permission_id"),),
    ),
    seed.INSERT_CATEGORY_SQL: (
        "categories",
        ("name", "slug", "description", "display_order", "is_enabled"),
        (("slug",),),
    ),
    seed.INSERT_SETTING_SQL: ("settings", ("key", "value", "type"), (("key",),)),
}


class FakeDatabase:
    """In-memory replacement for the `core.db` query functions."""

    def __init__(self, *, native_conflicts: bool = True) -> None:
        # True: behave like ON CONFLICT DO NOTHING. False: raise UniqueViolationError.
        self.native_conflicts = native_conflicts
        self.tables: dict[str, list[dict[str, Any]]] = {
            name: [] for name in SEED_TABLES + ("articles", "activity_logs")
        }
        self.created_objects: list[str] = []
        self.writes: list[tuple[str, tuple[Any, ...]]] = []
        self.init_calls = 0
        self.init_error: Exception | None = None
        self.ddl_error: Exception | None = None
        self.write_errors: dict[str, Exception] = {}
        self._ids = itertools.count(1)

    # -- helpers for tests -------------------------------------------------

    def add_row(self, table: str, **values: Any) -> dict[str, Any]:
        row = {"id": next(self._ids), **values}
        self.tables[table].append(row)
        return row

    def names(self, table: str, column: str = "name") -> list[str]:
        return [row[column] for row in self.tables[table]]

    @property
    def schema_runs(self) -> int:
        return self.created_objects.count(schema.object_name(schema.SCHEMA_STATEMENTS[0]))

    # -- core.db surface ---------------------------------------------------

    async def init_pool(self) -> None:
        await asyncio.sleep(0)
        self.init_calls += 1
        if self.init_error is not None:
            raise self.init_error

    async def execute(self, sql: str, *args: Any) -> None:
        await asyncio.sleep(0)
        if self.ddl_error is not None:
            raise self.ddl_error
        self.created_objects.append(schema.object_name(sql))

    async def fetch_one(self, sql: str, *args: Any) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        if sql == seed.SELECT_ANY_USER_SQL:
            rows = self.tables["users"][:1]
        elif sql == seed.SELECT_USER_BY_USERNAME_SQL:
            rows = [r for r in self.tables["users"] if r["username"] == args[0]]
        elif sql == seed.SELECT_ROLE_BY_NAME_SQL:
            rows = [r for r in self.tables["roles"] if r["name"] == args[0]]
        else:
            raise AssertionError(f"unexpected fetch_one: {sql}")
        return {"id": rows[0]["id"]} if rows else None

    async def fetch_all(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        if sql == seed.SELECT_PERMISSION_IDS_SQL:
            return [{"id": r["id"]} for r in sorted(self.tables["permissions"], key=lambda r: r["id"])]
        raise AssertionError(f"unexpected fetch_all: {sql}")

    async def execute_write(self, sql: str, *args: Any, returning: bool = False) -> db.WriteResult:
        await asyncio.sleep(0)
        if sql in self.write_errors:
            raise self.write_errors.pop(sql)
        self.writes.append((sql, args))

        if sql == cron_repository.PUBLISH_DUE_ARTICLES_SQL:
            return db.WriteResult(inserted_id=None, rows_affected=self._publish_due())
        if sql == cron_repository.DELETE_OLD_ACTIVITY_LOGS_SQL:
            return db.WriteResult(inserted_id=None, rows_affected=self._delete_logs(args[0]))
        if sql not in INSERTS:
            raise AssertionError(f"unexpected execute_write: {sql}")

        table, columns, unique_keys = INSERTS[sql]
        row = dict(zip(columns, args))
        for key in unique_keys:
            if any(all(r.get(c) == row[c] for c in key) for r in self.tables[table]):
                if self.native_conflicts:
                    return db.WriteResult(inserted_id=None, rows_affected=0)
                raise UniqueViolationError(f"duplicate key value violates unique constraint on {table}")

        if table not in ("user_roles", "role_permissions"):
            row["id"] = next(self._ids)
        self.tables[table].append(row)
        return db.WriteResult(inserted_id=row.get("id") if returning else None, rows_affected=1)

    def _publish_due(self) -> int:
        affected = 0
        for article in self.tables["articles"]:
            if article["status"] == "scheduled" and article["due"]:
                article["status"] = "published"
                affected += 1
        return affected

    def _delete_logs(self, days: int) -> int:
        keep = [r for r in self.tables["activity_logs"] if r["age_days"] <= days]
        affected = len(self.tables["activity_logs"]) - len(keep)
        self.tables["activity_logs"] = keep
        return affected


@pytest.fixture(autouse=True)
def _environment(monkeypatch):
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("CRON_SECRET", CRON_SECRET)
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.delenv("SEED_ADMIN_USERNAME", raising=False)
    monkeypatch.delenv("SEED_ADMIN_PASSWORD", raising=False)
    monkeypatch.delenv("LOG_RETENTION_DAYS", raising=False)


def _install(monkeypatch, fake: FakeDatabase) -> FakeDatabase:
    for name in ("init_pool", "execute", "fetch_one", "fetch_all", "execute_write"):
        monkeypatch.setattr(db, name, getattr(fake, name))
    return fake


@pytest.fixture()
def fake_db(monkeypatch) -> FakeDatabase:
    return _install(monkeypatch, FakeDatabase())


@pytest.fixture()
def strict_fake_db(monkeypatch) -> FakeDatabase:
    """Fake whose inserts raise on duplicates instead of skipping them."""
    return _install(monkeypatch, FakeDatabase(native_conflicts=False))


@pytest.fixture()
def fresh_coordinator(monkeypatch) -> coordinator.BootstrapCoordinator:
    instance = coordinator.BootstrapCoordinator()
    monkeypatch.setattr(coordinator, "default_coordinator", instance)
    return instance


@pytest.fixture()
def client(fake_db, fresh_coordinator) -> TestClient:
    from main import app

    return TestClient(app)


@pytest.fixture()
def cron_headers() -> dict:
    return {"X-Cron-Secret": CRON_SECRET}
