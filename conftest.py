"""
Configuration pytest pour core-care-participants.

Les tests n'exigent aucun service externe:
- record store en mémoire (InMemoryRecordStore) pour le service et les endpoints
- SQLite en mémoire (aiosqlite) pour le record store SQLAlchemy
- Redis absent: cache et événements se dégradent silencieusement

Usage:
    pytest
"""

import os
from collections.abc import AsyncGenerator, Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

import pytest

# Variables d'environnement pour les tests
# Respecte les variables déjà définies (ex: dans la CI)
TEST_ENV = {
    "SQLALCHEMY_DATABASE_URI": os.getenv("SQLALCHEMY_DATABASE_URI", "sqlite+aiosqlite:///:memory:"),
    "REDIS_URL": os.getenv("REDIS_URL", "redis://localhost:6380/0"),
    "ENVIRONMENT": os.getenv("ENVIRONMENT", "test"),
    "DEBUG": os.getenv("DEBUG", "false"),
    # Keycloak (test mode)
    "KEYCLOAK_SERVER_URL": os.getenv("KEYCLOAK_SERVER_URL", "http://localhost:8080"),
    "KEYCLOAK_REALM": os.getenv("KEYCLOAK_REALM", "care"),
    "KEYCLOAK_CLIENT_ID": os.getenv("KEYCLOAK_CLIENT_ID", "core-care-participants"),
    # OpenTelemetry (test mode)
    "OTEL_SERVICE_NAME": os.getenv("OTEL_SERVICE_NAME", "core-care-participants-test"),
    "OTEL_EXPORTER_OTLP_ENDPOINT": os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317"),
}

# Appliquer les variables d'environnement de test (ne remplace pas si déjà définies)
for key, value in TEST_ENV.items():
    if key not in os.environ:
        os.environ[key] = value

from sqlalchemy import Table  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import app.models  # noqa: E402, F401
from app.core.database import Base, enable_sqlite_foreign_keys  # noqa: E402
from app.core.exceptions import StoreConflictError, StoreWriteError  # noqa: E402
from app.core.record_store import Row, SQLAlchemyRecordStore, primary_key_columns  # noqa: E402

# ============================================================================
# Record store en mémoire
# ============================================================================


class InMemoryRecordStore:
    """
    RecordStore en mémoire avec injection d'échecs.

    - `writes` trace chaque écriture réussie: (operation, table)
    - `fail_on(operation, table_name)` fait échouer la prochaine opération ciblée
    - `return_nothing_on(table_name)` simule un upsert sans ligne retournée
    """

    def __init__(self):
        self.tables: dict[str, dict[tuple, Row]] = {}
        self.writes: list[tuple[str, str]] = []
        self.reads: list[tuple[str, str]] = []
        self._failures: dict[tuple[str, str], Exception] = {}
        self._empty_upserts: set[str] = set()

    # -- injection -----------------------------------------------------------

    def fail_on(self, operation: str, table_name: str, exc: Exception | None = None) -> None:
        self._failures[(operation, table_name)] = exc or StoreWriteError(
            f"Failed to {operation} {table_name}", table=table_name
        )

    def return_nothing_on(self, table_name: str) -> None:
        self._empty_upserts.add(table_name)

    def _maybe_fail(self, operation: str, table: Table) -> None:
        exc = self._failures.pop((operation, table.name), None)
        if exc is not None:
            raise exc

    # -- helpers -------------------------------------------------------------

    def rows(self, table: Table | str) -> list[Row]:
        name = table if isinstance(table, str) else table.name
        return [dict(row) for row in self.tables.get(name, {}).values()]

    def _table(self, table: Table) -> dict[tuple, Row]:
        return self.tables.setdefault(table.name, {})

    @staticmethod
    def _pk(table: Table, row: Mapping[str, Any]) -> tuple:
        return tuple(row[column] for column in primary_key_columns(table))

    @staticmethod
    def _matches(row: Mapping[str, Any], key: Mapping[str, Any]) -> bool:
        return all(row.get(column) == value for column, value in key.items())

    def _new_row(self, table: Table, values: Mapping[str, Any]) -> Row:
        row: Row = {}
        for column in table.c:
            row[column.name] = datetime.now(UTC) if column.server_default is not None else None
        row.update(values)
        # Clé entière générée (autoincrement), comme la base
        for column in table.primary_key.columns:
            if column.autoincrement is True and row.get(column.name) is None:
                existing = [r[column.name] for r in self._table(table).values()]
                row[column.name] = max(existing, default=0) + 1
        return row

    # -- RecordStore ---------------------------------------------------------

    async def get_by_key(self, table: Table, key: Mapping[str, Any]) -> Row | None:
        self._maybe_fail("get", table)
        self.reads.append(("get", table.name))
        for row in self._table(table).values():
            if self._matches(row, key):
                return dict(row)
        return None

    async def select_where(self, table: Table, filters: Mapping[str, Any] | None = None) -> list[Row]:
        self._maybe_fail("select", table)
        self.reads.append(("select", table.name))
        rows = [dict(row) for row in self._table(table).values() if self._matches(row, filters or {})]
        return sorted(rows, key=lambda row: tuple(str(v) for v in self._pk(table, row)))

    async def insert(self, table: Table, row: Mapping[str, Any]) -> Row:
        self._maybe_fail("insert", table)
        new_row = self._new_row(table, row)
        pk = self._pk(table, new_row)
        if pk in self._table(table):
            raise StoreConflictError(f"Constraint violation during insert on {table.name}", table=table.name)
        self._table(table)[pk] = new_row
        self.writes.append(("insert", table.name))
        return dict(new_row)

    async def upsert_by_key(
        self,
        table: Table,
        row: Mapping[str, Any],
        key_columns: Sequence[str] | None = None,
    ) -> Row | None:
        self._maybe_fail("upsert", table)
        key_columns = tuple(key_columns or primary_key_columns(table))
        key = {column: row[column] for column in key_columns}
        self.writes.append(("upsert", table.name))
        if table.name in self._empty_upserts:
            return None

        for existing in self._table(table).values():
            if self._matches(existing, key):
                existing.update(row)
                return dict(existing)
        new_row = self._new_row(table, row)
        self._table(table)[self._pk(table, new_row)] = new_row
        return dict(new_row)

    async def update_by_key(
        self, table: Table, key: Mapping[str, Any], values: Mapping[str, Any]
    ) -> Row | None:
        self._maybe_fail("update", table)
        for existing in self._table(table).values():
            if self._matches(existing, key):
                existing.update(values)
                self.writes.append(("update", table.name))
                return dict(existing)
        return None

    async def delete_by_key(self, table: Table, key_filter: Mapping[str, Any]) -> int:
        if not key_filter:
            raise ValueError(f"Refusing to delete from {table.name} without key filter")
        self._maybe_fail("delete", table)
        rows = self._table(table)
        doomed = [pk for pk, row in rows.items() if self._matches(row, key_filter)]
        for pk in doomed:
            del rows[pk]
        self.writes.append(("delete", table.name))
        return len(doomed)


@pytest.fixture
def memory_store() -> InMemoryRecordStore:
    """Record store en mémoire, vide pour chaque test."""
    return InMemoryRecordStore()


# ============================================================================
# Fixtures SQLite
# ============================================================================


@pytest.fixture
async def test_engine():
    """
    Moteur SQLite en mémoire partagé (StaticPool) avec toutes les tables.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Session de base de données pour chaque test."""
    session_maker = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session


@pytest.fixture
async def sqlite_store(db_session) -> SQLAlchemyRecordStore:
    return SQLAlchemyRecordStore(db_session)


@pytest.fixture
def test_env():
    """Fournit les variables d'environnement de test."""
    return TEST_ENV.copy()
