"""
Record store: opérations génériques par table pour l'agrégat participant.

Contrat consommé par l'orchestrateur (RecordStore):
- get_by_key: lecture d'une ligne par clé (None si absente)
- insert: insertion d'une ligne, retourne la ligne insérée
- upsert_by_key: insert-or-update sur les colonnes de clé, retourne la ligne écrite
- update_by_key: mise à jour partielle d'une ligne existante
- delete_by_key: suppression des lignes correspondant au filtre
- select_where: lecture de lignes par égalité de colonnes

Chaque opération est un statement autonome validé immédiatement: pas de
transaction multi-statements. Toute erreur de la base est convertie en
StoreWriteError (StoreConflictError pour une violation de clé unique).
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any, NoReturn, Protocol

from sqlalchemy import Table, and_, delete, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StoreConflictError, StoreWriteError

logger = logging.getLogger(__name__)

Row = dict[str, Any]

# Dialectes supportant INSERT ... ON CONFLICT DO UPDATE ... RETURNING
_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class RecordStore(Protocol):
    """Capacité de stockage par table utilisée par le service participant."""

    async def get_by_key(self, table: Table, key: Mapping[str, Any]) -> Row | None: ...

    async def insert(self, table: Table, row: Mapping[str, Any]) -> Row: ...

    async def upsert_by_key(
        self,
        table: Table,
        row: Mapping[str, Any],
        key_columns: Sequence[str] | None = None,
    ) -> Row | None: ...

    async def update_by_key(
        self, table: Table, key: Mapping[str, Any], values: Mapping[str, Any]
    ) -> Row | None: ...

    async def delete_by_key(self, table: Table, key_filter: Mapping[str, Any]) -> int: ...

    async def select_where(
        self, table: Table, filters: Mapping[str, Any] | None = None
    ) -> list[Row]: ...


def primary_key_columns(table: Table) -> tuple[str, ...]:
    return tuple(column.name for column in table.primary_key.columns)


def _check_columns(table: Table, columns: Sequence[str]) -> None:
    unknown = sorted(set(columns) - set(table.c.keys()))
    if unknown:
        raise StoreWriteError(
            f"Unknown column(s) {', '.join(unknown)} for table {table.name}",
            table=table.name,
        )


def _where(table: Table, key: Mapping[str, Any]):
    return and_(*(table.c[column] == value for column, value in key.items()))


class SQLAlchemyRecordStore:
    """
    Implémentation RecordStore sur une AsyncSession SQLAlchemy 2.0.

    Chaque écriture est validée (commit) dès son exécution afin que les
    groupes écrits avant un échec restent visibles, comme le ferait un
    client REST de base de données.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @property
    def dialect_name(self) -> str:
        return self._session.get_bind().dialect.name

    async def _fail(self, table: Table, operation: str, exc: SQLAlchemyError) -> NoReturn:
        await self._session.rollback()
        logger.error(f"Echec {operation} sur {table.name}: {exc}")
        if isinstance(exc, IntegrityError):
            raise StoreConflictError(
                f"Constraint violation during {operation} on {table.name}", table=table.name
            ) from exc
        raise StoreWriteError(f"Failed to {operation} {table.name}", table=table.name) from exc

    async def get_by_key(self, table: Table, key: Mapping[str, Any]) -> Row | None:
        _check_columns(table, list(key))
        try:
            result = await self._session.execute(select(table).where(_where(table, key)))
            found = result.mappings().first()
        except SQLAlchemyError as e:
            await self._fail(table, "read", e)
        return dict(found) if found is not None else None

    async def select_where(
        self, table: Table, filters: Mapping[str, Any] | None = None
    ) -> list[Row]:
        filters = filters or {}
        _check_columns(table, list(filters))
        stmt = select(table)
        if filters:
            stmt = stmt.where(_where(table, filters))
        stmt = stmt.order_by(*table.primary_key.columns)
        try:
            result = await self._session.execute(stmt)
            rows = result.mappings().all()
        except SQLAlchemyError as e:
            await self._fail(table, "read", e)
        return [dict(row) for row in rows]

    async def insert(self, table: Table, row: Mapping[str, Any]) -> Row:
        _check_columns(table, list(row))
        try:
            result = await self._session.execute(
                insert(table).values(**row).returning(*table.c)
            )
            inserted = result.mappings().first()
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._fail(table, "insert", e)
        if inserted is None:
            raise StoreWriteError(f"Insert into {table.name} returned no row", table=table.name)
        return dict(inserted)

    async def upsert_by_key(
        self,
        table: Table,
        row: Mapping[str, Any],
        key_columns: Sequence[str] | None = None,
    ) -> Row | None:
        """
        INSERT ... ON CONFLICT (key) DO UPDATE SET <colonnes fournies>.

        Seules les colonnes présentes dans `row` sont écrites; les colonnes
        omises conservent leur valeur stockée. Un payload limité aux clés
        réécrit la clé sur elle-même pour que la ligne soit retournée.
        """
        key_columns = tuple(key_columns or primary_key_columns(table))
        _check_columns(table, [*row, *key_columns])
        missing = [column for column in key_columns if row.get(column) is None]
        if missing:
            raise StoreWriteError(
                f"Missing key column(s) {', '.join(missing)} for table {table.name}",
                table=table.name,
            )

        dialect_insert = _UPSERT_INSERTS.get(self.dialect_name)
        if dialect_insert is None:
            raise StoreWriteError(
                f"Upsert not supported for dialect {self.dialect_name}", table=table.name
            )

        stmt = dialect_insert(table).values(**row)
        set_ = {column: stmt.excluded[column] for column in row if column not in key_columns}
        if not set_:
            set_ = {key_columns[0]: stmt.excluded[key_columns[0]]}
        stmt = stmt.on_conflict_do_update(index_elements=list(key_columns), set_=set_)

        try:
            result = await self._session.execute(stmt.returning(*table.c))
            written = result.mappings().first()
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._fail(table, "upsert", e)
        return dict(written) if written is not None else None

    async def update_by_key(
        self, table: Table, key: Mapping[str, Any], values: Mapping[str, Any]
    ) -> Row | None:
        _check_columns(table, [*key, *values])
        try:
            result = await self._session.execute(
                update(table).where(_where(table, key)).values(**values).returning(*table.c)
            )
            updated = result.mappings().first()
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._fail(table, "update", e)
        return dict(updated) if updated is not None else None

    async def delete_by_key(self, table: Table, key_filter: Mapping[str, Any]) -> int:
        if not key_filter:
            raise ValueError(f"Refusing to delete from {table.name} without key filter")
        _check_columns(table, list(key_filter))
        try:
            result = await self._session.execute(delete(table).where(_where(table, key_filter)))
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._fail(table, "delete", e)
        return result.rowcount or 0


__all__ = [
    "RecordStore",
    "Row",
    "SQLAlchemyRecordStore",
    "primary_key_columns",
]
