"""
SqlRelationalStore
==================
RelationalStore over an async SQLAlchemy session.

Each write commits on its own, so a later failure never undoes an earlier
step of a submission. Any SQLAlchemy error is rolled back and re-raised as
PersistenceError.
"""
import logging
from typing import Any

from sqlalchemy import delete as sa_delete, select as sa_select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase

from app.core.exceptions import PersistenceError
from app.db.schemas import FundVault, KYBDocument, Organization, UltimateBeneficialOwner
from app.services.stores import FUND_VAULTS, KYB_DOCUMENTS, ORGANIZATIONS, UBOS, Record

logger = logging.getLogger(__name__)

TABLE_MODELS: dict[str, type[DeclarativeBase]] = {
    ORGANIZATIONS: Organization,
    UBOS: UltimateBeneficialOwner,
    KYB_DOCUMENTS: KYBDocument,
    FUND_VAULTS: FundVault,
}


def _row_to_dict(obj: Any) -> Record:
    return {attr.key: getattr(obj, attr.key) for attr in obj.__mapper__.column_attrs}


class SqlRelationalStore:
    """Table-name addressed CRUD over the ORM models."""

    def __init__(self, db: AsyncSession):
        self._db = db

    # ── Internal helpers ──────────────────────────────────────

    def _model(self, table: str):
        try:
            return TABLE_MODELS[table]
        except KeyError:
            raise PersistenceError(message=f"Unknown table: {table}", table=table) from None

    def _where(self, model, filters: Record | None):
        conditions = []
        for column, value in (filters or {}).items():
            attr = getattr(model, column, None)
            if attr is None:
                raise PersistenceError(
                    message=f"Unknown column {column} on {model.__tablename__}",
                    table=model.__tablename__,
                )
            conditions.append(attr == value)
        return conditions

    def _build(self, model, record: Record):
        unknown = set(record) - {a.key for a in model.__mapper__.column_attrs}
        if unknown:
            raise PersistenceError(
                message=f"Unknown columns for {model.__tablename__}: {sorted(unknown)}",
                table=model.__tablename__,
            )
        return model(**record)

    async def _refresh(self, objs: list) -> None:
        # load columns the INSERT left unset so rows can be read without lazy IO
        for obj in objs:
            await self._db.refresh(obj)

    async def _fail(self, table: str, op: str, exc: SQLAlchemyError) -> PersistenceError:
        await self._db.rollback()
        logger.warning(
            "persistence_error",
            extra={"table": table, "op": op, "error": str(exc.orig if hasattr(exc, "orig") else exc)},
        )
        return PersistenceError(
            message=f"{op} on {table} failed: {exc.__class__.__name__}",
            table=table,
            details={"op": op},
        )

    # ── RelationalStore ───────────────────────────────────────

    async def select(
        self,
        table: str,
        filters: Record | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Record]:
        model = self._model(table)
        stmt = sa_select(model).where(*self._where(model, filters))
        if order_by:
            column = getattr(model, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            result = await self._db.execute(stmt)
        except SQLAlchemyError as exc:
            raise await self._fail(table, "select", exc) from exc
        return [_row_to_dict(obj) for obj in result.scalars().all()]

    async def insert(self, table: str, record: Record) -> Record:
        model = self._model(table)
        obj = self._build(model, record)
        try:
            self._db.add(obj)
            await self._db.commit()
            await self._refresh([obj])
        except SQLAlchemyError as exc:
            raise await self._fail(table, "insert", exc) from exc
        return _row_to_dict(obj)

    async def upsert(
        self,
        table: str,
        records: Record | list[Record],
        on_conflict: str = "id",
    ) -> list[Record]:
        """Update the row whose on_conflict column matches, else insert. Unset columns keep their value."""
        model = self._model(table)
        batch = [records] if isinstance(records, dict) else list(records)
        saved = []
        try:
            for record in batch:
                key = record.get(on_conflict)
                existing = None
                if key is not None:
                    result = await self._db.execute(
                        sa_select(model).where(getattr(model, on_conflict) == key)
                    )
                    existing = result.scalar_one_or_none()
                if existing is None:
                    obj = self._build(model, record)
                    self._db.add(obj)
                else:
                    for column, value in record.items():
                        setattr(existing, column, value)
                    obj = existing
                saved.append(obj)
            await self._db.commit()
            await self._refresh(saved)
        except SQLAlchemyError as exc:
            raise await self._fail(table, "upsert", exc) from exc
        return [_row_to_dict(obj) for obj in saved]

    async def replace(self, table: str, filters: Record, records: list[Record]) -> list[Record]:
        model = self._model(table)
        objs = [self._build(model, r) for r in records]
        try:
            await self._db.execute(sa_delete(model).where(*self._where(model, filters)))
            self._db.add_all(objs)
            await self._db.commit()
            await self._refresh(objs)
        except SQLAlchemyError as exc:
            raise await self._fail(table, "replace", exc) from exc
        return [_row_to_dict(obj) for obj in objs]
