"""
Record store: a small table-oriented query surface over a SQLAlchemy session.

Workflows that only need select/update/insert/delete (the household
membership reconciler in particular) talk to the database through a
`RecordStore` instead of the ORM.  The session is passed in explicitly, so
the same code runs against Flask-SQLAlchemy's scoped session in a request,
a plain session in a CLI command, or a mock in tests.

Filters come in two flavours:

    where={"household_id": hid}          # column == value (None -> IS NULL)
    where_in={"id": ["r1", "r2"]}        # column IN (...)

Writes commit immediately.  There is no transaction spanning two calls.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from sqlalchemy import delete as sa_delete, select as sa_select, update as sa_update
from sqlalchemy.exc import SQLAlchemyError

from .models import Activity, Certificate, Document, Household, Official, Ordinance, Report, Resident
from .time_utils import utcnow


logger = logging.getLogger(__name__)

TABLES = {
    "residents": Resident,
    "households": Household,
    "officials": Official,
    "ordinances": Ordinance,
    "activities": Activity,
    "reports": Report,
    "certificates": Certificate,
    "documents": Document,
}


class StoreError(Exception):
    """Raised when the store rejects a query or a write."""

    def __init__(self, table: str, operation: str, message: str):
        super().__init__(f"{operation} on {table} failed: {message}")
        self.table = table
        self.operation = operation


class RecordStore:
    """Table-level select/update/insert/delete bound to one session."""

    def __init__(self, session, tables: Mapping[str, Any] | None = None):
        self.session = session
        self.tables = dict(tables or TABLES)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _model(self, table: str, operation: str):
        try:
            return self.tables[table]
        except KeyError:
            raise StoreError(table, operation, "unknown table") from None

    def _column(self, model, table: str, operation: str, name: str):
        column = model.__table__.columns.get(name)
        if column is None:
            raise StoreError(table, operation, f"unknown column {name!r}")
        return column

    def _criteria(
        self,
        model,
        table: str,
        operation: str,
        where: Mapping[str, Any] | None,
        where_in: Mapping[str, Iterable[Any]] | None,
    ) -> list:
        criteria = []
        for name, value in (where or {}).items():
            column = self._column(model, table, operation, name)
            criteria.append(column.is_(None) if value is None else column == value)
        for name, values in (where_in or {}).items():
            column = self._column(model, table, operation, name)
            criteria.append(column.in_(list(values)))
        return criteria

    def _check_patch(self, model, table: str, operation: str, patch: Mapping[str, Any]) -> dict:
        for name in patch:
            self._column(model, table, operation, name)
        return dict(patch)

    def _write(self, table: str, operation: str, statement):
        try:
            result = self.session.execute(statement)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Store %s on %s failed: %s", operation, table, exc)
            raise StoreError(table, operation, str(exc)) from exc
        return result

    # ------------------------------------------------------------------
    # Query surface
    # ------------------------------------------------------------------

    def select(
        self,
        table: str,
        *,
        columns: Iterable[str] | None = None,
        where: Mapping[str, Any] | None = None,
        where_in: Mapping[str, Iterable[Any]] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        """Return matching rows as dicts, optionally limited to `columns`."""
        model = self._model(table, "select")
        names = list(columns) if columns else [c.name for c in model.__table__.columns]
        cols = [self._column(model, table, "select", name) for name in names]
        stmt = sa_select(*cols).where(*self._criteria(model, table, "select", where, where_in))
        if order_by:
            stmt = stmt.order_by(self._column(model, table, "select", order_by))
        try:
            rows = self.session.execute(stmt).all()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Store select on %s failed: %s", table, exc)
            raise StoreError(table, "select", str(exc)) from exc
        return [dict(zip(names, row)) for row in rows]

    def update(
        self,
        table: str,
        patch: Mapping[str, Any],
        *,
        where: Mapping[str, Any] | None = None,
        where_in: Mapping[str, Iterable[Any]] | None = None,
    ) -> int:
        """Apply `patch` to every matching row and return the matched count."""
        model = self._model(table, "update")
        criteria = self._criteria(model, table, "update", where, where_in)
        if not criteria:
            raise StoreError(table, "update", "refusing to update without a filter")
        values = self._check_patch(model, table, "update", patch)
        if "updated_at" in model.__table__.columns and "updated_at" not in values:
            values["updated_at"] = utcnow()
        stmt = sa_update(model).where(*criteria).values(**values).execution_options(synchronize_session=False)
        result = self._write(table, "update", stmt)
        logger.debug("Updated %s row(s) in %s", result.rowcount, table)
        return result.rowcount

    def insert(self, table: str, row: Mapping[str, Any]) -> dict:
        """Insert one row and return it as stored, including generated values."""
        model = self._model(table, "insert")
        values = self._check_patch(model, table, "insert", row)
        obj = model(**values)
        try:
            self.session.add(obj)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Store insert on %s failed: %s", table, exc)
            raise StoreError(table, "insert", str(exc)) from exc
        return {c.name: getattr(obj, c.name) for c in model.__table__.columns}

    def delete(
        self,
        table: str,
        *,
        where: Mapping[str, Any] | None = None,
        where_in: Mapping[str, Iterable[Any]] | None = None,
    ) -> int:
        """Delete matching rows and return the deleted count."""
        model = self._model(table, "delete")
        criteria = self._criteria(model, table, "delete", where, where_in)
        if not criteria:
            raise StoreError(table, "delete", "refusing to delete without a filter")
        stmt = sa_delete(model).where(*criteria).execution_options(synchronize_session=False)
        result = self._write(table, "delete", stmt)
        return result.rowcount
