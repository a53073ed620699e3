"""
Record-store interface for VoxGuard.

The compliance engine reaches persistence only through the narrow
:class:`RecordStore` contract: insert, update, get, query-by-filter, and
delete over four record kinds.  Only single-row atomicity is assumed;
multi-row sequences are the caller's responsibility.

:class:`SqlRecordStore` implements the contract over SQLAlchemy async
sessions.  Every SQL error is rolled back, logged, and re-raised as
:class:`~vg_common.exceptions.PersistenceFailure`.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Callable
from uuid import UUID

import structlog
from pydantic_core import to_jsonable_python
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from vg_common.db.orm_models import (
    Base,
    ComplianceAlertORM,
    ComplianceRuleORM,
    SessionORM,
    TranscriptSegmentORM,
)
from vg_common.exceptions import PersistenceFailure

logger = structlog.get_logger(__name__)

Record = dict[str, Any]
Filters = Mapping[str, Any]


class RecordKind(str, enum.Enum):
    """Record kinds held by the store."""

    SESSIONS = "sessions"
    SEGMENTS = "segments"
    ALERTS = "alerts"
    RULES = "rules"


class RecordStore(ABC):
    """Narrow persistence contract used by the compliance engine.

    Filters are ``field -> value`` equality tests; a list, tuple or set
    value means "field is one of".  Records are plain dicts keyed by the
    Pydantic model field names.
    """

    @abstractmethod
    async def insert(self, kind: RecordKind, record: Mapping[str, Any]) -> Record:
        """Insert *record* and return the stored copy."""

    @abstractmethod
    async def get(self, kind: RecordKind, record_id: UUID) -> Record | None:
        """Return one record by id, or ``None``."""

    @abstractmethod
    async def update(
        self,
        kind: RecordKind,
        record_id: UUID,
        changes: Mapping[str, Any],
    ) -> bool:
        """Apply *changes* to one record.  Returns ``False`` if it does not exist."""

    @abstractmethod
    async def delete(self, kind: RecordKind, filters: Filters) -> int:
        """Delete every record matching *filters* and return the count."""

    @abstractmethod
    async def query(
        self,
        kind: RecordKind,
        filters: Filters | None = None,
        order_by: str | None = None,
    ) -> list[Record]:
        """Return records matching *filters*, optionally sorted by one field."""

    async def close(self) -> None:
        """Release any resources held by the store (override if needed)."""


# ── SQL backend ──

_ORM_BY_KIND: dict[RecordKind, type[Base]] = {
    RecordKind.SESSIONS: SessionORM,
    RecordKind.SEGMENTS: TranscriptSegmentORM,
    RecordKind.ALERTS: ComplianceAlertORM,
    RecordKind.RULES: ComplianceRuleORM,
}


def _column_value(value: Any) -> Any:
    """Convert a model value into something the column types accept."""
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (list, tuple, dict)):
        return to_jsonable_python(value)
    return value


class SqlRecordStore(RecordStore):
    """Record store over SQLAlchemy async sessions.

    Parameters
    ----------
    session_factory:
        Callable returning an ``AsyncSession`` (usually an
        ``async_sessionmaker``).
    """

    def __init__(self, session_factory: Callable[..., AsyncSession]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _model(kind: RecordKind) -> Any:
        return _ORM_BY_KIND[RecordKind(kind)]

    @staticmethod
    def _as_record(row: Base) -> Record:
        return {column.name: getattr(row, column.name) for column in row.__table__.columns}

    def _where(self, model: Any, filters: Filters | None) -> list[Any]:
        clauses = []
        for field, value in (filters or {}).items():
            column = getattr(model, field)
            if isinstance(value, (list, tuple, set, frozenset)):
                clauses.append(column.in_([_column_value(v) for v in value]))
            else:
                clauses.append(column == _column_value(value))
        return clauses

    async def insert(self, kind: RecordKind, record: Mapping[str, Any]) -> Record:
        model = self._model(kind)
        values = {k: _column_value(v) for k, v in record.items()}
        session = self._session_factory()
        try:
            row = model(**values)
            session.add(row)
            await session.commit()
            stored = self._as_record(row)
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.exception("record_insert_failed", kind=kind.value)
            raise PersistenceFailure(kind.value, "insert", str(exc)) from exc
        finally:
            await session.close()
        return stored

    async def get(self, kind: RecordKind, record_id: UUID) -> Record | None:
        model = self._model(kind)
        session = self._session_factory()
        try:
            row = await session.get(model, record_id)
            return None if row is None else self._as_record(row)
        except SQLAlchemyError as exc:
            logger.exception("record_get_failed", kind=kind.value, record_id=str(record_id))
            raise PersistenceFailure(kind.value, "get", str(exc)) from exc
        finally:
            await session.close()

    async def update(
        self,
        kind: RecordKind,
        record_id: UUID,
        changes: Mapping[str, Any],
    ) -> bool:
        model = self._model(kind)
        values = {k: _column_value(v) for k, v in changes.items()}
        session = self._session_factory()
        try:
            result = await session.execute(
                update(model).where(model.id == record_id).values(**values)
            )
            await session.commit()
            return bool(result.rowcount)
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.exception("record_update_failed", kind=kind.value, record_id=str(record_id))
            raise PersistenceFailure(kind.value, "update", str(exc)) from exc
        finally:
            await session.close()

    async def delete(self, kind: RecordKind, filters: Filters) -> int:
        if not filters:
            raise ValueError("delete requires at least one filter")
        model = self._model(kind)
        session = self._session_factory()
        try:
            result = await session.execute(delete(model).where(*self._where(model, filters)))
            await session.commit()
            return int(result.rowcount or 0)
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.exception("record_delete_failed", kind=kind.value)
            raise PersistenceFailure(kind.value, "delete", str(exc)) from exc
        finally:
            await session.close()

    async def query(
        self,
        kind: RecordKind,
        filters: Filters | None = None,
        order_by: str | None = None,
    ) -> list[Record]:
        model = self._model(kind)
        stmt = select(model).where(*self._where(model, filters))
        if order_by is not None:
            stmt = stmt.order_by(getattr(model, order_by))
        session = self._session_factory()
        try:
            result = await session.execute(stmt)
            return [self._as_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            logger.exception("record_query_failed", kind=kind.value)
            raise PersistenceFailure(kind.value, "query", str(exc)) from exc
        finally:
            await session.close()

