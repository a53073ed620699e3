"""
In-process record store for VoxGuard.

Keeps every record kind in a dict keyed by id.  Used when
``VG_STORE_BACKEND=memory`` (local runs, demos) and throughout the test
suite.  Records are deep-copied on the way in and out so callers never
share mutable state with the store.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from vg_common.db.store import Filters, Record, RecordKind, RecordStore


def _matches(record: Record, filters: Filters | None) -> bool:
    for field, expected in (filters or {}).items():
        actual = record.get(field)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


class MemoryRecordStore(RecordStore):
    """Dict-backed :class:`RecordStore` with the same filter semantics as SQL."""

    def __init__(self) -> None:
        self._tables: dict[RecordKind, dict[UUID, Record]] = {kind: {} for kind in RecordKind}

    async def insert(self, kind: RecordKind, record: Mapping[str, Any]) -> Record:
        stored = copy.deepcopy(dict(record))
        stored.setdefault("id", uuid4())
        self._tables[RecordKind(kind)][stored["id"]] = stored
        return copy.deepcopy(stored)

    async def get(self, kind: RecordKind, record_id: UUID) -> Record | None:
        record = self._tables[RecordKind(kind)].get(record_id)
        return None if record is None else copy.deepcopy(record)

    async def update(
        self,
        kind: RecordKind,
        record_id: UUID,
        changes: Mapping[str, Any],
    ) -> bool:
        record = self._tables[RecordKind(kind)].get(record_id)
        if record is None:
            return False
        record.update(copy.deepcopy(dict(changes)))
        if "updated_at" in record and "updated_at" not in changes:
            record["updated_at"] = datetime.now(timezone.utc)
        return True

    async def delete(self, kind: RecordKind, filters: Filters) -> int:
        if not filters:
            raise ValueError("delete requires at least one filter")
        table = self._tables[RecordKind(kind)]
        doomed = [rid for rid, record in table.items() if _matches(record, filters)]
        for rid in doomed:
            del table[rid]
        return len(doomed)

    async def query(
        self,
        kind: RecordKind,
        filters: Filters | None = None,
        order_by: str | None = None,
    ) -> list[Record]:
        rows = [
            copy.deepcopy(record)
            for record in self._tables[RecordKind(kind)].values()
            if _matches(record, filters)
        ]
        if order_by is not None:
            rows.sort(key=lambda r: (r.get(order_by) is not None, r.get(order_by)))
        return rows
