"""
Database connection and record-store utilities for VoxGuard.

This package provides async database connection management via SQLAlchemy,
ORM model definitions for PostgreSQL, the RecordStore contract with its SQL
and in-memory backends, and Alembic migration support.
"""

from vg_common.db.connection import (
    build_engine,
    build_record_store,
    build_session_factory,
    check_database_health,
    dispose_engine,
    get_engine,
    get_session_factory,
)
from vg_common.db.memory_store import MemoryRecordStore
from vg_common.db.orm_models import (
    Base,
    ComplianceAlertORM,
    ComplianceRuleORM,
    SessionORM,
    TranscriptSegmentORM,
)
from vg_common.db.store import RecordKind, RecordStore, SqlRecordStore

__all__ = [
    "Base",
    "ComplianceAlertORM",
    "ComplianceRuleORM",
    "MemoryRecordStore",
    "RecordKind",
    "RecordStore",
    "SessionORM",
    "SqlRecordStore",
    "TranscriptSegmentORM",
    "build_engine",
    "build_record_store",
    "build_session_factory",
    "check_database_health",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
]
