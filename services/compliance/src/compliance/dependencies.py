"""
FastAPI dependency injection providers for the compliance service.

Every shared component is created once during startup and stored on
``app.state``; these ``Depends()`` callables hand them to the routers
and are overridden in tests.
"""

from __future__ import annotations

from fastapi import Request

from vg_common.db.store import RecordStore

from compliance.intake import StreamIntake
from compliance.reconciliation import BatchReconciler
from compliance.rule_loader import RuleLoader
from compliance.session_aggregator import SessionAggregator


def get_store(request: Request) -> RecordStore:
    """Return the record store from app state."""
    return request.app.state.store


def get_rule_loader(request: Request) -> RuleLoader:
    return request.app.state.rule_loader


def get_aggregator(request: Request) -> SessionAggregator:
    return request.app.state.aggregator


def get_reconciler(request: Request) -> BatchReconciler:
    return request.app.state.reconciler


def get_intake(request: Request) -> StreamIntake | None:
    """Return the stream intake, or ``None`` when Redis intake is disabled."""
    return getattr(request.app.state, "intake", None)
