"""
Prometheus metrics for the VoxGuard compliance service.

Counters and histograms are module-level singletons registered in the
default registry and exposed at ``/metrics`` by ``compliance.main``.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

EVALUATIONS = Counter(
    "compliance_evaluations_total",
    "Total number of texts evaluated against a rule set.",
)
VIOLATIONS = Counter(
    "compliance_violations_total",
    "Total number of violations detected.",
    ["severity"],
)
PATTERN_ERRORS = Counter(
    "compliance_pattern_errors_total",
    "Patterns that failed to compile or timed out.",
    ["kind"],
)
ALERT_INSERT_FAILURES = Counter(
    "compliance_alert_insert_failures_total",
    "Alert inserts skipped after a persistence failure.",
)
SEGMENT_PERSIST_FAILURES = Counter(
    "compliance_segment_persist_failures_total",
    "Real-time segments that could not be persisted on save.",
)
RECONCILIATIONS = Counter(
    "compliance_reconciliations_total",
    "Batch reconciliation outcomes.",
    ["outcome"],
)
EVALUATION_SECONDS = Histogram(
    "compliance_evaluation_seconds",
    "Time spent evaluating one text against a rule set.",
    buckets=(0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0),
)
