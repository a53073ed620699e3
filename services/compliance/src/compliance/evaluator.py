"""
Compliance evaluator for VoxGuard.

Runs the pattern matcher against every rule of a snapshot for one text
and aggregates the result: violations in rule order, an additive risk
score, and the highest severity.  Evaluation has no side effects beyond
logging and metrics, so the same ``(text, rules)`` always yields the
same result.

The ``confidence`` reported on a violation is the rule's static
``confidence_threshold``; no match-quality score is computed.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from vg_common.models import ComplianceRule, Severity

from compliance import metrics
from compliance.pattern_matcher import PatternMatcher

logger = structlog.get_logger()

_default_matcher: PatternMatcher | None = None


def _shared_matcher() -> PatternMatcher:
    global _default_matcher  # noqa: PLW0603
    if _default_matcher is None:
        _default_matcher = PatternMatcher()
    return _default_matcher


@dataclass(frozen=True)
class Violation:
    """One rule matching one text.

    Attributes:
        rule: The rule that matched.
        matched_pattern: The pattern that produced the match.
        matched_text: The matched substring.
        confidence: The rule's static confidence threshold.
    """

    rule: ComplianceRule
    matched_pattern: str
    matched_text: str
    confidence: float

    @property
    def severity(self) -> Severity:
        return self.rule.severity


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of evaluating one text against a rule set."""

    violations: tuple[Violation, ...] = field(default_factory=tuple)
    risk_score: int = 0
    max_severity: Severity | None = None

    @property
    def has_violations(self) -> bool:
        return bool(self.violations)


EMPTY_RESULT = EvaluationResult()


def evaluate(
    text: str,
    rules: Iterable[ComplianceRule],
    matcher: PatternMatcher | None = None,
) -> EvaluationResult:
    """Evaluate *text* against *rules*.

    Args:
        text: Text to evaluate.
        rules: Rules in the order they should be tried.  Violation order
            follows this order; nothing is re-sorted by severity.
        matcher: Pattern matcher to use.  Defaults to a process-wide
            matcher whose only state is its compiled-pattern cache.

    Returns:
        An :class:`EvaluationResult`.  ``risk_score`` is the plain sum of
        the violated rules' ``risk_score`` values.
    """
    matcher = matcher or _shared_matcher()
    started = time.perf_counter()
    violations: list[Violation] = []

    for rule in rules:
        try:
            result = matcher.match(text, rule)
        except Exception:
            logger.exception("rule_evaluation_failed", rule_code=rule.rule_code)
            continue
        if result is None:
            continue
        violations.append(
            Violation(
                rule=rule,
                matched_pattern=result.matched_pattern,
                matched_text=result.matched_text,
                confidence=rule.confidence_threshold,
            )
        )

    metrics.EVALUATIONS.inc()
    metrics.EVALUATION_SECONDS.observe(time.perf_counter() - started)
    for violation in violations:
        metrics.VIOLATIONS.labels(severity=violation.severity.value).inc()

    return EvaluationResult(
        violations=tuple(violations),
        risk_score=sum(v.rule.risk_score for v in violations),
        max_severity=Severity.max_of(*(v.severity for v in violations)),
    )
