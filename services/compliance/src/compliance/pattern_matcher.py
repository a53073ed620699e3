"""
Pattern matcher for the VoxGuard compliance engine.

Evaluates one text against one compliance rule and yields at most one
match.  Patterns are tried in rule order and the first that matches
wins; any exclude pattern that matches the text suppresses the whole
rule.  Compiled patterns are cached per matcher, malformed patterns are
skipped with a single warning, and every search runs under an
execution-time cap.
"""

from __future__ import annotations

from dataclasses import dataclass

import regex
import structlog

from vg_common.config import get_settings
from vg_common.exceptions import PatternCompileFailure
from vg_common.models import ComplianceRule

from compliance import metrics

logger = structlog.get_logger()


@dataclass(frozen=True)
class MatchResult:
    """Result of one rule matching one text.

    Attributes:
        matched_pattern: The rule pattern that produced the match.
        matched_text: The substring captured by that pattern (lower-cased).
        start: Start character index in the evaluated text.
        end: End character index in the evaluated text.
    """

    matched_pattern: str
    matched_text: str
    start: int
    end: int


class PatternMatcher:
    """Compiles, caches, and applies rule patterns.

    Args:
        timeout_ms: Execution-time cap for a single search.  Falls back
            to ``Settings.regex_timeout_ms``.
    """

    def __init__(self, timeout_ms: int | None = None) -> None:
        ms = timeout_ms if timeout_ms is not None else get_settings().regex_timeout_ms
        self._timeout_s = ms / 1000.0
        self._compiled: dict[str, regex.Pattern[str] | None] = {}
        self._warned: set[tuple[str, str]] = set()

    # ── compilation ──

    def compile(self, rule_code: str, pattern: str) -> regex.Pattern[str]:
        """Compile *pattern* case-insensitively, using the cache.

        Raises:
            PatternCompileFailure: If the pattern is not a valid expression.
        """
        if pattern in self._compiled:
            cached = self._compiled[pattern]
            if cached is None:
                raise PatternCompileFailure(rule_code, pattern, "invalid pattern")
            return cached
        try:
            compiled = regex.compile(pattern, regex.IGNORECASE)
        except (regex.error, TypeError, ValueError) as exc:
            self._compiled[pattern] = None
            raise PatternCompileFailure(rule_code, pattern, str(exc)) from exc
        self._compiled[pattern] = compiled
        return compiled

    def validate(self, rule: ComplianceRule) -> list[PatternCompileFailure]:
        """Return a failure for every pattern of *rule* that does not compile."""
        failures: list[PatternCompileFailure] = []
        for pattern in (*rule.patterns, *rule.exclude_patterns):
            try:
                self.compile(rule.rule_code, pattern)
            except PatternCompileFailure as exc:
                failures.append(exc)
        return failures

    def _compiled_or_warn(self, rule: ComplianceRule, pattern: str) -> regex.Pattern[str] | None:
        try:
            return self.compile(rule.rule_code, pattern)
        except PatternCompileFailure as exc:
            key = (rule.rule_code, pattern)
            if key not in self._warned:
                self._warned.add(key)
                metrics.PATTERN_ERRORS.labels(kind="compile").inc()
                logger.warning(
                    "pattern_compile_error",
                    rule_code=rule.rule_code,
                    pattern=pattern,
                    error=exc.reason,
                )
            return None

    # ── matching ──

    def match(self, text: str, rule: ComplianceRule) -> MatchResult | None:
        """Match *text* against *rule*.

        Args:
            text: Text to evaluate.
            rule: The rule to apply.

        Returns:
            The first pattern's match, or ``None`` if the text is too
            short, nothing matches, an exclude pattern matches, or a
            search exceeded the time cap.
        """
        haystack = text.lower()
        if len(haystack) < rule.min_text_length:
            return None

        try:
            for pattern in rule.patterns:
                compiled = self._compiled_or_warn(rule, pattern)
                if compiled is None:
                    continue
                found = compiled.search(haystack, timeout=self._timeout_s)
                if found is None:
                    continue
                if self._excluded(rule, haystack):
                    return None
                return MatchResult(
                    matched_pattern=pattern,
                    matched_text=found.group(0),
                    start=found.start(),
                    end=found.end(),
                )
        except TimeoutError:
            metrics.PATTERN_ERRORS.labels(kind="timeout").inc()
            logger.warning(
                "pattern_search_timeout",
                rule_code=rule.rule_code,
                timeout_s=self._timeout_s,
                text_length=len(haystack),
            )
        return None

    def _excluded(self, rule: ComplianceRule, haystack: str) -> bool:
        for pattern in rule.exclude_patterns:
            compiled = self._compiled_or_warn(rule, pattern)
            if compiled is not None and compiled.search(haystack, timeout=self._timeout_s):
                return True
        return False

    @property
    def cached_pattern_count(self) -> int:
        """Number of valid compiled patterns in the cache."""
        return sum(1 for compiled in self._compiled.values() if compiled is not None)
