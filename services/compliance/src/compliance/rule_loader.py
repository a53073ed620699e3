"""
Compliance rule loader for VoxGuard.

Loads the active compliance rules from the record store into an
immutable snapshot.  Rules whose patterns do not compile are quarantined
at load time instead of failing on every segment.  There is no TTL and
no background polling: a snapshot stays as loaded until ``refresh()``.
"""

from __future__ import annotations

import hashlib
import json

import structlog
from pydantic import ValidationError

from vg_common.db.store import RecordKind, RecordStore
from vg_common.exceptions import PersistenceFailure, RuleLoadFailure
from vg_common.models import ComplianceRule

from compliance.pattern_matcher import PatternMatcher

logger = structlog.get_logger()


class RuleLoader:
    """Loads active rules into a read-only snapshot.

    Args:
        store: Record store holding the ``rules`` kind.
        matcher: Matcher used to validate pattern compilability; sharing
            it with the evaluator also warms its compile cache.
    """

    def __init__(self, store: RecordStore, matcher: PatternMatcher | None = None) -> None:
        self._store = store
        self._matcher = matcher or PatternMatcher()
        self._snapshot: tuple[ComplianceRule, ...] = ()
        self._quarantined: dict[str, list[str]] = {}
        self._rules_hash: str = ""
        self._load_failed = False

    @property
    def matcher(self) -> PatternMatcher:
        return self._matcher

    @property
    def snapshot(self) -> tuple[ComplianceRule, ...]:
        """The most recently loaded active rules."""
        return self._snapshot

    @property
    def quarantined(self) -> dict[str, list[str]]:
        """Rule codes excluded at load time, mapped to their bad patterns."""
        return dict(self._quarantined)

    async def load(self) -> list[ComplianceRule]:
        """Return the active, compilable rules ordered by ``rule_code``.

        Storage failures are logged and produce an empty list; callers
        treat that as "no violations possible", never as an error.
        """
        try:
            rows = await self._fetch_rows()
        except RuleLoadFailure as exc:
            self._load_failed = True
            logger.warning("rule_load_failed", error=str(exc))
            return []
        self._load_failed = False

        rules: list[ComplianceRule] = []
        quarantined: dict[str, list[str]] = {}
        for row in rows:
            try:
                rule = ComplianceRule.model_validate(row)
            except ValidationError as exc:
                logger.warning(
                    "rule_row_invalid",
                    rule_code=row.get("rule_code"),
                    errors=exc.error_count(),
                )
                continue
            if not rule.is_active:
                continue
            failures = self._matcher.validate(rule)
            if failures:
                quarantined[rule.rule_code] = [f.pattern for f in failures]
                if rule.rule_code not in self._quarantined:
                    logger.warning(
                        "rule_quarantined",
                        rule_code=rule.rule_code,
                        patterns=[f.pattern for f in failures],
                        error=failures[0].reason,
                    )
                continue
            rules.append(rule)

        self._quarantined = quarantined
        self._snapshot = tuple(rules)
        logger.info("rules_loaded", rule_count=len(rules), quarantined=len(quarantined))
        return list(rules)

    async def refresh(self) -> bool:
        """Reload rules and report whether the active set changed.

        A failed load keeps the previous snapshot and hash and reports no
        change.
        """
        rules = await self.load()
        if self._load_failed:
            logger.warning("rules_refresh_skipped", rule_count=len(self._snapshot))
            return False
        rules_json = json.dumps(
            [r.model_dump(mode="json", exclude={"total_triggers", "updated_at"}) for r in rules],
            sort_keys=True,
        )
        new_hash = hashlib.sha256(rules_json.encode()).hexdigest()
        changed = new_hash != self._rules_hash
        self._rules_hash = new_hash
        logger.info("rules_refreshed", rule_count=len(rules), changed=changed)
        return changed

    async def _fetch_rows(self) -> list[dict]:
        try:
            return await self._store.query(
                RecordKind.RULES,
                {"is_active": True},
                order_by="rule_code",
            )
        except (PersistenceFailure, OSError) as exc:
            raise RuleLoadFailure(str(exc)) from exc
