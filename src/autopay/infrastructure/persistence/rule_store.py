"""Rule stores for autopay rules.

``InMemoryRuleStore`` keeps rules in a dict; ``FileRuleStore`` additionally
persists them to a JSON file so they survive restarts. Both hand out copies,
so callers can only change a rule through ``update``.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any

import aiofiles
import structlog

from autopay.core.domain.errors import RuleNotFoundError
from autopay.core.domain.rule import MUTABLE_FIELDS, AutopayRule
from autopay.core.utils.time import ensure_utc

logger = structlog.get_logger(__name__)


class InMemoryRuleStore:
    """Dict-backed rule store."""

    def __init__(self) -> None:
        self._rules: dict[str, AutopayRule] = {}

    async def insert(self, rule: AutopayRule) -> None:
        if rule.rule_id in self._rules:
            raise ValueError(f"Duplicate rule id: {rule.rule_id}")
        self._rules[rule.rule_id] = replace(rule)
        await self._persist()
        logger.info("rule_store.inserted", rule_id=rule.rule_id)

    async def update(self, rule_id: str, patch: dict[str, Any]) -> AutopayRule:
        rule = self._rules.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        unknown = set(patch) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Immutable or unknown rule fields: {sorted(unknown)}")

        changes: dict[str, Any] = {}
        if "active" in patch:
            changes["active"] = bool(patch["active"])
        if "last_triggered" in patch:
            changes["last_triggered"] = self._merge_last_triggered(
                rule.last_triggered, patch["last_triggered"]
            )
        updated = replace(rule, **changes)
        self._rules[rule_id] = updated
        await self._persist()
        logger.debug("rule_store.updated", rule_id=rule_id, fields=sorted(changes))
        return replace(updated)

    async def get(self, rule_id: str) -> AutopayRule | None:
        rule = self._rules.get(rule_id)
        return replace(rule) if rule else None

    async def delete(self, rule_id: str) -> bool:
        if rule_id not in self._rules:
            return False
        del self._rules[rule_id]
        await self._persist()
        logger.info("rule_store.deleted", rule_id=rule_id)
        return True

    async def list_active(self) -> list[AutopayRule]:
        return [replace(r) for r in self._rules.values() if r.active]

    async def list_all(self) -> list[AutopayRule]:
        return [replace(r) for r in self._rules.values()]

    @staticmethod
    def _merge_last_triggered(
        current: datetime | None, proposed: datetime | None
    ) -> datetime | None:
        """Keep ``last_triggered`` monotonically non-decreasing."""
        if proposed is None:
            return current
        proposed = ensure_utc(proposed)
        if current is not None and ensure_utc(current) > proposed:
            return current
        return proposed

    async def _persist(self) -> None:
        """Hook for durable subclasses."""


class FileRuleStore(InMemoryRuleStore):
    """Rule store persisted as a JSON list.

    Storage layout::

        {work_dir}/autopay/rules.json
    """

    def __init__(self, work_dir: str = ".autopay") -> None:
        super().__init__()
        self._store_path = Path(work_dir) / "autopay" / "rules.json"
        self._write_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._store_path

    async def load(self) -> None:
        """Load persisted rules from disk."""
        if not self._store_path.exists():
            return
        async with aiofiles.open(self._store_path) as f:
            raw = await f.read()
        for item in json.loads(raw or "[]"):
            try:
                rule = AutopayRule.from_dict(item)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("rule_store.load_skipped", error=str(exc), rule=item)
                continue
            self._rules[rule.rule_id] = rule
        logger.info("rule_store.loaded", count=len(self._rules), path=str(self._store_path))

    async def _persist(self) -> None:
        """Persist rules to disk, one writer at a time."""
        async with self._write_lock:
            self._store_path.parent.mkdir(parents=True, exist_ok=True)
            data = [r.to_dict() for r in self._rules.values()]
            raw = json.dumps(data, indent=2, default=str)
            tmp = self._store_path.with_suffix(".json.tmp")
            async with aiofiles.open(tmp, "w") as f:
                await f.write(raw)
            tmp.replace(self._store_path)
