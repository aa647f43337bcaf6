"""Rule persistence implementations."""

from autopay.infrastructure.persistence.rule_store import FileRuleStore, InMemoryRuleStore

__all__ = ["FileRuleStore", "InMemoryRuleStore"]
