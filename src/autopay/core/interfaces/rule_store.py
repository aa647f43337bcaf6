"""Rule Store Protocol.

The rule store exclusively owns autopay rules and is the single source of
truth for their state. All mutation goes through ``update``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from autopay.core.domain.rule import AutopayRule


class RuleStoreProtocol(Protocol):
    """Protocol for autopay rule persistence."""

    async def insert(self, rule: AutopayRule) -> None:
        """Add a new rule.

        Args:
            rule: The rule to store; its id must be unused.
        """
        ...

    async def update(self, rule_id: str, patch: dict[str, Any]) -> AutopayRule:
        """Apply a patch of mutable fields (``active``, ``last_triggered``).

        Args:
            rule_id: ID of the rule to update.
            patch: Field names mapped to new values.

        Returns:
            A copy of the updated rule.

        Raises:
            RuleNotFoundError: If the rule does not exist.
        """
        ...

    async def get(self, rule_id: str) -> AutopayRule | None:
        """Retrieve a copy of a rule by ID, or None."""
        ...

    async def delete(self, rule_id: str) -> bool:
        """Remove a rule.

        Returns:
            True if the rule was found and removed.
        """
        ...

    async def list_active(self) -> list[AutopayRule]:
        """List all rules with ``active == True``."""
        ...

    async def list_all(self) -> list[AutopayRule]:
        """List every stored rule."""
        ...
