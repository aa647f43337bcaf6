"""In-memory wallet gateway seeded from configuration."""

from __future__ import annotations

from decimal import Decimal

from autopay.core.domain.errors import TransientLookupError


class InMemoryWalletGateway:
    """Wallet gateway over fixed balances and addresses.

    Unknown wallets raise ``TransientLookupError`` on balance lookups and
    resolve to no address.
    """

    def __init__(
        self,
        balances: dict[str, Decimal] | None = None,
        addresses: dict[str, str] | None = None,
    ) -> None:
        self._balances = {k: Decimal(str(v)) for k, v in (balances or {}).items()}
        self._addresses = dict(addresses or {})

    def set_balance(self, wallet_ref: str, balance: Decimal) -> None:
        self._balances[wallet_ref] = Decimal(str(balance))

    def set_address(self, wallet_ref: str, address: str) -> None:
        self._addresses[wallet_ref] = address

    async def get_balance(self, wallet_ref: str) -> Decimal:
        if wallet_ref not in self._balances:
            raise TransientLookupError(f"Unknown wallet: {wallet_ref}", source="wallet")
        return self._balances[wallet_ref]

    async def get_address(self, wallet_ref: str) -> str | None:
        return self._addresses.get(wallet_ref) or None
