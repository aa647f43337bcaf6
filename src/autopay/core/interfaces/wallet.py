"""Wallet gateway protocol.

The gateway is eventually consistent and may be slow or fail transiently;
callers treat every call as a suspension point that can raise.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol


class WalletGatewayProtocol(Protocol):
    """Read access to the user's wallets."""

    async def get_balance(self, wallet_ref: str) -> Decimal:
        """Return the spendable balance of a wallet.

        Args:
            wallet_ref: Wallet reference.

        Returns:
            The balance in the wallet's unit (BTC).
        """
        ...

    async def get_address(self, wallet_ref: str) -> str | None:
        """Resolve the address payments from this wallet are sent from.

        Args:
            wallet_ref: Wallet reference.

        Returns:
            The address, or None when it cannot be resolved.
        """
        ...
