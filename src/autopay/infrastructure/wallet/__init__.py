"""Wallet gateway implementations."""

from autopay.infrastructure.wallet.in_memory_wallet import InMemoryWalletGateway

__all__ = ["InMemoryWalletGateway"]
