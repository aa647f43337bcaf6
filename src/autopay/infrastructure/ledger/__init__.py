"""Ledger store implementations."""

from autopay.infrastructure.ledger.file_ledger import FileLedgerStore
from autopay.infrastructure.ledger.in_memory_ledger import InMemoryLedgerStore

__all__ = ["FileLedgerStore", "InMemoryLedgerStore"]
