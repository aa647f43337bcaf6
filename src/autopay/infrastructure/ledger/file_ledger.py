"""File-backed ledger store so transaction history survives CLI invocations."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import aiofiles
import structlog

from autopay.core.domain.execution import LedgerTransaction
from autopay.infrastructure.ledger.in_memory_ledger import InMemoryLedgerStore

logger = structlog.get_logger(__name__)


class FileLedgerStore(InMemoryLedgerStore):
    """Ledger persisted as a JSON list, rewritten on every change.

    Storage layout::

        {work_dir}/autopay/ledger.json
    """

    def __init__(self, work_dir: str = ".autopay") -> None:
        super().__init__()
        self._store_path = Path(work_dir) / "autopay" / "ledger.json"
        self._write_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._store_path

    async def load(self) -> None:
        """Load persisted transactions from disk."""
        if not self._store_path.exists():
            return
        async with aiofiles.open(self._store_path) as f:
            raw = await f.read()
        for item in json.loads(raw or "[]"):
            try:
                transaction = LedgerTransaction.from_dict(item)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("ledger.load_skipped", error=str(exc), record=item)
                continue
            self._transactions[transaction.transaction_id] = transaction
        logger.info(
            "ledger.loaded", count=len(self._transactions), path=str(self._store_path)
        )

    async def _persist(self) -> None:
        """Write the ledger through a temp file, one writer at a time."""
        async with self._write_lock:
            self._store_path.parent.mkdir(parents=True, exist_ok=True)
            data = [t.to_dict() for t in self._transactions.values()]
            raw = json.dumps(data, indent=2, default=str)
            tmp = self._store_path.with_suffix(".json.tmp")
            async with aiofiles.open(tmp, "w") as f:
                await f.write(raw)
            tmp.replace(self._store_path)
