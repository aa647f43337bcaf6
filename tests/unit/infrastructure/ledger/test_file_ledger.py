"""Tests for the file-backed ledger store."""

import asyncio
import json
from decimal import Decimal

from autopay.core.domain.execution import TransactionDraft, TransactionStatus, TransactionType
from autopay.infrastructure.ledger import FileLedgerStore


def _draft(rule_id: str = "rule-1") -> TransactionDraft:
    return TransactionDraft(
        wallet_id="default",
        amount=Decimal("0.001"),
        recipient="bc1qrecipient",
        sender="bc1qsender",
        autopay_rule_id=rule_id,
    )


class TestFileLedgerStore:
    """Tests for FileLedgerStore persistence."""

    def test_path_layout(self, tmp_path) -> None:
        store = FileLedgerStore(str(tmp_path))
        assert store.path == tmp_path / "autopay" / "ledger.json"

    async def test_transactions_survive_reload(self, tmp_path) -> None:
        store = FileLedgerStore(str(tmp_path))
        created = await store.create(_draft())
        await store.update(
            created.transaction_id, {"status": "completed", "tx_hash": "autopay_1_abc"}
        )

        reloaded = FileLedgerStore(str(tmp_path))
        await reloaded.load()
        [restored] = await reloaded.list_for_rule("rule-1")

        assert restored.transaction_id == created.transaction_id
        assert restored.status is TransactionStatus.COMPLETED
        assert restored.type is TransactionType.SENT
        assert restored.tx_hash == "autopay_1_abc"
        assert restored.amount == Decimal("0.001")
        assert restored.created_at == created.created_at
        assert restored.updated_at >= restored.created_at

    async def test_pending_record_is_on_disk_before_update(self, tmp_path) -> None:
        store = FileLedgerStore(str(tmp_path))
        created = await store.create(_draft())

        [stored] = json.loads(store.path.read_text())

        assert stored["transaction_id"] == created.transaction_id
        assert stored["status"] == "autopay"

    async def test_concurrent_writes_keep_every_record(self, tmp_path) -> None:
        store = FileLedgerStore(str(tmp_path))
        await asyncio.gather(*(store.create(_draft(f"rule-{i}")) for i in range(10)))

        reloaded = FileLedgerStore(str(tmp_path))
        await reloaded.load()

        assert len(await reloaded.list_autopay()) == 10
        assert not store.path.with_suffix(".json.tmp").exists()

    async def test_load_missing_file(self, tmp_path) -> None:
        store = FileLedgerStore(str(tmp_path))
        await store.load()
        assert await store.list_autopay() == []

    async def test_load_skips_malformed_entries(self, tmp_path) -> None:
        store = FileLedgerStore(str(tmp_path))
        good = await store.create(_draft())

        reloaded = FileLedgerStore(str(tmp_path))
        reloaded.path.write_text(
            json.dumps([good.to_dict(), {"transaction_id": "broken", "status": "weird"}])
        )
        await reloaded.load()

        assert [t.transaction_id for t in await reloaded.list_autopay()] == [
            good.transaction_id
        ]
