"""Test configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from autopay.core.domain.execution import LedgerTransaction
from autopay.infrastructure.ledger import InMemoryLedgerStore
from autopay.infrastructure.messaging import InMemoryEventBus
from autopay.infrastructure.notifications import LoggingNotificationSink
from autopay.infrastructure.persistence import InMemoryRuleStore
from autopay.infrastructure.pricing import StaticPriceFeed
from autopay.infrastructure.wallet import InMemoryWalletGateway

START = datetime(2026, 3, 2, 9, 0, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        self.current += delta if delta is not None else timedelta(**kwargs)
        return self.current


class GatedSettlement:
    """Settlement that blocks until released and records concurrency."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def settle(self, transaction: LedgerTransaction) -> str:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.started.set()
        try:
            await self.release.wait()
        finally:
            self.in_flight -= 1
        return f"ref-{transaction.transaction_id[:8]}"


class InstantSettlement:
    """Settlement that confirms immediately."""

    def __init__(self) -> None:
        self.calls = 0

    async def settle(self, transaction: LedgerTransaction) -> str:
        self.calls += 1
        return f"ref-{self.calls}"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rule_store() -> InMemoryRuleStore:
    return InMemoryRuleStore()


@pytest.fixture
def ledger() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def wallet() -> InMemoryWalletGateway:
    return InMemoryWalletGateway(
        balances={"default": Decimal("1.0")},
        addresses={"default": "bc1qsender"},
    )


@pytest.fixture
def price_feed() -> StaticPriceFeed:
    return StaticPriceFeed({"BTC": Decimal("45000")})


@pytest.fixture
def notifications() -> LoggingNotificationSink:
    return LoggingNotificationSink()


@pytest.fixture
def settlement() -> InstantSettlement:
    return InstantSettlement()


@pytest.fixture
def gated_settlement() -> GatedSettlement:
    return GatedSettlement()


@pytest.fixture
def wait_until() -> Callable[..., object]:
    """Poll a predicate until it holds or the timeout expires."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        deadline = asyncio.get_running_loop().time() + timeout
        while not predicate():
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError("Condition not reached before timeout")
            await asyncio.sleep(0.005)

    return _wait
