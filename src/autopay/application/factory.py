"""Factory wiring an ``AutopayEngine`` from settings and collaborators.

Collaborators not supplied by the caller fall back to the in-memory
reference adapters seeded from the settings.
"""

from __future__ import annotations

import structlog

from autopay.application.autopay_engine import AutopayEngine
from autopay.application.condition_evaluator import ConditionEvaluator, EventInbox
from autopay.application.execution_pipeline import ExecutionPipeline
from autopay.core.domain.config_schema import AutopaySettings
from autopay.core.interfaces.clock import ClockProtocol
from autopay.core.interfaces.event_bus import EventBusProtocol
from autopay.core.interfaces.ledger import LedgerStoreProtocol
from autopay.core.interfaces.notifications import NotificationSinkProtocol
from autopay.core.interfaces.pricing import PriceFeedProtocol
from autopay.core.interfaces.rule_store import RuleStoreProtocol
from autopay.core.interfaces.settlement import SettlementProtocol
from autopay.core.interfaces.wallet import WalletGatewayProtocol
from autopay.core.utils.time import SystemClock
from autopay.infrastructure.ledger import InMemoryLedgerStore
from autopay.infrastructure.messaging import InMemoryEventBus
from autopay.infrastructure.notifications import LoggingNotificationSink
from autopay.infrastructure.persistence import InMemoryRuleStore
from autopay.infrastructure.pricing import StaticPriceFeed
from autopay.infrastructure.scheduler.rule_scheduler import RuleScheduler
from autopay.infrastructure.settlement import SimulatedSettlement
from autopay.infrastructure.wallet import InMemoryWalletGateway

logger = structlog.get_logger(__name__)


def build_wallet_gateway(settings: AutopaySettings) -> InMemoryWalletGateway:
    """In-memory wallet gateway seeded from ``settings.wallets``."""
    return InMemoryWalletGateway(
        balances={ref: seed.balance for ref, seed in settings.wallets.items()},
        addresses={ref: seed.address for ref, seed in settings.wallets.items() if seed.address},
    )


def build_engine(
    settings: AutopaySettings | None = None,
    *,
    rule_store: RuleStoreProtocol | None = None,
    wallet_gateway: WalletGatewayProtocol | None = None,
    ledger_store: LedgerStoreProtocol | None = None,
    price_feed: PriceFeedProtocol | None = None,
    event_bus: EventBusProtocol | None = None,
    notification_sink: NotificationSinkProtocol | None = None,
    settlement: SettlementProtocol | None = None,
    clock: ClockProtocol | None = None,
) -> AutopayEngine:
    """Create a fully wired engine.

    Args:
        settings: Engine settings; defaults are used when omitted.
        rule_store: Rule persistence (defaults to in-memory).
        wallet_gateway: Wallet access (defaults to seeded in-memory wallets).
        ledger_store: Transaction ledger (defaults to in-memory).
        price_feed: Price source (defaults to ``settings.prices``).
        event_bus: Domain event bus (defaults to in-process bus).
        notification_sink: Execution notices (defaults to the log).
        settlement: Settlement step (defaults to the delay simulation).
        clock: Time source (defaults to the system clock).

    Returns:
        An uninitialized ``AutopayEngine``; call ``initialize()`` to start it.
    """
    settings = settings or AutopaySettings()
    clock = clock or SystemClock()
    rule_store = rule_store or InMemoryRuleStore()
    ledger_store = ledger_store or InMemoryLedgerStore()
    event_bus = event_bus or InMemoryEventBus()

    evaluator = ConditionEvaluator(
        price_feed=price_feed or StaticPriceFeed(settings.prices),
        inbox=EventInbox(event_bus, buffer_size=settings.event_buffer_size),
    )
    pipeline = ExecutionPipeline(
        rule_store,
        wallet_gateway or build_wallet_gateway(settings),
        ledger_store,
        settlement or SimulatedSettlement(settings.settlement_delay_seconds),
        funding_wallet=settings.funding_wallet,
        notification_sink=notification_sink or LoggingNotificationSink(),
        event_bus=event_bus,
        clock=clock,
        notify_timeout_seconds=settings.notify_timeout_seconds,
        finalize_attempts=settings.finalize_attempts,
        finalize_backoff_seconds=settings.finalize_backoff_seconds,
    )
    scheduler = RuleScheduler(
        rule_store,
        evaluator,
        pipeline,
        clock=clock,
        tick_interval_seconds=settings.tick_interval_seconds,
    )
    engine = AutopayEngine(
        rule_store,
        scheduler,
        pipeline,
        ledger_store=ledger_store,
        clock=clock,
        price_symbol=settings.price_symbol,
    )
    scheduler.set_execution_callback(engine.record_execution)
    logger.debug(
        "factory.engine_built",
        tick_interval_s=settings.tick_interval_seconds,
        funding_wallet=settings.funding_wallet,
    )
    return engine
