"""Protocols for the collaborators the autopay core consumes."""

from autopay.core.interfaces.clock import ClockProtocol
from autopay.core.interfaces.event_bus import EventBusProtocol
from autopay.core.interfaces.ledger import LedgerStoreProtocol
from autopay.core.interfaces.notifications import NotificationSinkProtocol
from autopay.core.interfaces.pricing import PriceFeedProtocol
from autopay.core.interfaces.rule_store import RuleStoreProtocol
from autopay.core.interfaces.settlement import SettlementProtocol
from autopay.core.interfaces.wallet import WalletGatewayProtocol

__all__ = [
    "ClockProtocol",
    "EventBusProtocol",
    "LedgerStoreProtocol",
    "NotificationSinkProtocol",
    "PriceFeedProtocol",
    "RuleStoreProtocol",
    "SettlementProtocol",
    "WalletGatewayProtocol",
]
