"""Settlement implementations."""

from autopay.infrastructure.settlement.simulated_settlement import SimulatedSettlement

__all__ = ["SimulatedSettlement"]
