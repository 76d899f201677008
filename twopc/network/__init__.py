"""
Simulated network: node registry, loss and latency model, delivery log.
"""

from .model import Network, SimulatedNetwork, validate_network_parameters
from .delivery import (
    DeliveryLog,
    DeliveryOutcome,
    DeliveryRecord,
    PACKET_LOSS,
    INBOX_FULL,
    UNKNOWN_DESTINATION,
    percentile,
)

__all__ = [
    # Model
    "Network",
    "SimulatedNetwork",
    "validate_network_parameters",
    # Delivery
    "DeliveryLog",
    "DeliveryOutcome",
    "DeliveryRecord",
    "PACKET_LOSS",
    "INBOX_FULL",
    "UNKNOWN_DESTINATION",
    "percentile",
]
