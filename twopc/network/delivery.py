"""
Delivery bookkeeping for the simulated network.
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from ..protocol import Message, describe_message_type


class DeliveryOutcome(Enum):
    """What happened to a message handed to the network."""
    IN_FLIGHT = "in_flight"
    DELIVERED = "delivered"
    DROPPED = "dropped"


# Drop reasons
PACKET_LOSS = "packet_loss"
INBOX_FULL = "inbox_full"
UNKNOWN_DESTINATION = "unknown_destination"


@dataclass
class DeliveryRecord:
    """A message in transit through the network."""
    message_id: int
    message: Message
    send_time: float
    delay: Optional[float] = None
    outcome: DeliveryOutcome = DeliveryOutcome.IN_FLIGHT
    drop_reason: Optional[str] = None
    delivery_time: Optional[float] = None


class DeliveryLog:
    """Thread-safe record of every message sent through a network."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[int, DeliveryRecord] = {}
        self._message_counter = 0

    def record_send(self, message: Message) -> DeliveryRecord:
        """Register a new send and return its record."""
        with self._lock:
            record = DeliveryRecord(
                message_id=self._message_counter,
                message=message,
                send_time=time.monotonic(),
            )
            self._records[record.message_id] = record
            self._message_counter += 1
            return record

    def mark_scheduled(self, record: DeliveryRecord, delay: float):
        with self._lock:
            record.delay = delay

    def mark_delivered(self, record: DeliveryRecord):
        with self._lock:
            record.outcome = DeliveryOutcome.DELIVERED
            record.delivery_time = time.monotonic()

    def mark_dropped(self, record: DeliveryRecord, reason: str):
        with self._lock:
            record.outcome = DeliveryOutcome.DROPPED
            record.drop_reason = reason

    def records(self) -> List[DeliveryRecord]:
        """Snapshot of all records in send order."""
        with self._lock:
            return [self._records[k] for k in sorted(self._records)]

    def count_sent(self, msg_type=None) -> int:
        """Number of sends, optionally of one message type."""
        with self._lock:
            if msg_type is None:
                return len(self._records)
            return sum(1 for r in self._records.values() if r.message.msg_type == msg_type)

    def get_delivery_stats(self) -> Dict[str, Any]:
        """Return statistics about message delivery."""
        records = self.records()

        delivered = [r for r in records if r.outcome == DeliveryOutcome.DELIVERED]
        dropped = [r for r in records if r.outcome == DeliveryOutcome.DROPPED]
        in_flight = [r for r in records if r.outcome == DeliveryOutcome.IN_FLIGHT]
        delivered_latencies = [r.delay for r in delivered if r.delay is not None]

        # Group by drop reason
        drop_reasons: Dict[str, int] = {}
        for r in dropped:
            reason = r.drop_reason or "unknown"
            drop_reasons[reason] = drop_reasons.get(reason, 0) + 1

        sent_by_type: Dict[str, int] = {}
        for r in records:
            name = describe_message_type(r.message.msg_type)
            sent_by_type[name] = sent_by_type.get(name, 0) + 1

        total = len(records)

        return {
            "total_sent": total,
            "total_delivered": len(delivered),
            "total_dropped": len(dropped),
            "in_flight": len(in_flight),
            "drop_rate": len(dropped) / max(1, total),
            "drop_reasons": drop_reasons,
            "sent_by_type": sent_by_type,
            "latency": {
                "avg": sum(delivered_latencies) / max(1, len(delivered_latencies)),
                "max": max(delivered_latencies) if delivered_latencies else 0,
                "min": min(delivered_latencies) if delivered_latencies else 0,
                "p50": percentile(delivered_latencies, 0.50),
                "p95": percentile(delivered_latencies, 0.95),
            },
        }


def percentile(data: List[float], p: float) -> float:
    """Compute percentile of data."""
    if not data:
        return 0
    sorted_data = sorted(data)
    idx = int(len(sorted_data) * p)
    idx = min(idx, len(sorted_data) - 1)
    return sorted_data[idx]
