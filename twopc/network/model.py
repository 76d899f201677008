"""
Simulated unreliable network with per-message latency, jitter and loss.
"""

import queue
import random
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..log import log
from ..protocol import Message
from .delivery import (
    DeliveryLog,
    DeliveryRecord,
    PACKET_LOSS,
    INBOX_FULL,
    UNKNOWN_DESTINATION,
)


class Network(ABC):
    """How nodes exchange messages."""

    @abstractmethod
    def send(self, message: Message):
        """Hand a message to the network. Must never block the caller."""

    @abstractmethod
    def register(self, node_id: str, inbox: queue.Queue):
        """Associate a node id with its inbox."""

    @abstractmethod
    def unregister(self, node_id: str):
        """Forget a node id; later sends to it are undeliverable."""


def validate_network_parameters(average_delay: float, drop_rate: float, jitter: float):
    """Raise ValueError unless the parameters describe a usable network."""
    if average_delay < 0:
        raise ValueError(f"average_delay must be >= 0, got {average_delay}")
    if not 0.0 <= drop_rate <= 1.0:
        raise ValueError(f"drop_rate must be within [0, 1], got {drop_rate}")
    if not 0.0 <= jitter <= 1.0:
        raise ValueError(f"jitter must be within [0, 1], got {jitter}")


class SimulatedNetwork(Network):
    """
    In-process network that drops, delays and reorders messages.

    Every send is independent: it is dropped with probability ``drop_rate``,
    otherwise delivered after ``average_delay +/- average_delay * jitter``
    seconds (uniform, floored at zero) on its own timer thread. Messages
    to a full inbox or to an unregistered node are dropped. None of these
    failures are reported to the sender.
    """

    def __init__(
        self,
        average_delay: float = 0.0,
        drop_rate: float = 0.0,
        jitter: float = 0.0,
        seed: Optional[int] = None,
    ):
        validate_network_parameters(average_delay, drop_rate, jitter)
        self.average_delay = average_delay
        self.drop_rate = drop_rate
        self.jitter = jitter

        self._nodes: Dict[str, queue.Queue] = {}
        self._nodes_lock = threading.Lock()
        self._rng = random.Random(seed)
        self._rng_lock = threading.Lock()
        self.delivery_log = DeliveryLog()

    @classmethod
    def from_config(cls, spec, seed: Optional[int] = None) -> 'SimulatedNetwork':
        """Build a network from a scenario NetworkSpec."""
        return cls(
            average_delay=spec.latency_ms / 1000,
            drop_rate=spec.drop_rate,
            jitter=spec.jitter,
            seed=seed,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Registry
    # ─────────────────────────────────────────────────────────────────────────

    def register(self, node_id: str, inbox: queue.Queue):
        with self._nodes_lock:
            self._nodes[node_id] = inbox

    def unregister(self, node_id: str):
        with self._nodes_lock:
            self._nodes.pop(node_id, None)

    def is_registered(self, node_id: str) -> bool:
        with self._nodes_lock:
            return node_id in self._nodes

    def lookup(self, node_id: str) -> Optional[queue.Queue]:
        with self._nodes_lock:
            return self._nodes.get(node_id)

    # ─────────────────────────────────────────────────────────────────────────
    # Sending
    # ─────────────────────────────────────────────────────────────────────────

    def send(self, message: Message):
        record = self.delivery_log.record_send(message)

        if self.should_drop(message):
            log.network.info("DROPPED message %s", message)
            self.delivery_log.mark_dropped(record, PACKET_LOSS)
            return

        delay = self.compute_delay()
        self.delivery_log.mark_scheduled(record, delay)

        timer = threading.Timer(delay, self._deliver, args=(record,))
        timer.daemon = True
        timer.start()

    def should_drop(self, message: Message) -> bool:
        """Decide whether this send is lost."""
        with self._rng_lock:
            return self._rng.random() < self.drop_rate

    def compute_delay(self) -> float:
        """Uniform delay in [avg - avg*jitter, avg + avg*jitter), floored at zero."""
        jitter_range = self.average_delay * self.jitter
        with self._rng_lock:
            offset = (self._rng.random() * 2 * jitter_range) - jitter_range
        return max(0.0, self.average_delay + offset)

    def _deliver(self, record: DeliveryRecord):
        message = record.message
        inbox = self.lookup(message.recipient)

        if inbox is None:
            log.network.warning(
                "Destination %s not found for message %s",
                message.recipient, message,
            )
            self.delivery_log.mark_dropped(record, UNKNOWN_DESTINATION)
            return

        try:
            inbox.put_nowait(message)
        except queue.Full:
            log.network.warning(
                "Failed to deliver message %s (inbox full)", message,
            )
            self.delivery_log.mark_dropped(record, INBOX_FULL)
            return

        self.delivery_log.mark_delivered(record)
        log.network.debug("Delivered %s after %.1f ms", message, (record.delay or 0) * 1000)

    def get_delivery_stats(self) -> Dict[str, Any]:
        """Return statistics about message delivery."""
        return self.delivery_log.get_delivery_stats()
