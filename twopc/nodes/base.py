"""
Base node class shared by the coordinator and participants.
"""

import queue
import uuid

from ..protocol import Message, MessageType
from ..network import Network


INBOX_CAPACITY = 100


class Node:
    """A network endpoint with its own bounded inbox."""

    def __init__(self, node_id: str, network: Network, inbox_capacity: int = INBOX_CAPACITY):
        self.node_id = node_id
        self.network = network
        self.inbox: queue.Queue = queue.Queue(maxsize=inbox_capacity)

    def start(self):
        """Register with the network so messages can reach this node."""
        self.network.register(self.node_id, self.inbox)

    def stop(self):
        """Detach from the network."""
        self.network.unregister(self.node_id)

    def send(self, msg_type: MessageType, transaction_id: uuid.UUID, recipient: str):
        self.network.send(Message(
            msg_type=msg_type,
            transaction_id=transaction_id,
            sender=self.node_id,
            recipient=recipient,
        ))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.node_id!r})"
