"""
Pytest configuration for simulator tests.

Provides a recording network double that delivers synchronously, plus
helpers for building messages and waiting on inboxes.
"""

import queue
import threading
import time
import uuid
from typing import Dict, List, Optional

import pytest

from twopc.log import log
from twopc.network import Network
from twopc.protocol import Message, MessageType, new_transaction_id


COORDINATOR = "coord"


class RecordingNetwork(Network):
    """Captures every sent message and hands it straight to registered inboxes."""

    def __init__(self):
        self._lock = threading.Lock()
        self.sent: List[Message] = []
        self.inboxes: Dict[str, queue.Queue] = {}

    def send(self, message: Message):
        with self._lock:
            self.sent.append(message)
            inbox = self.inboxes.get(message.recipient)
        if inbox is not None:
            try:
                inbox.put_nowait(message)
            except queue.Full:
                pass

    def register(self, node_id: str, inbox: queue.Queue):
        with self._lock:
            self.inboxes[node_id] = inbox

    def unregister(self, node_id: str):
        with self._lock:
            self.inboxes.pop(node_id, None)

    def sent_of_type(self, msg_type: MessageType) -> List[Message]:
        with self._lock:
            return [m for m in self.sent if m.msg_type == msg_type]

    def clear(self):
        with self._lock:
            self.sent.clear()


def make_message(
    msg_type: MessageType,
    transaction_id: Optional[uuid.UUID] = None,
    sender: str = COORDINATOR,
    recipient: str = "p1",
) -> Message:
    return Message(
        msg_type=msg_type,
        transaction_id=transaction_id or new_transaction_id(),
        sender=sender,
        recipient=recipient,
    )


def receive(inbox: queue.Queue, timeout: float = 1.0) -> Message:
    """Next message from an inbox, failing the test if none arrives in time."""
    try:
        return inbox.get(timeout=timeout)
    except queue.Empty:
        pytest.fail(f"No message arrived within {timeout}s")


def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo any handler or level installed by log.configure()."""
    yield
    log.reset()


@pytest.fixture
def recording_network():
    return RecordingNetwork()


@pytest.fixture
def tx_id():
    return new_transaction_id()
