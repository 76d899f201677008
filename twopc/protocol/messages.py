"""
Two-phase commit message and state vocabulary.
"""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any


UNKNOWN = "Unknown"


def _is_enum_value(value: Any, enum_type) -> bool:
    """Members and plain ints only; bools and floats equal to a value do not count."""
    if isinstance(value, enum_type):
        return True
    return isinstance(value, int) and not isinstance(value, bool)


# =============================================================================
# Message Types
# =============================================================================

class MessageType(Enum):
    """Types of messages exchanged during a transaction."""
    # Coordinator -> Participant
    PREPARE = 0

    # Participant -> Coordinator
    VOTE_YES = 1
    VOTE_NO = 2

    # Coordinator -> Participant (decision)
    COMMIT = 3
    ABORT = 4

    # Participant -> Coordinator
    ACK = 5

    def __str__(self) -> str:
        return describe_message_type(self)


_MESSAGE_TYPE_NAMES = {
    MessageType.PREPARE: "Prepare",
    MessageType.VOTE_YES: "VoteYes",
    MessageType.VOTE_NO: "VoteNo",
    MessageType.COMMIT: "Commit",
    MessageType.ABORT: "Abort",
    MessageType.ACK: "Ack",
}


def describe_message_type(value: Any) -> str:
    """Readable name of a message type; "Unknown" for anything else."""
    if not _is_enum_value(value, MessageType):
        return UNKNOWN
    try:
        return _MESSAGE_TYPE_NAMES[MessageType(value)]
    except (ValueError, TypeError, KeyError):
        return UNKNOWN


# =============================================================================
# Participant States
# =============================================================================

class State(Enum):
    """Participant state within one transaction."""
    INIT = 0
    READY = 1
    COMMITTED = 2
    ABORTED = 3

    def __str__(self) -> str:
        return describe_state(self)

    @property
    def is_terminal(self) -> bool:
        return self in (State.COMMITTED, State.ABORTED)


_STATE_NAMES = {
    State.INIT: "Init",
    State.READY: "Ready",
    State.COMMITTED: "Committed",
    State.ABORTED: "Aborted",
}


def describe_state(value: Any) -> str:
    """Readable name of a state; "Unknown" for anything else."""
    if not _is_enum_value(value, State):
        return UNKNOWN
    try:
        return _STATE_NAMES[State(value)]
    except (ValueError, TypeError, KeyError):
        return UNKNOWN


# =============================================================================
# Messages
# =============================================================================

def new_transaction_id() -> uuid.UUID:
    """Generate a fresh, globally unique transaction identifier."""
    return uuid.uuid4()


@dataclass(frozen=True)
class Message:
    """A protocol message between two nodes."""
    msg_type: MessageType
    transaction_id: uuid.UUID
    sender: str
    recipient: str

    def __str__(self) -> str:
        return (
            f"{describe_message_type(self.msg_type)} "
            f"[tx {self.transaction_id}] {self.sender} -> {self.recipient}"
        )
