"""
Protocol vocabulary shared by the network and the nodes.
"""

from .messages import (
    UNKNOWN,
    MessageType,
    State,
    Message,
    describe_message_type,
    describe_state,
    new_transaction_id,
)

__all__ = [
    "UNKNOWN",
    "MessageType",
    "State",
    "Message",
    "describe_message_type",
    "describe_state",
    "new_transaction_id",
]
