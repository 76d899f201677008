"""
Protocol actors: the coordinator and its participants.
"""

from .base import Node, INBOX_CAPACITY
from .participant import Participant
from .coordinator import Coordinator, TransactionReport, VOTE_NO, VOTE_TIMEOUT

__all__ = [
    "Node",
    "INBOX_CAPACITY",
    "Participant",
    "Coordinator",
    "TransactionReport",
    "VOTE_NO",
    "VOTE_TIMEOUT",
]
