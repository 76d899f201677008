"""
Scenario schema definitions.
"""

from dataclasses import dataclass, field
from typing import List, Optional


COORDINATOR_ID = "coordinator"


def participant_id(index: int) -> str:
    return f"p-{index}"


@dataclass
class NetworkSpec:
    """Link characteristics shared by every node."""
    latency_ms: float = 10.0
    drop_rate: float = 0.0
    jitter: float = 0.2


@dataclass
class ParticipantSpec:
    """How many participants, and which of them vote No."""
    count: int = 3
    abort_rate: float = 0.0
    force_vote_no: List[str] = field(default_factory=list)

    @property
    def ids(self) -> List[str]:
        return [participant_id(i) for i in range(self.count)]


@dataclass
class CoordinatorSpec:
    """Coordinator timing."""
    timeout_s: float = 5.0
    retry_interval_ms: float = 500.0

    @property
    def phase_timeout(self) -> float:
        return self.timeout_s

    @property
    def retry_interval(self) -> float:
        return self.retry_interval_ms / 1000


@dataclass
class Scenario:
    """One simulation configuration."""
    name: str
    description: str = ""
    seed: Optional[int] = None
    transactions: int = 1
    network: NetworkSpec = field(default_factory=NetworkSpec)
    participants: ParticipantSpec = field(default_factory=ParticipantSpec)
    coordinator: CoordinatorSpec = field(default_factory=CoordinatorSpec)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "seed": self.seed,
            "transactions": self.transactions,
            "network": {
                "latency_ms": self.network.latency_ms,
                "drop_rate": self.network.drop_rate,
                "jitter": self.network.jitter,
            },
            "participants": {
                "count": self.participants.count,
                "abort_rate": self.participants.abort_rate,
                "force_vote_no": list(self.participants.force_vote_no),
            },
            "coordinator": {
                "timeout_s": self.coordinator.timeout_s,
                "retry_interval_ms": self.coordinator.retry_interval_ms,
            },
        }


class ValidationError(Exception):
    """Error during scenario validation."""
    pass
