"""
Two-Phase Commit Simulator

Coordinator and participants exchanging messages over a simulated
network with configurable latency, jitter and loss.
"""

from .protocol import (
    MessageType,
    State,
    Message,
    describe_message_type,
    describe_state,
    new_transaction_id,
)
from .network import (
    Network,
    SimulatedNetwork,
)
from .nodes import (
    Participant,
    Coordinator,
    TransactionReport,
)
from .scenarios import (
    Scenario,
    NetworkSpec,
    ParticipantSpec,
    CoordinatorSpec,
    ValidationError,
    parse_scenario,
    load_scenario,
)
from .runner import (
    Cluster,
    ScenarioRunner,
    ScenarioResult,
    TransactionResult,
    build_cluster,
    check_safety,
    run_scenario,
)

__all__ = [
    # Protocol
    "MessageType",
    "State",
    "Message",
    "describe_message_type",
    "describe_state",
    "new_transaction_id",
    # Network
    "Network",
    "SimulatedNetwork",
    # Nodes
    "Participant",
    "Coordinator",
    "TransactionReport",
    # Scenarios
    "Scenario",
    "NetworkSpec",
    "ParticipantSpec",
    "CoordinatorSpec",
    "ValidationError",
    "parse_scenario",
    "load_scenario",
    # Runner
    "Cluster",
    "ScenarioRunner",
    "ScenarioResult",
    "TransactionResult",
    "build_cluster",
    "check_safety",
    "run_scenario",
]
