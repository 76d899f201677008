"""
Scenario definitions and YAML loading.
"""

from .schema import (
    COORDINATOR_ID,
    Scenario,
    NetworkSpec,
    ParticipantSpec,
    CoordinatorSpec,
    ValidationError,
    participant_id,
)
from .parser import parse_scenario, load_scenario, scenario_from_dict, validate_scenario

__all__ = [
    # Schema
    "COORDINATOR_ID",
    "Scenario",
    "NetworkSpec",
    "ParticipantSpec",
    "CoordinatorSpec",
    "ValidationError",
    "participant_id",
    # Parser
    "parse_scenario",
    "load_scenario",
    "scenario_from_dict",
    "validate_scenario",
]
