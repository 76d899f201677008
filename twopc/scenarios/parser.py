"""
YAML scenario parser.
"""

from typing import Any, Dict

import yaml

from ..log import log
from .schema import (
    Scenario, NetworkSpec, ParticipantSpec, CoordinatorSpec,
    ValidationError,
)


def parse_scenario(yaml_content: str) -> Scenario:
    """Parse a scenario from YAML content."""
    try:
        data = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid YAML: {e}") from e
    return scenario_from_dict(data)


def load_scenario(file_path: str) -> Scenario:
    """Load a scenario from a YAML file."""
    with open(file_path, 'r') as f:
        scenario = parse_scenario(f.read())
    log.scenario.info("Loaded scenario '%s' from %s", scenario.name, file_path)
    return scenario


def scenario_from_dict(data: Dict[str, Any]) -> Scenario:
    """Build and validate a scenario from a dictionary."""
    if not isinstance(data, dict):
        raise ValidationError("Scenario must be a mapping")
    if "name" not in data:
        raise ValidationError("Missing required field: name")

    scenario = Scenario(
        name=str(data["name"]),
        description=str(data.get("description", "")),
        seed=_parse_optional_int(data, "seed"),
        transactions=_parse_int(data, "transactions", 1),
        network=_parse_network(_section(data, "network")),
        participants=_parse_participants(_section(data, "participants")),
        coordinator=_parse_coordinator(_section(data, "coordinator")),
    )
    validate_scenario(scenario)
    return scenario


def validate_scenario(scenario: Scenario):
    """Raise ValidationError if the scenario cannot be run."""
    if scenario.transactions < 1:
        raise ValidationError(f"transactions must be >= 1, got {scenario.transactions}")

    net = scenario.network
    if net.latency_ms < 0:
        raise ValidationError(f"network.latency_ms must be >= 0, got {net.latency_ms}")
    _check_fraction("network.drop_rate", net.drop_rate)
    _check_fraction("network.jitter", net.jitter)

    parts = scenario.participants
    if parts.count < 1:
        raise ValidationError(f"participants.count must be >= 1, got {parts.count}")
    _check_fraction("participants.abort_rate", parts.abort_rate)
    unknown = sorted(set(parts.force_vote_no) - set(parts.ids))
    if unknown:
        raise ValidationError(f"participants.force_vote_no names unknown participants: {unknown}")

    coord = scenario.coordinator
    if coord.timeout_s <= 0:
        raise ValidationError(f"coordinator.timeout_s must be > 0, got {coord.timeout_s}")
    if coord.retry_interval_ms <= 0:
        raise ValidationError(f"coordinator.retry_interval_ms must be > 0, got {coord.retry_interval_ms}")


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ValidationError(f"{key} must be a mapping")
    return section


def _parse_network(data: Dict[str, Any]) -> NetworkSpec:
    """Parse network specification."""
    defaults = NetworkSpec()
    return NetworkSpec(
        latency_ms=_parse_float(data, "latency_ms", defaults.latency_ms),
        drop_rate=_parse_float(data, "drop_rate", defaults.drop_rate),
        jitter=_parse_float(data, "jitter", defaults.jitter),
    )


def _parse_participants(data: Dict[str, Any]) -> ParticipantSpec:
    """Parse participant specification."""
    defaults = ParticipantSpec()
    force_vote_no = data.get("force_vote_no") or []
    if not isinstance(force_vote_no, list):
        raise ValidationError("participants.force_vote_no must be a list of participant ids")
    return ParticipantSpec(
        count=_parse_int(data, "count", defaults.count),
        abort_rate=_parse_float(data, "abort_rate", defaults.abort_rate),
        force_vote_no=[str(p) for p in force_vote_no],
    )


def _parse_coordinator(data: Dict[str, Any]) -> CoordinatorSpec:
    """Parse coordinator specification."""
    defaults = CoordinatorSpec()
    return CoordinatorSpec(
        timeout_s=_parse_float(data, "timeout_s", defaults.timeout_s),
        retry_interval_ms=_parse_float(data, "retry_interval_ms", defaults.retry_interval_ms),
    )


def _parse_float(data: Dict[str, Any], key: str, default: float) -> float:
    value = data.get(key, default)
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number, got {value!r}")


def _parse_int(data: Dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer, got {value!r}")
    return value


def _parse_optional_int(data: Dict[str, Any], key: str):
    if data.get(key) is None:
        return None
    return _parse_int(data, key, None)


def _check_fraction(key: str, value: float):
    if not 0.0 <= value <= 1.0:
        raise ValidationError(f"{key} must be within [0, 1], got {value}")
