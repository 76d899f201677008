"""
Scenario Runner

Orchestrates running a scenario through the simulator.
This is the integration point that ties together:
- Network setup
- Participant and coordinator creation
- Transaction execution
- Safety verification
- Metrics collection
"""

import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from .log import log
from .network import SimulatedNetwork, percentile
from .nodes import Coordinator, Participant, TransactionReport
from .protocol import MessageType, State
from .scenarios import COORDINATOR_ID, Scenario


@dataclass
class Cluster:
    """One coordinator and its participants on a shared network."""
    network: SimulatedNetwork
    coordinator: Coordinator
    participants: Dict[str, Participant]

    def start(self):
        for participant in self.participants.values():
            participant.start()
        self.coordinator.start()

    def stop(self):
        self.coordinator.stop()
        for participant in self.participants.values():
            participant.stop()

    def participant_states(self) -> Dict[str, State]:
        return {pid: p.state for pid, p in self.participants.items()}

    def blocking_times(self) -> Dict[str, float]:
        """Time each participant spent in Ready, for those that left it."""
        times = {}
        for pid, p in self.participants.items():
            blocked = p.blocking_time
            if blocked is not None:
                times[pid] = blocked
        return times


def build_cluster(
    scenario: Scenario,
    force_vote_no: Set[str] = frozenset(),
    network_seed: Optional[int] = None,
) -> Cluster:
    """Create (but do not start) the network and nodes for one transaction."""
    network = SimulatedNetwork.from_config(scenario.network, seed=network_seed)
    participant_ids = scenario.participants.ids

    participants = {
        pid: Participant(
            pid,
            network,
            COORDINATOR_ID,
            force_vote_no=pid in force_vote_no,
        )
        for pid in participant_ids
    }
    coordinator = Coordinator(
        COORDINATOR_ID,
        network,
        participant_ids,
        phase_timeout=scenario.coordinator.phase_timeout,
        retry_interval=scenario.coordinator.retry_interval,
    )
    return Cluster(network=network, coordinator=coordinator, participants=participants)


def check_safety(decision: MessageType, states: Dict[str, State]) -> List[str]:
    """
    Return the participants whose terminal state contradicts the decision.

    Participants still in Init or Ready have not learnt the decision yet,
    which is not a violation.
    """
    contradicting = State.ABORTED if decision == MessageType.COMMIT else State.COMMITTED
    return sorted(pid for pid, state in states.items() if state == contradicting)


@dataclass
class TransactionResult:
    """Result of running one transaction."""
    index: int
    committed: bool
    elapsed: float
    report: TransactionReport
    participant_states: Dict[str, State]
    forced_vote_no: List[str]
    blocking_times: Dict[str, float] = field(default_factory=dict)
    delivery_stats: Dict[str, Any] = field(default_factory=dict)
    safety_violations: List[str] = field(default_factory=list)

    @property
    def safety_ok(self) -> bool:
        return not self.safety_violations

    @property
    def status(self) -> str:
        return "COMMITTED" if self.committed else "ABORTED"

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "status": self.status,
            "elapsed": self.elapsed,
            "report": self.report.to_dict(),
            "participant_states": {p: str(s) for p, s in sorted(self.participant_states.items())},
            "forced_vote_no": list(self.forced_vote_no),
            "blocking_times": dict(sorted(self.blocking_times.items())),
            "delivery_stats": self.delivery_stats,
            "safety_violations": list(self.safety_violations),
        }


@dataclass
class ScenarioResult:
    """Result of running every transaction of a scenario."""
    scenario: Scenario
    results: List[TransactionResult] = field(default_factory=list)

    @property
    def commit_count(self) -> int:
        return sum(1 for r in self.results if r.committed)

    @property
    def abort_count(self) -> int:
        return len(self.results) - self.commit_count

    @property
    def commit_rate(self) -> float:
        return self.commit_count / max(1, len(self.results))

    @property
    def incomplete_count(self) -> int:
        """Transactions that returned without every Ack."""
        return sum(1 for r in self.results if not r.report.fully_acknowledged)

    @property
    def safety_violations(self) -> List[TransactionResult]:
        return [r for r in self.results if not r.safety_ok]

    def mean_prepare_sends(self) -> float:
        return sum(r.report.prepare_sends for r in self.results) / max(1, len(self.results))

    def latency_summary(self) -> Dict[str, float]:
        """Transaction durations in seconds."""
        durations = [r.elapsed for r in self.results]
        return {
            "avg": sum(durations) / max(1, len(durations)),
            "max": max(durations) if durations else 0,
            "min": min(durations) if durations else 0,
            "p50": percentile(durations, 0.50),
            "p95": percentile(durations, 0.95),
        }

    def to_dict(self) -> dict:
        return {
            "scenario": self.scenario.to_dict(),
            "transactions": len(self.results),
            "committed": self.commit_count,
            "aborted": self.abort_count,
            "commit_rate": self.commit_rate,
            "incomplete": self.incomplete_count,
            "safety_violations": len(self.safety_violations),
            "mean_prepare_sends": self.mean_prepare_sends(),
            "latency": self.latency_summary(),
            "results": [r.to_dict() for r in self.results],
        }

    def __str__(self) -> str:
        latency = self.latency_summary()
        return (
            f"Scenario '{self.scenario.name}': {self.commit_count}/{len(self.results)} committed\n"
            f"  Commit rate: {self.commit_rate:.0%}, incomplete: {self.incomplete_count}, "
            f"safety violations: {len(self.safety_violations)}\n"
            f"  Duration avg {latency['avg'] * 1000:.1f} ms, "
            f"p50 {latency['p50'] * 1000:.1f} ms, p95 {latency['p95'] * 1000:.1f} ms"
        )


class ScenarioRunner:
    """
    Runs a scenario's transactions one after another.

    Each transaction gets a fresh network and fresh nodes, so a late
    message from one run can never reach the next.
    """

    def __init__(self, scenario: Scenario):
        self.scenario = scenario
        self.rng = random.Random(scenario.seed)

    def run(self) -> ScenarioResult:
        result = ScenarioResult(scenario=self.scenario)
        for index in range(self.scenario.transactions):
            result.results.append(self.run_once(index))
        log.runner.info("%s", result)
        return result

    def run_once(self, index: int = 0) -> TransactionResult:
        """Build a cluster, run one transaction on it and tear it down."""
        forced = self._draw_forced_vote_no()
        network_seed = self.rng.randrange(2 ** 32) if self.scenario.seed is not None else None

        cluster = build_cluster(self.scenario, forced, network_seed)
        cluster.start()
        try:
            committed, elapsed = cluster.coordinator.run_transaction()
            report = cluster.coordinator.last_report
            states = cluster.participant_states()
            tx_result = TransactionResult(
                index=index,
                committed=committed,
                elapsed=elapsed,
                report=report,
                participant_states=states,
                forced_vote_no=sorted(forced),
                blocking_times=cluster.blocking_times(),
                delivery_stats=cluster.network.get_delivery_stats(),
                safety_violations=check_safety(report.decision, states),
            )
        finally:
            cluster.stop()

        if not tx_result.safety_ok:
            log.runner.error(
                "Safety violation in tx %s: decision %s but %s disagree",
                report.transaction_id, report.decision, tx_result.safety_violations,
            )
        log.runner.info("Transaction %d: %s in %.1f ms",
                        index, tx_result.status, elapsed * 1000)
        return tx_result

    def _draw_forced_vote_no(self) -> Set[str]:
        spec = self.scenario.participants
        forced = set(spec.force_vote_no)
        for pid in spec.ids:
            if self.rng.random() < spec.abort_rate:
                forced.add(pid)
        return forced


def run_scenario(scenario: Scenario) -> ScenarioResult:
    """
    Convenience function to run a scenario.

    Args:
        scenario: The scenario to run

    Returns:
        ScenarioResult
    """
    return ScenarioRunner(scenario).run()
