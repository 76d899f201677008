"""
Coordinator protocol engine.

Drives exactly one transaction per ``run_transaction`` call:

Phase 1 broadcasts Prepare and collects votes. Prepare is re-sent to
silent participants every ``retry_interval``; a single VoteNo or the
phase deadline decides Abort, universal VoteYes decides Commit.

Phase 2 broadcasts the decision and collects Acks, re-sending the
decision to silent participants every ``retry_interval``. The phase
deadline ends the wait but never changes the decision.
"""

import queue
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..log import log
from ..network import Network
from ..protocol import Message, MessageType, new_transaction_id
from .base import Node, INBOX_CAPACITY


# Abort reasons
VOTE_NO = "vote_no"
VOTE_TIMEOUT = "vote_timeout"


class _Signal:
    """Non-message outcome of a wait."""

    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return self.name


_RETRY = _Signal("RETRY")
_DEADLINE = _Signal("DEADLINE")


@dataclass
class TransactionReport:
    """What happened during one run_transaction call."""
    transaction_id: uuid.UUID
    decision: MessageType
    votes: Dict[str, MessageType] = field(default_factory=dict)
    acknowledged: Set[str] = field(default_factory=set)
    unacknowledged: Set[str] = field(default_factory=set)
    abort_reason: Optional[str] = None
    prepare_sends: int = 0
    decision_sends: int = 0
    vote_phase_duration: float = 0.0
    ack_phase_duration: float = 0.0
    elapsed: float = 0.0

    @property
    def committed(self) -> bool:
        return self.decision == MessageType.COMMIT

    @property
    def fully_acknowledged(self) -> bool:
        return not self.unacknowledged

    def to_dict(self) -> dict:
        return {
            "transaction_id": str(self.transaction_id),
            "decision": str(self.decision),
            "votes": {p: str(v) for p, v in sorted(self.votes.items())},
            "acknowledged": sorted(self.acknowledged),
            "unacknowledged": sorted(self.unacknowledged),
            "abort_reason": self.abort_reason,
            "prepare_sends": self.prepare_sends,
            "decision_sends": self.decision_sends,
            "vote_phase_duration": self.vote_phase_duration,
            "ack_phase_duration": self.ack_phase_duration,
            "elapsed": self.elapsed,
        }


class Coordinator(Node):
    """Runs the two-phase commit protocol against a fixed set of participants."""

    def __init__(
        self,
        node_id: str,
        network: Network,
        participant_ids: Iterable[str],
        phase_timeout: float = 5.0,
        retry_interval: float = 0.5,
        inbox_capacity: int = INBOX_CAPACITY,
    ):
        super().__init__(node_id, network, inbox_capacity)
        self.participant_ids: List[str] = list(participant_ids)
        if not self.participant_ids:
            raise ValueError("Coordinator needs at least one participant")
        if phase_timeout <= 0:
            raise ValueError(f"phase_timeout must be > 0, got {phase_timeout}")
        if retry_interval <= 0:
            raise ValueError(f"retry_interval must be > 0, got {retry_interval}")
        self.phase_timeout = phase_timeout
        self.retry_interval = retry_interval
        self.last_report: Optional[TransactionReport] = None

    def run_transaction(self) -> Tuple[bool, float]:
        """
        Execute one transaction to completion.

        Returns:
            (committed, elapsed seconds from start to the end of phase 2)
        """
        tx_id = new_transaction_id()
        start_time = time.monotonic()
        report = TransactionReport(transaction_id=tx_id, decision=MessageType.ABORT)

        log.coordinator.info("[%s] Starting tx %s with %d participants",
                             self.node_id, tx_id, len(self.participant_ids))

        # Phase 1: Prepare
        aborted = self._collect_votes(tx_id, report)
        vote_phase_end = time.monotonic()
        report.vote_phase_duration = vote_phase_end - start_time

        # Phase 2: Decision
        decision = MessageType.ABORT if aborted else MessageType.COMMIT
        report.decision = decision
        log.coordinator.info("[%s] Decision for tx %s: %s", self.node_id, tx_id, decision)

        self._collect_acks(tx_id, decision, report)
        end_time = time.monotonic()
        report.ack_phase_duration = end_time - vote_phase_end
        report.elapsed = end_time - start_time

        self.last_report = report
        return report.committed, report.elapsed

    # ─────────────────────────────────────────────────────────────────────────
    # Phase 1
    # ─────────────────────────────────────────────────────────────────────────

    def _collect_votes(self, tx_id: uuid.UUID, report: TransactionReport) -> bool:
        """Broadcast Prepare and wait for votes. Returns True if aborting."""
        pending = set(self.participant_ids)
        report.prepare_sends += self._broadcast(MessageType.PREPARE, tx_id, self.participant_ids)

        deadline = time.monotonic() + self.phase_timeout
        next_retry = time.monotonic() + self.retry_interval

        while pending:
            msg, next_retry = self._wait(deadline, next_retry)
            if msg is _DEADLINE:
                log.coordinator.warning(
                    "[%s] Timeout waiting for votes in tx %s (pending: %s)",
                    self.node_id, tx_id, sorted(pending),
                )
                report.abort_reason = VOTE_TIMEOUT
                return True
            if msg is _RETRY:
                log.coordinator.debug("[%s] Re-sending Prepare to %s", self.node_id, sorted(pending))
                report.prepare_sends += self._broadcast(MessageType.PREPARE, tx_id, sorted(pending))
                continue
            if not self._accept(msg, tx_id):
                continue

            if msg.msg_type == MessageType.VOTE_NO:
                log.coordinator.info("[%s] Received VoteNo from %s", self.node_id, msg.sender)
                report.votes[msg.sender] = MessageType.VOTE_NO
                report.abort_reason = VOTE_NO
                return True
            if msg.msg_type == MessageType.VOTE_YES:
                if msg.sender in pending:
                    pending.discard(msg.sender)
                    report.votes[msg.sender] = MessageType.VOTE_YES
                    log.coordinator.debug("[%s] VoteYes from %s, %d pending",
                                          self.node_id, msg.sender, len(pending))
                continue
            log.coordinator.debug("[%s] Ignoring %s during vote phase", self.node_id, msg.msg_type)

        return False

    # ─────────────────────────────────────────────────────────────────────────
    # Phase 2
    # ─────────────────────────────────────────────────────────────────────────

    def _collect_acks(self, tx_id: uuid.UUID, decision: MessageType, report: TransactionReport):
        """Broadcast the decision and wait for acknowledgements."""
        pending = set(self.participant_ids)
        report.decision_sends += self._broadcast(decision, tx_id, self.participant_ids)

        deadline = time.monotonic() + self.phase_timeout
        next_retry = time.monotonic() + self.retry_interval

        while pending:
            msg, next_retry = self._wait(deadline, next_retry)
            if msg is _DEADLINE:
                # The decision stands; we only stop waiting for proof of it.
                log.coordinator.warning(
                    "[%s] Timeout waiting for Acks in tx %s (missing: %s)",
                    self.node_id, tx_id, sorted(pending),
                )
                break
            if msg is _RETRY:
                log.coordinator.debug("[%s] Re-sending %s to %s", self.node_id, decision, sorted(pending))
                report.decision_sends += self._broadcast(decision, tx_id, sorted(pending))
                continue
            if not self._accept(msg, tx_id):
                continue

            if msg.msg_type == MessageType.ACK:
                if msg.sender in pending:
                    pending.discard(msg.sender)
                    report.acknowledged.add(msg.sender)
                continue
            log.coordinator.debug("[%s] Ignoring %s during ack phase", self.node_id, msg.msg_type)

        report.unacknowledged = pending

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    def _wait(self, deadline: float, next_retry: float):
        """
        Block until a message arrives, the retry tick fires or the deadline passes.

        Returns (message or _RETRY or _DEADLINE, next retry instant).
        """
        while True:
            now = time.monotonic()
            if now >= deadline:
                return _DEADLINE, next_retry
            if now >= next_retry:
                # Skip ticks missed while we were busy, like a ticker would
                while next_retry <= now:
                    next_retry += self.retry_interval
                return _RETRY, next_retry
            try:
                msg = self.inbox.get(timeout=min(deadline, next_retry) - now)
            except queue.Empty:
                continue
            return msg, next_retry

    def _accept(self, msg: Message, tx_id: uuid.UUID) -> bool:
        """Filter out messages for other transactions or from strangers."""
        if msg.transaction_id != tx_id:
            log.coordinator.debug("[%s] Discarding %s for stale tx %s",
                                  self.node_id, msg.msg_type, msg.transaction_id)
            return False
        if msg.sender not in self.participant_ids:
            log.coordinator.warning("[%s] Ignoring %s from unknown node %s",
                                    self.node_id, msg.msg_type, msg.sender)
            return False
        return True

    def _broadcast(self, msg_type: MessageType, tx_id: uuid.UUID, recipients: Iterable[str]) -> int:
        count = 0
        for participant_id in recipients:
            self.send(msg_type, tx_id, participant_id)
            count += 1
        return count

