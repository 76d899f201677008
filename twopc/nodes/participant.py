"""
Participant state machine.

A participant votes on the coordinator's Prepare and then applies the
coordinator's decision. Every handler is idempotent: the coordinator
retries Prepare, Commit and Abort until it hears back, so the same
message may arrive many times and must always produce the same reply.

    State      Prepare               Commit              Abort
    Init       vote -> Ready/Aborted anomaly             -> Aborted, Ack
    Ready      re-send VoteYes       -> Committed, Ack   -> Aborted, Ack
    Aborted    re-send VoteNo        anomaly             re-send Ack
    Committed  ignore                re-send Ack         anomaly
"""

import queue
import threading
import time
import uuid
from typing import Optional

from ..log import log
from ..network import Network
from ..protocol import Message, MessageType, State
from .base import Node, INBOX_CAPACITY


class Participant(Node):
    """One member of a transaction, driven entirely by inbound messages."""

    POLL_INTERVAL = 0.05

    def __init__(
        self,
        node_id: str,
        network: Network,
        coordinator_id: str,
        force_vote_no: bool = False,
        inbox_capacity: int = INBOX_CAPACITY,
    ):
        super().__init__(node_id, network, inbox_capacity)
        self.coordinator_id = coordinator_id
        self.force_vote_no = force_vote_no

        self._state = State.INIT
        self._lock = threading.Lock()
        self.transaction_id: Optional[uuid.UUID] = None

        # Metrics (time.monotonic() instants)
        self.ready_time: Optional[float] = None
        self.decided_time: Optional[float] = None

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> State:
        with self._lock:
            return self._state

    @property
    def blocking_time(self) -> Optional[float]:
        """Seconds spent in Ready before the decision arrived."""
        with self._lock:
            if self.ready_time is None or self.decided_time is None:
                return None
            return self.decided_time - self.ready_time

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def start(self):
        super().start()
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop,
            name=f"participant-{self.node_id}",
            daemon=True,
        )
        self._thread.start()

    def stop(self):
        super().stop()
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)

    def _loop(self):
        while not self._stop_event.is_set():
            try:
                msg = self.inbox.get(timeout=self.POLL_INTERVAL)
            except queue.Empty:
                continue
            self.handle_message(msg)

    # ─────────────────────────────────────────────────────────────────────────
    # Message handling
    # ─────────────────────────────────────────────────────────────────────────

    def handle_message(self, msg: Message):
        """Process one inbound message under the participant's lock."""
        with self._lock:
            log.participant.debug("[%s] Rx %s", self.node_id, msg)

            if msg.sender != self.coordinator_id:
                log.participant.warning(
                    "[%s] Ignoring %s from %s: not the coordinator (%s)",
                    self.node_id, msg.msg_type, msg.sender, self.coordinator_id,
                )
                return

            if self.transaction_id is not None and msg.transaction_id != self.transaction_id:
                log.participant.debug(
                    "[%s] Discarding %s for stale transaction %s",
                    self.node_id, msg.msg_type, msg.transaction_id,
                )
                return

            if msg.msg_type == MessageType.PREPARE:
                self._handle_prepare(msg)
            elif msg.msg_type == MessageType.COMMIT:
                self._handle_commit(msg)
            elif msg.msg_type == MessageType.ABORT:
                self._handle_abort(msg)
            else:
                log.participant.warning(
                    "[%s] Ignoring unexpected message type %s", self.node_id, msg.msg_type,
                )

    def _handle_prepare(self, msg: Message):
        # Already voted: repeat the same vote
        if self._state == State.READY:
            self._reply(msg, MessageType.VOTE_YES)
            return
        if self._state == State.ABORTED:
            self._reply(msg, MessageType.VOTE_NO)
            return
        # Committed implies we voted Yes long ago
        if self._state != State.INIT:
            log.participant.debug("[%s] Ignoring Prepare in state %s", self.node_id, self._state)
            return

        self.transaction_id = msg.transaction_id
        if self.force_vote_no:
            self._transition(State.ABORTED)
            log.participant.info("[%s] Voting No on tx %s", self.node_id, msg.transaction_id)
            self._reply(msg, MessageType.VOTE_NO)
        else:
            self._transition(State.READY)
            self._reply(msg, MessageType.VOTE_YES)

    def _handle_commit(self, msg: Message):
        if self._state == State.COMMITTED:
            self._reply(msg, MessageType.ACK)
            return

        if self._state == State.READY:
            self._transition(State.COMMITTED)
            log.participant.info("[%s] COMMITTED tx %s", self.node_id, msg.transaction_id)
            self._reply(msg, MessageType.ACK)
        else:
            log.participant.warning(
                "[%s] Received Commit but state is %s", self.node_id, self._state,
            )

    def _handle_abort(self, msg: Message):
        if self._state == State.ABORTED:
            self._reply(msg, MessageType.ACK)
            return

        if self._state in (State.INIT, State.READY):
            self.transaction_id = msg.transaction_id
            self._transition(State.ABORTED)
            log.participant.info("[%s] ABORTED tx %s", self.node_id, msg.transaction_id)
            self._reply(msg, MessageType.ACK)
        else:
            log.participant.warning(
                "[%s] Received Abort but state is %s", self.node_id, self._state,
            )

    def _transition(self, new_state: State):
        now = time.monotonic()
        if new_state == State.READY:
            self.ready_time = now
        elif new_state.is_terminal:
            self.decided_time = now
        log.participant.debug("[%s] %s -> %s", self.node_id, self._state, new_state)
        self._state = new_state

    def _reply(self, msg: Message, msg_type: MessageType):
        self.send(msg_type, msg.transaction_id, msg.sender)
