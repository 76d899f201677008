"""
Unit tests for the participant state machine.

Handlers are driven directly through handle_message against a recording
network, so every reply can be inspected synchronously.
"""

import queue

import pytest

from twopc.nodes import Participant
from twopc.protocol import MessageType, State, new_transaction_id

from conftest import COORDINATOR, make_message, receive, wait_until


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def participant(recording_network):
    return Participant("p1", recording_network, COORDINATOR)


@pytest.fixture
def no_voter(recording_network):
    return Participant("p1", recording_network, COORDINATOR, force_vote_no=True)


def deliver(participant, msg_type, tx_id, sender=COORDINATOR):
    participant.handle_message(make_message(msg_type, tx_id, sender=sender, recipient=participant.node_id))


def replies(network):
    return [m.msg_type for m in network.sent]


# =============================================================================
# Transition Tests
# =============================================================================

class TestTransitions:
    def test_starts_in_init(self, participant):
        assert participant.state == State.INIT
        assert participant.transaction_id is None

    def test_prepare_then_commit(self, participant, recording_network, tx_id):
        deliver(participant, MessageType.PREPARE, tx_id)
        assert participant.state == State.READY
        assert participant.transaction_id == tx_id
        assert replies(recording_network) == [MessageType.VOTE_YES]

        recording_network.clear()
        deliver(participant, MessageType.COMMIT, tx_id)
        assert participant.state == State.COMMITTED
        assert replies(recording_network) == [MessageType.ACK]

    def test_prepare_then_abort(self, participant, recording_network, tx_id):
        deliver(participant, MessageType.PREPARE, tx_id)
        deliver(participant, MessageType.ABORT, tx_id)

        assert participant.state == State.ABORTED
        assert replies(recording_network) == [MessageType.VOTE_YES, MessageType.ACK]

    def test_forced_no_goes_straight_to_aborted(self, no_voter, recording_network, tx_id):
        deliver(no_voter, MessageType.PREPARE, tx_id)

        assert no_voter.state == State.ABORTED
        assert replies(recording_network) == [MessageType.VOTE_NO]
        assert no_voter.ready_time is None

    def test_abort_in_init(self, participant, recording_network, tx_id):
        """Abort can overtake Prepare on the network."""
        deliver(participant, MessageType.ABORT, tx_id)

        assert participant.state == State.ABORTED
        assert replies(recording_network) == [MessageType.ACK]

    def test_replies_go_to_sender(self, participant, recording_network, tx_id):
        deliver(participant, MessageType.PREPARE, tx_id)

        reply = recording_network.sent[0]
        assert reply.sender == "p1"
        assert reply.recipient == COORDINATOR
        assert reply.transaction_id == tx_id


# =============================================================================
# Anomaly Tests
# =============================================================================

class TestAnomalies:
    def test_commit_in_init_is_ignored(self, participant, recording_network, tx_id, caplog):
        deliver(participant, MessageType.COMMIT, tx_id)

        assert participant.state == State.INIT
        assert recording_network.sent == []
        assert "Received Commit but state is Init" in caplog.text

    def test_commit_after_no_vote_is_ignored(self, no_voter, recording_network, tx_id, caplog):
        deliver(no_voter, MessageType.PREPARE, tx_id)
        recording_network.clear()

        deliver(no_voter, MessageType.COMMIT, tx_id)

        assert no_voter.state == State.ABORTED
        assert recording_network.sent == []
        assert "Received Commit but state is Aborted" in caplog.text

    def test_abort_after_commit_is_ignored(self, participant, recording_network, tx_id, caplog):
        deliver(participant, MessageType.PREPARE, tx_id)
        deliver(participant, MessageType.COMMIT, tx_id)
        recording_network.clear()

        deliver(participant, MessageType.ABORT, tx_id)

        assert participant.state == State.COMMITTED
        assert recording_network.sent == []
        assert "Received Abort but state is Committed" in caplog.text

    def test_prepare_after_commit_is_ignored(self, participant, recording_network, tx_id):
        deliver(participant, MessageType.PREPARE, tx_id)
        deliver(participant, MessageType.COMMIT, tx_id)
        recording_network.clear()

        deliver(participant, MessageType.PREPARE, tx_id)

        assert participant.state == State.COMMITTED
        assert recording_network.sent == []

    @pytest.mark.parametrize("msg_type", [MessageType.VOTE_YES, MessageType.VOTE_NO, MessageType.ACK])
    def test_unexpected_types_are_ignored(self, participant, recording_network, tx_id, msg_type, caplog):
        deliver(participant, msg_type, tx_id)

        assert participant.state == State.INIT
        assert recording_network.sent == []
        assert "unexpected message type" in caplog.text

    def test_stale_transaction_is_discarded(self, participant, recording_network, tx_id):
        deliver(participant, MessageType.PREPARE, tx_id)
        recording_network.clear()

        deliver(participant, MessageType.ABORT, new_transaction_id())

        assert participant.state == State.READY
        assert recording_network.sent == []

    def test_messages_from_strangers_are_ignored(self, participant, recording_network, tx_id):
        deliver(participant, MessageType.PREPARE, tx_id, sender="impostor")

        assert participant.state == State.INIT
        assert recording_network.sent == []


# =============================================================================
# Idempotence Tests
# =============================================================================

class TestIdempotence:
    @pytest.mark.parametrize("repeats", [1, 2, 5])
    def test_repeated_prepare_repeats_yes(self, participant, recording_network, tx_id, repeats):
        for _ in range(repeats):
            deliver(participant, MessageType.PREPARE, tx_id)

        assert participant.state == State.READY
        assert replies(recording_network) == [MessageType.VOTE_YES] * repeats

    def test_repeated_prepare_keeps_first_ready_time(self, participant, tx_id):
        deliver(participant, MessageType.PREPARE, tx_id)
        first = participant.ready_time
        deliver(participant, MessageType.PREPARE, tx_id)

        assert participant.ready_time == first

    def test_repeated_prepare_repeats_no(self, no_voter, recording_network, tx_id):
        for _ in range(3):
            deliver(no_voter, MessageType.PREPARE, tx_id)

        assert no_voter.state == State.ABORTED
        assert replies(recording_network) == [MessageType.VOTE_NO] * 3

    def test_repeated_commit_repeats_ack(self, participant, recording_network, tx_id):
        deliver(participant, MessageType.PREPARE, tx_id)
        recording_network.clear()

        for _ in range(4):
            deliver(participant, MessageType.COMMIT, tx_id)
        decided = participant.decided_time
        deliver(participant, MessageType.COMMIT, tx_id)

        assert participant.state == State.COMMITTED
        assert replies(recording_network) == [MessageType.ACK] * 5
        assert participant.decided_time == decided

    def test_repeated_abort_repeats_ack(self, participant, recording_network, tx_id):
        deliver(participant, MessageType.PREPARE, tx_id)
        recording_network.clear()

        for _ in range(3):
            deliver(participant, MessageType.ABORT, tx_id)

        assert participant.state == State.ABORTED
        assert replies(recording_network) == [MessageType.ACK] * 3


# =============================================================================
# Metrics Tests
# =============================================================================

class TestMetrics:
    def test_blocking_time_measures_ready_period(self, participant, tx_id):
        assert participant.blocking_time is None

        deliver(participant, MessageType.PREPARE, tx_id)
        assert participant.ready_time is not None
        assert participant.blocking_time is None

        deliver(participant, MessageType.COMMIT, tx_id)
        assert participant.blocking_time >= 0
        assert participant.blocking_time == participant.decided_time - participant.ready_time


# =============================================================================
# Lifecycle Tests
# =============================================================================

class TestLifecycle:
    def test_start_registers_and_consumes_inbox(self, participant, recording_network, tx_id):
        coordinator_inbox = queue.Queue()
        recording_network.register(COORDINATOR, coordinator_inbox)
        participant.start()
        try:
            assert "p1" in recording_network.inboxes
            recording_network.send(make_message(MessageType.PREPARE, tx_id, recipient="p1"))

            vote = receive(coordinator_inbox)
            assert vote.msg_type == MessageType.VOTE_YES
            assert wait_until(lambda: participant.state == State.READY)
        finally:
            participant.stop()

        assert "p1" not in recording_network.inboxes

    def test_stop_without_start(self, participant):
        participant.stop()
