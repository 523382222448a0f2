"""End-to-end: threaded werkzeug server + flask-sock + websocket-client peers."""
import time

import pytest

from signalpost import state
from signalpost.client import SignalClient
from signalpost.errors import DuplicatePeerId, InvalidKey, InvalidPeerId, PeerExpired


def _wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


@pytest.fixture
def peers(live_relay):
    made = []

    def _peer(peer_id=None, key="peerjs"):
        c = SignalClient(live_relay, peer_id=peer_id, key=key)
        made.append(c)
        return c

    yield _peer
    for c in made:
        c.close()


def test_signal_between_two_peers(peers):
    alice, bob = peers("alice"), peers("bob")
    assert alice.connect() == "alice"
    assert bob.connect() == "bob"

    offer = {"type": "offer", "sdp": "v=0\r\ns=-\r\n", "ice": [{"candidate": "udp 1"}]}
    alice.signal("bob", offer)

    frame = bob.receive(timeout=5)
    assert frame == {"type": "signal", "source": "alice", "payload": offer}


def test_generated_id_when_none_proposed(peers):
    anon = peers()
    peer_id = anon.connect()
    assert peer_id
    assert state.registry.lookup(peer_id) is not None


def test_unknown_target_notice(peers):
    alice = peers("alice")
    alice.connect()
    alice.signal("carol", {"sdp": "x"})
    notice = alice.receive(timeout=5)
    assert notice["code"] == "unknown-target"
    # session still usable
    alice.request_peers()
    assert alice.receive(timeout=5) == {"type": "peers", "ids": []}


def test_disconnect_then_unknown_target(peers):
    alice, bob = peers("alice"), peers("bob")
    alice.connect()
    bob.connect()

    alice.close()
    assert _wait_until(lambda: state.registry.lookup("alice") is None)

    bob.signal("alice", {"sdp": "late"})
    assert bob.receive(timeout=5)["code"] == "unknown-target"


def test_duplicate_id_rejected(peers):
    peers("alice").connect()
    with pytest.raises(DuplicatePeerId):
        peers("alice").connect()


def test_bad_key_rejected(peers):
    with pytest.raises(InvalidKey):
        peers("alice", key="wrong").connect()
    assert state.registry.count() == 0


def test_invalid_proposed_id_rejected(peers):
    with pytest.raises(InvalidPeerId):
        peers("not;valid").connect()


def test_leave_unregisters(peers):
    alice = peers("alice")
    alice.connect()
    alice.leave()
    assert _wait_until(lambda: state.registry.lookup("alice") is None)


def test_sweeper_evicts_silent_peer(peers):
    from signalpost.sweeper import LivenessSweeper

    alice = peers("alice")
    alice.connect()
    sweeper = LivenessSweeper(state.registry, threshold=60)

    evicted = sweeper.sweep(now=time.time() + 120)

    assert evicted == ["alice"]
    notice = alice.receive(timeout=5)
    assert notice["code"] == PeerExpired.code
    assert state.registry.lookup("alice") is None
