"""
Control-op handlers for inbound signaling frames.

Each function is registered on a PeerSession by channel._register_handlers().
A handler receives the session and the control payload; a returned dict is
sent back to that session, None means no reply. Raising a SignalpostError
sends its error frame to the caller and leaves the session open.
"""
import logging

from signalpost.errors import DiscoveryDisabled

log = logging.getLogger("signalpost.channel_handlers")


def handle_heartbeat(session, payload: dict):
    """Keepalive. The registry touch already happened when the frame arrived."""
    return None


def handle_peers(session, payload: dict) -> dict:
    """List the other live peers, when discovery is enabled."""
    if not session.settings.allow_discovery:
        raise DiscoveryDisabled("peer discovery is disabled on this relay")
    ids = [pid for pid in session.registry.list_ids() if pid != session.peer_id]
    return {"type": "peers", "ids": ids}


def handle_leave(session, payload: dict):
    """Explicit unregister: drop the record and close the socket."""
    log.info("Peer %s left", session.peer_id)
    session.close()
    return None
