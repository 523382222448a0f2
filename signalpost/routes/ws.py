"""
WebSocket endpoint for signaling sessions.

Clients connect to <PEER_PATH>?key=<PEER_KEY>&id=<optional proposed id>.
The rate limiter has already run in before_request. The key and the
proposed id are checked here; on success the socket is handed to a
PeerSession which blocks this handler thread until the connection closes.
"""
import hmac
import json
import logging

from flask import request
from flask_sock import Sock

from signalpost import state
from signalpost.channel import accept_session, validate_peer_id
from signalpost.edge import client_address
from signalpost.errors import InvalidKey, SignalpostError

log = logging.getLogger("signalpost.routes.ws")


def _reject(ws, error: SignalpostError):
    try:
        ws.send(json.dumps(error.to_frame()))
    except Exception as exc:
        log.debug("Could not send rejection: %s", exc)
    try:
        ws.close()
    except Exception as exc:
        log.debug("Could not close rejected socket: %s", exc)


def peer_ws(ws):
    """Incoming signaling connection."""
    remote = client_address()
    key = request.args.get("key", "")
    if not hmac.compare_digest(key.encode(), state.settings.peer_key.encode()):
        log.warning("WS connect rejected from %s: bad key", remote)
        _reject(ws, InvalidKey("invalid relay key"))
        return

    proposed = request.args.get("id", "").strip()
    if proposed:
        try:
            validate_peer_id(proposed)
        except SignalpostError as exc:
            log.info("WS connect rejected from %s: %s", remote, exc)
            _reject(ws, exc)
            return

    session = accept_session(ws, proposed_id=proposed, remote_addr=remote)
    log.debug("WS session ended for %s", session.peer_id)


def bind(app, path: str) -> Sock:
    """Mount the signaling socket on `app` at `path` (settings.peer_path)."""
    sock = Sock(app)
    sock.route(path, endpoint="peer_ws")(peer_ws)
    return sock
