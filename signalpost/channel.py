"""
Per-peer signaling session.

Each WebSocket accepted on the signaling path gets one PeerSession. The
session registers the peer in the shared registry, then reads frames in the
flask-sock handler thread until the socket closes.

Message framing (JSON):

  Client -> relay
    Signal   {"type": "signal",  "target": "<peer id>", "payload": <any>}
    Control  {"type": "control", "payload": {"op": "<op>", ...}}

  Relay -> client
    Open     {"type": "open",   "id": "<assigned peer id>"}
    Signal   {"type": "signal", "source": "<peer id>", "payload": <any>}
    Peers    {"type": "peers",  "ids": [...]}
    Error    {"type": "error",  "code": "<code>", "message": "<str>", ...}

Control ops:
  heartbeat    keepalive, no reply
  peers        list the other live peer ids
  leave        unregister and close

The payload of a signal is relayed as-is. Only the envelope (type, target)
is read here.

Lifecycle: CONNECTING -> REGISTERED -> CLOSED. close() is idempotent and may
be called from any thread (recv loop, sweeper, a forwarding peer's thread).
"""
import json
import logging
import re
import threading
import uuid
from typing import Callable

from simple_websocket import ConnectionClosed

from signalpost.errors import (
    BadFrame,
    DuplicatePeerId,
    InvalidPeerId,
    PeerNotFound,
    SignalpostError,
    TransportFailure,
)
from signalpost.models import RelaySettings, SignalingMessage

log = logging.getLogger("signalpost.channel")

CONNECTING = "connecting"
REGISTERED = "registered"
CLOSED     = "closed"

_RECV_POLL = 1.0   # seconds between state checks in the recv loop

_PEER_ID_RE = re.compile(r"[A-Za-z0-9_-][A-Za-z0-9_\- .]{0,63}")


def new_peer_id() -> str:
    return str(uuid.uuid4())


def validate_peer_id(peer_id: str) -> str:
    if not isinstance(peer_id, str) or not _PEER_ID_RE.fullmatch(peer_id):
        raise InvalidPeerId(f"invalid peer id {peer_id!r}")
    return peer_id


class PeerSession:
    """
    One connected peer.

    The registry stores the session itself as the record's connection, so
    other sessions deliver through send_frame() and the sweeper evicts
    through close().

    Thread-safety: state transitions are guarded by _lock; socket writes are
    serialised by _send_lock so frames from concurrent forwarders never
    interleave.
    """

    def __init__(self, sock, peer_id: str, registry, settings: RelaySettings | None = None,
                 remote_addr: str = ""):
        self.sock        = sock
        self.peer_id     = peer_id
        self.remote_addr = remote_addr
        self.settings    = settings or RelaySettings()
        self.state       = CONNECTING
        self._registry   = registry
        self._lock       = threading.Lock()
        self._send_lock  = threading.Lock()
        self._handlers: dict[str, Callable[["PeerSession", dict], dict | None]] = {}

    # ── Public API ────────────────────────────────────────────

    @property
    def registry(self):
        """Registry this session is registered in."""
        return self._registry

    def register(self, op: str, handler):
        """Register a handler for a control op. handler(session, payload) -> dict | None."""
        self._handlers[op] = handler

    def serve(self):
        """Register the peer and run the recv loop. Blocks until the session closes."""
        if self.open():
            self.run()

    def open(self) -> bool:
        """CONNECTING -> REGISTERED. On a duplicate id, report it and close."""
        try:
            self._registry.register(self.peer_id, self)
        except DuplicatePeerId as exc:
            log.info("Rejected session from %s: %s", self.remote_addr or "?", exc)
            self.close(error=exc)
            return False
        with self._lock:
            if self.state is CONNECTING:
                self.state = REGISTERED
            registered = self.state is REGISTERED
        if not registered:
            self._registry.remove(self.peer_id, connection=self)
            return False
        try:
            self.send_frame({"type": "open", "id": self.peer_id})
        except TransportFailure as exc:
            log.info("Peer %s went away during handshake: %s", self.peer_id, exc)
            self.close()
            return False
        log.info("Peer %s registered from %s", self.peer_id, self.remote_addr or "?")
        return True

    def is_open(self) -> bool:
        return self.state is REGISTERED

    def send_frame(self, frame: dict):
        """Write one frame to this peer. Raises TransportFailure on any write error."""
        if self.state is CLOSED:
            raise TransportFailure(f"session {self.peer_id} is closed")
        self._write(frame)

    def notify(self, frame: dict) -> bool:
        """Best-effort send; a failed write closes the session instead of raising."""
        try:
            self.send_frame(frame)
            return True
        except TransportFailure as exc:
            log.info("Could not notify %s: %s", self.peer_id, exc)
            self.close()
            return False

    def close(self, error: SignalpostError | None = None):
        """
        Transition to CLOSED: drop the registry record, optionally tell the
        client why, then close the socket. Safe to call more than once.
        """
        with self._lock:
            if self.state is CLOSED:
                return
            was_registered = self.state is REGISTERED
            self.state = CLOSED

        if was_registered:
            self._registry.remove(self.peer_id, connection=self)
            log.info("Peer %s closed", self.peer_id)

        if error is not None:
            try:
                self._write(error.to_frame())
            except TransportFailure as exc:
                log.debug("Could not send close reason to %s: %s", self.peer_id, exc)
        try:
            self.sock.close()
        except Exception as exc:
            log.debug("Socket close for %s raised: %s", self.peer_id, exc)

    # ── Recv loop ─────────────────────────────────────────────

    def run(self):
        """
        Read frames until the peer disconnects. Runs in the flask-sock
        handler thread; simple_websocket raises ConnectionClosed when the
        socket is closed from either side.
        """
        while self.state is REGISTERED:
            try:
                raw = self.sock.receive(timeout=_RECV_POLL)
            except ConnectionClosed as exc:
                log.debug("Peer %s disconnected: %s", self.peer_id, exc)
                break
            except Exception as exc:
                if self.state is REGISTERED:
                    log.info("Recv error from %s: %s", self.peer_id, exc)
                break
            if raw is None:
                continue
            self.handle_frame(raw)
        self.close()

    def handle_frame(self, raw):
        """Process one inbound frame."""
        try:
            self._registry.touch(self.peer_id, connection=self)
        except PeerNotFound:
            # Evicted between frames; the socket is on its way down.
            log.info("Frame from %s after eviction; closing", self.peer_id)
            self.close()
            return

        try:
            frame = self._parse(raw)
        except BadFrame as exc:
            log.debug("Bad frame from %s: %s", self.peer_id, exc)
            self.notify(exc.to_frame())
            return

        msg_type = frame.get("type")
        if msg_type == "signal":
            try:
                message = SignalingMessage.from_frame(self.peer_id, frame)
            except BadFrame as exc:
                self.notify(exc.to_frame())
                return
            self.forward(message)
            return
        if msg_type == "control":
            self._dispatch_control(frame.get("payload"))
            return
        self.notify(BadFrame(f"unknown frame type: {msg_type!r}").to_frame())

    def forward(self, message: SignalingMessage) -> bool:
        """
        Deliver a signal to its target through the registry. Returns False
        (after telling the sender) when the target is gone or the write fails.
        """
        record = self._registry.lookup(message.target)
        if record is None:
            log.debug("Signal %s -> %s: unknown target", message.source, message.target)
            self.notify(PeerNotFound(f"peer {message.target!r} is not available")
                        .to_frame(target=message.target))
            return False

        target = record.connection
        try:
            target.send_frame(message.to_delivery())
        except TransportFailure as exc:
            log.info("Delivery %s -> %s failed: %s", message.source, message.target, exc)
            target.close()
            self.notify(exc.to_frame(target=message.target))
            return False
        return True

    # ── Internals ─────────────────────────────────────────────

    def _parse(self, raw) -> dict:
        size = len(raw) if isinstance(raw, bytes) else len(raw.encode("utf-8"))
        if size > self.settings.max_frame_bytes:
            raise BadFrame(f"frame exceeds {self.settings.max_frame_bytes} bytes")
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError:
                raise BadFrame("frame is not valid UTF-8") from None
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            raise BadFrame("frame is not valid JSON") from None
        if not isinstance(frame, dict):
            raise BadFrame("frame must be a JSON object")
        return frame

    def _dispatch_control(self, payload):
        if not isinstance(payload, dict):
            payload = {}
        op = payload.get("op", "")
        handler = self._handlers.get(op)
        if handler is None:
            self.notify(BadFrame(f"unknown control op: {op!r}").to_frame())
            return
        try:
            reply = handler(self, payload)
        except SignalpostError as exc:
            self.notify(exc.to_frame(op=op))
            return
        except Exception as exc:
            log.warning("Control handler %s raised: %s", op, exc)
            self.notify({"type": "error", "code": "internal", "op": op, "message": str(exc)})
            return
        if reply and self.state is REGISTERED:
            self.notify(reply)

    def _write(self, frame: dict):
        data = json.dumps(frame)
        with self._send_lock:
            try:
                self.sock.send(data)
            except Exception as exc:
                raise TransportFailure(f"send to {self.peer_id} failed: {exc}") from exc


# ── Convenience helpers used by the WebSocket route ───────────

def accept_session(sock, proposed_id: str = "", remote_addr: str = "") -> PeerSession:
    """
    Called by the WS endpoint once the upgrade is accepted. Uses the
    client-proposed id if there is one, otherwise generates a fresh one.
    Blocks in the handler thread until the session closes.
    """
    from signalpost import state
    peer_id = proposed_id or generate_unused_id(state.registry)
    session = PeerSession(sock, peer_id, state.registry,
                          settings=state.settings, remote_addr=remote_addr)
    _register_handlers(session)
    session.serve()
    return session


def generate_unused_id(registry) -> str:
    while True:
        peer_id = new_peer_id()
        if peer_id not in registry:
            return peer_id


def _register_handlers(session: PeerSession):
    """Wire up the control-op handlers on a session."""
    from signalpost.channel_handlers import (
        handle_heartbeat,
        handle_leave,
        handle_peers,
    )
    session.register("heartbeat", handle_heartbeat)
    session.register("peers",     handle_peers)
    session.register("leave",     handle_leave)
