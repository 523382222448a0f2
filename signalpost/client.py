"""
Minimal signaling client (websocket-client).

Used by scripts and the integration tests to act as a peer:

    c = SignalClient("ws://localhost:3000/peerjs", peer_id="alice")
    c.connect()
    c.signal("bob", {"sdp": "..."})
    frame = c.receive(timeout=5)

Frames from the relay are read by a daemon thread into a queue so receive()
can wait with a timeout.
"""
import json
import logging
import queue
import threading
from urllib.parse import urlencode

import websocket  # websocket-client

from signalpost import errors

log = logging.getLogger("signalpost.client")

_CONNECT_TIMEOUT = 5    # seconds for the WS handshake and the open frame

_ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (errors.DuplicatePeerId, errors.InvalidPeerId, errors.InvalidKey,
                errors.PeerNotFound, errors.PeerExpired, errors.BadFrame,
                errors.TransportFailure, errors.DiscoveryDisabled)
}


def error_from_frame(frame: dict) -> errors.SignalpostError:
    cls = _ERRORS_BY_CODE.get(frame.get("code"), errors.SignalpostError)
    return cls(frame.get("message") or frame.get("code", "relay error"))


class SignalClient:

    def __init__(self, url: str, peer_id: str | None = None, key: str = "peerjs"):
        self.url     = url
        self.peer_id = peer_id
        self.key     = key
        self._ws: websocket.WebSocket | None = None
        self._lock   = threading.Lock()
        self._inbox: "queue.Queue[dict | None]" = queue.Queue()
        self._reader: threading.Thread | None = None

    def connect(self) -> str:
        """Open the socket and wait for the relay's open frame. Returns the peer id."""
        params = {"key": self.key}
        if self.peer_id:
            params["id"] = self.peer_id
        ws = websocket.WebSocket()
        try:
            ws.connect(f"{self.url}?{urlencode(params)}", timeout=_CONNECT_TIMEOUT)
        except websocket.WebSocketBadStatusException as exc:
            if getattr(exc, "status_code", None) == 429:
                raise errors.RateExceeded("relay is throttling this address") from exc
            raise errors.TransportFailure(f"upgrade refused: {exc}") from exc

        raw = ws.recv()
        try:
            first = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            ws.close()
            raise errors.TransportFailure(f"unexpected handshake frame: {raw!r}") from None
        if first.get("type") != "open":
            ws.close()
            raise error_from_frame(first)

        # Clear the handshake timeout so an idle recv() does not drop the socket.
        ws.settimeout(None)
        self.peer_id = first["id"]
        with self._lock:
            self._ws = ws
        self._reader = threading.Thread(target=self._recv_loop, daemon=True,
                                        name=f"signal-client-{self.peer_id}")
        self._reader.start()
        log.debug("Connected to %s as %s", self.url, self.peer_id)
        return self.peer_id

    def signal(self, target: str, payload):
        self._send({"type": "signal", "target": target, "payload": payload})

    def heartbeat(self):
        self._send({"type": "control", "payload": {"op": "heartbeat"}})

    def request_peers(self):
        self._send({"type": "control", "payload": {"op": "peers"}})

    def leave(self):
        self._send({"type": "control", "payload": {"op": "leave"}})

    def send_raw(self, data: str):
        with self._lock:
            ws = self._ws
        if ws is None:
            raise errors.TransportFailure("client is not connected")
        ws.send(data)

    def receive(self, timeout: float = 5.0) -> dict:
        """Next frame from the relay. Raises TimeoutError, or TransportFailure once closed."""
        try:
            frame = self._inbox.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError(f"no frame within {timeout}s") from None
        if frame is None:
            self._inbox.put(None)
            raise errors.TransportFailure("connection closed")
        return frame

    def is_connected(self) -> bool:
        return self._ws is not None

    def close(self):
        with self._lock:
            ws, self._ws = self._ws, None
        if ws is not None:
            try:
                ws.close()
            except Exception as exc:
                log.debug("Close raised: %s", exc)

    def _send(self, frame: dict):
        self.send_raw(json.dumps(frame))

    def _recv_loop(self):
        while True:
            with self._lock:
                ws = self._ws
            if ws is None:
                break
            try:
                raw = ws.recv()
            except Exception as exc:
                log.debug("Client %s recv ended: %s", self.peer_id, exc)
                break
            if raw == "" or raw is None:
                # websocket-client returns "" on a clean close
                break
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                log.warning("Client %s: bad JSON from relay", self.peer_id)
                continue
            self._inbox.put(frame)
        with self._lock:
            self._ws = None
        self._inbox.put(None)
