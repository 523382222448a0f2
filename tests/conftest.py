import json
import queue
import threading

import pytest
from simple_websocket import ConnectionClosed
from werkzeug.serving import make_server

from signalpost import state
from signalpost.channel import PeerSession, _register_handlers
from signalpost.models import RelaySettings
from signalpost.server import create_app

_HANG_UP = object()


class FakeSocket:
    """Stands in for a simple_websocket.Server: frames in via feed(), out via .sent."""

    def __init__(self):
        self.sent: list[dict] = []
        self.closed = False
        self.fail_send = False
        self._inbound: queue.Queue = queue.Queue()

    def feed(self, raw):
        self._inbound.put(raw)

    def hang_up(self):
        self._inbound.put(_HANG_UP)

    def send(self, data):
        if self.closed or self.fail_send:
            raise ConnectionClosed()
        self.sent.append(json.loads(data))

    def receive(self, timeout=None):
        if self.closed:
            raise ConnectionClosed()
        try:
            item = self._inbound.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _HANG_UP:
            self.closed = True
            raise ConnectionClosed()
        return item

    def close(self):
        self.closed = True

    def last(self) -> dict:
        return self.sent[-1]


class ManualClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def relay_state(clock):
    """Fresh shared state driven by a manual clock."""
    state.init(RelaySettings(), clock=clock)
    yield state
    state.init(RelaySettings())


@pytest.fixture
def open_session(relay_state):
    """Factory: register a session on the shared registry and return it."""

    def _open(peer_id: str, settings: RelaySettings | None = None) -> PeerSession:
        session = PeerSession(FakeSocket(), peer_id, relay_state.registry,
                              settings=settings or relay_state.settings)
        _register_handlers(session)
        session.open()
        return session

    return _open


@pytest.fixture
def app():
    application = create_app(RelaySettings(rate_limit_max=100))
    application.config["TESTING"] = True
    yield application
    state.init(RelaySettings())


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def live_relay():
    """Threaded werkzeug server on a free port; yields the signaling ws:// URL."""
    settings = RelaySettings(host="127.0.0.1", port=0, rate_limit_max=1000)
    application = create_app(settings)
    srv = make_server("127.0.0.1", 0, application, threaded=True)
    t = threading.Thread(target=srv.serve_forever, daemon=True)
    t.start()
    yield f"ws://127.0.0.1:{srv.server_port}{settings.peer_path}"
    srv.shutdown()
    srv.server_close()
    state.init(RelaySettings())
