import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from signalpost.errors import BadFrame


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, timezone.utc).isoformat()


@dataclass
class PeerRecord:
    """A live, registered peer."""
    id: str
    connection: Any = None     # PeerSession (or anything with send_frame/close); internal only
    registered_at: float = 0.0
    last_active_at: float = 0.0

    def idle_for(self, now: float) -> float:
        return max(0.0, now - self.last_active_at)

    def to_dict(self):
        return {
            "id": self.id,
            "registered_at": _iso(self.registered_at),
            "last_active_at": _iso(self.last_active_at),
        }


@dataclass
class SignalingMessage:
    """
    One relayed handshake message. Only the envelope is read here; payload
    is carried through untouched and never inspected.
    """
    source: str
    target: str
    payload: Any = None

    @classmethod
    def from_frame(cls, source: str, frame: dict) -> "SignalingMessage":
        target = frame.get("target")
        if not isinstance(target, str) or not target:
            raise BadFrame("signal frame needs a string 'target'")
        return cls(source=source, target=target, payload=frame.get("payload"))

    def to_delivery(self) -> dict:
        return {"type": "signal", "source": self.source, "payload": self.payload}


@dataclass
class RateLimitCounter:
    address: str
    count: int = 0
    window_started_at: float = 0.0

    def to_dict(self):
        return {
            "address": self.address,
            "count": self.count,
            "window_started_at": _iso(self.window_started_at),
        }


# ── Runtime configuration ─────────────────────────────────────

_TRUE = ("1", "true", "yes", "on")


def _env_bool(env, name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in _TRUE


def _env_num(env, name: str, default, cast, positive=False, maximum=None):
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    if positive and value == 0:
        raise ValueError(f"{name} must be greater than zero, got {raw!r}")
    if maximum is not None and value > maximum:
        raise ValueError(f"{name} must be at most {maximum}, got {raw!r}")
    return value


@dataclass
class RelaySettings:
    """
    Relay configuration, normally read from the environment at startup.

    Listener:
      host, port        : bind address for the HTTP/WebSocket server
      peer_path         : mount point of the signaling endpoints (WS upgrade,
                          /peers discovery, /id generation)
      peer_key          : shared key clients must pass as ?key= on upgrade

    Presence:
      allow_discovery     : expose the list of live peer ids
      inactivity_timeout  : seconds without an inbound frame before eviction
      sweep_interval      : seconds between liveness sweeps
      max_frame_bytes     : largest accepted WebSocket frame

    Edge:
      rate_limit_max     : requests per address per window
      rate_limit_window  : seconds between wholesale counter resets
      trust_proxy        : take the client address from X-Forwarded-For
      cors_origins       : comma-separated allowed origins; "*" = any
    """
    # Listener
    host: str = "0.0.0.0"
    port: int = 3000
    peer_path: str = "/peerjs"
    peer_key: str = "peerjs"

    # Presence
    allow_discovery: bool = True
    inactivity_timeout: float = 60.0
    sweep_interval: float = 30.0
    max_frame_bytes: int = 65536

    # Edge
    rate_limit_max: int = 100
    rate_limit_window: float = 3600.0
    trust_proxy: bool = True
    cors_origins: str = "*"

    # Diagnostics
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    started_at: float = field(default=0.0, repr=False)

    @classmethod
    def from_env(cls, env=None) -> "RelaySettings":
        """Build settings from environment variables (or any str->str mapping)."""
        env = os.environ if env is None else env
        d = cls()
        peer_path = env.get("PEER_PATH", d.peer_path).strip() or d.peer_path
        level = env.get("LOG_LEVEL", d.log_level).strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            raise ValueError(f"LOG_LEVEL must be DEBUG, INFO, WARNING, or ERROR, got {level!r}")
        return cls(
            host=env.get("HOST", d.host),
            port=_env_num(env, "PORT", d.port, int, maximum=65535),
            peer_path="/" + peer_path.strip("/"),
            peer_key=env.get("PEER_KEY", d.peer_key),
            allow_discovery=_env_bool(env, "ALLOW_DISCOVERY", d.allow_discovery),
            inactivity_timeout=_env_num(env, "INACTIVITY_TIMEOUT", d.inactivity_timeout, float, positive=True),
            sweep_interval=_env_num(env, "SWEEP_INTERVAL", d.sweep_interval, float, positive=True),
            max_frame_bytes=_env_num(env, "MAX_FRAME_BYTES", d.max_frame_bytes, int, positive=True),
            rate_limit_max=_env_num(env, "RATE_LIMIT_MAX", d.rate_limit_max, int),
            rate_limit_window=_env_num(env, "RATE_LIMIT_WINDOW", d.rate_limit_window, float, positive=True),
            trust_proxy=_env_bool(env, "TRUST_PROXY", d.trust_proxy),
            cors_origins=env.get("CORS_ORIGINS", d.cors_origins).strip(),
            log_level=level,
        )

    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def to_dict(self):
        return {
            "host": self.host,
            "port": self.port,
            "peer_path": self.peer_path,
            "allow_discovery": self.allow_discovery,
            "inactivity_timeout": self.inactivity_timeout,
            "sweep_interval": self.sweep_interval,
            "max_frame_bytes": self.max_frame_bytes,
            "rate_limit_max": self.rate_limit_max,
            "rate_limit_window": self.rate_limit_window,
            "trust_proxy": self.trust_proxy,
            "cors_origins": self.cors_origins,
            "log_level": self.log_level,
        }
