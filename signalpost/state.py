"""
Shared in-memory state for the relay.

Route modules and sessions import from here so they all see the same
registry, limiter, and settings. init() is called once by
signalpost.server.create_app() (and again by tests for a clean slate);
everything else reads these names at call time.
"""
import time
from typing import TYPE_CHECKING

from signalpost.models import RelaySettings
from signalpost.ratelimit import RateLimiter
from signalpost.registry import PeerRegistry

if TYPE_CHECKING:
    from signalpost.sweeper import LivenessSweeper

# ── Runtime config ───────────────────────────────────────────
settings: RelaySettings = RelaySettings()
STARTED_AT: float = time.time()
_clock = time.time

# ── Shared mutable state ─────────────────────────────────────
registry:     PeerRegistry = PeerRegistry()
rate_limiter: RateLimiter  = RateLimiter()
sweeper: "LivenessSweeper | None" = None


def init(new_settings: RelaySettings | None = None, clock=time.time):
    """(Re)create the registry and limiter from settings."""
    global settings, registry, rate_limiter, sweeper, STARTED_AT, _clock
    if sweeper is not None:
        sweeper.stop()
    rate_limiter.stop()

    settings     = new_settings or RelaySettings()
    _clock       = clock
    STARTED_AT   = clock()
    settings.started_at = STARTED_AT
    registry     = PeerRegistry(clock=clock)
    rate_limiter = RateLimiter(limit=settings.rate_limit_max,
                               window=settings.rate_limit_window, clock=clock)
    sweeper      = None


def uptime() -> float:
    return max(0.0, _clock() - STARTED_AT)
