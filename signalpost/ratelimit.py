"""
Per-address request limiter with a coarse, fixed window.

Every address gets `limit` requests; a background thread clears all counters
at once every `window` seconds. A client can therefore burst right after a
reset. That keeps memory bounded by the number of addresses seen in one
window and avoids per-key timestamps.
"""
import logging
import threading
import time

from signalpost.models import RateLimitCounter

log = logging.getLogger("signalpost.ratelimit")


class RateLimiter:

    def __init__(self, limit: int = 100, window: float = 3600.0, clock=time.time):
        if window <= 0:
            raise ValueError(f"window must be greater than zero, got {window!r}")
        self.limit   = limit
        self.window  = window
        self._clock  = clock
        self._lock   = threading.Lock()
        self._counters: dict[str, RateLimitCounter] = {}
        self._window_started_at = clock()
        self._stop   = threading.Event()
        self._thread: threading.Thread | None = None

    def allow(self, address: str) -> bool:
        """Count one request from `address`; False once the ceiling is reached."""
        with self._lock:
            counter = self._counters.get(address)
            if counter is None:
                counter = RateLimitCounter(address=address,
                                           window_started_at=self._window_started_at)
                self._counters[address] = counter
            if counter.count >= self.limit:
                return False
            counter.count += 1
            return True

    def reset(self):
        """Clear every counter and start a new window."""
        now = self._clock()
        with self._lock:
            tracked = len(self._counters)
            self._counters.clear()
            self._window_started_at = now
        if tracked:
            log.debug("Rate-limit window reset (%d address(es) cleared)", tracked)

    def counter(self, address: str) -> RateLimitCounter | None:
        with self._lock:
            c = self._counters.get(address)
            return RateLimitCounter(c.address, c.count, c.window_started_at) if c else None

    def tracked(self) -> int:
        with self._lock:
            return len(self._counters)

    # ── Background reset ──────────────────────────────────────

    def start(self):
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._reset_loop, daemon=True,
                                        name="ratelimit-reset")
        self._thread.start()

    def stop(self):
        self._stop.set()
        t, self._thread = self._thread, None
        if t is not None:
            t.join(timeout=2)

    def _reset_loop(self):
        while not self._stop.wait(self.window):
            self.reset()
