"""
Liveness sweeper: evicts peers that have been silent for too long.

Runs in its own daemon thread, independent of the signaling traffic. Each
sweep takes a snapshot of the live ids and then evicts one id at a time
through PeerRegistry.remove_if_idle(), so the registry lock is never held for
longer than a single read or a single eviction. Ids that disappear mid-sweep
(normal disconnects) are skipped.
"""
import logging
import threading
import time

from signalpost.errors import PeerExpired

log = logging.getLogger("signalpost.sweeper")


class LivenessSweeper:

    def __init__(self, registry, threshold: float = 60.0, interval: float = 30.0,
                 clock=time.time):
        if interval <= 0:
            raise ValueError(f"interval must be greater than zero, got {interval!r}")
        self.registry  = registry
        self.threshold = threshold
        self.interval  = interval
        self._clock    = clock
        self._stop     = threading.Event()
        self._thread: threading.Thread | None = None
        self.last_sweep_at: float | None = None
        self.total_evicted = 0

    def sweep(self, now: float | None = None) -> list[str]:
        """Run one pass. Returns the ids that were evicted."""
        now = self._clock() if now is None else now
        evicted = []
        for peer_id in self.registry.list_ids():
            record = self.registry.remove_if_idle(peer_id, self.threshold, now=now)
            if record is None:
                continue
            evicted.append(peer_id)
            log.info("Evicting %s (idle %.1fs)", peer_id, record.idle_for(now))
            conn = record.connection
            if conn is not None:
                conn.close(error=PeerExpired(
                    f"no activity for more than {self.threshold:g}s"))
        self.last_sweep_at = now
        self.total_evicted += len(evicted)
        return evicted

    def start(self):
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="liveness-sweeper")
        self._thread.start()
        log.info("Liveness sweeper started (threshold=%gs, interval=%gs)",
                 self.threshold, self.interval)

    def stop(self):
        self._stop.set()
        t, self._thread = self._thread, None
        if t is not None:
            t.join(timeout=2)

    def _loop(self):
        while not self._stop.wait(self.interval):
            try:
                evicted = self.sweep()
            except Exception as exc:
                log.warning("Liveness sweep failed: %s", exc)
                continue
            if evicted:
                log.info("Sweep evicted %d peer(s), %d live", len(evicted), self.registry.count())
