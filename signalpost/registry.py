"""
Presence registry: peer id -> PeerRecord.

The registry is the only owner of peer records. Sessions hold an id and go
through lookup() to reach another peer's connection, so an evicted peer is
simply absent instead of leaving a dangling socket behind.

Thread-safety: a single lock guards _records. The lock never covers I/O;
callers send on the returned connection after the lock is released.
"""
import logging
import threading
import time

from signalpost.errors import DuplicatePeerId, PeerNotFound
from signalpost.models import PeerRecord

log = logging.getLogger("signalpost.registry")


class PeerRegistry:

    def __init__(self, clock=time.time):
        self._clock   = clock
        self._lock    = threading.Lock()
        self._records: dict[str, PeerRecord] = {}

    def register(self, peer_id: str, connection) -> PeerRecord:
        """Insert a new record. Raises DuplicatePeerId if the id is live."""
        now = self._clock()
        with self._lock:
            if peer_id in self._records:
                raise DuplicatePeerId(f"peer id {peer_id!r} is already registered")
            record = PeerRecord(id=peer_id, connection=connection,
                                registered_at=now, last_active_at=now)
            self._records[peer_id] = record
            total = len(self._records)
        log.debug("Registered peer %s (%d live)", peer_id, total)
        return record

    def touch(self, peer_id: str, connection=None) -> PeerRecord:
        """Mark activity. last_active_at only ever moves forward."""
        now = self._clock()
        with self._lock:
            record = self._records.get(peer_id)
            if record is None or (connection is not None and record.connection is not connection):
                raise PeerNotFound(f"peer id {peer_id!r} is not registered")
            if now > record.last_active_at:
                record.last_active_at = now
            return record

    def lookup(self, peer_id: str) -> PeerRecord | None:
        with self._lock:
            return self._records.get(peer_id)

    def remove(self, peer_id: str, connection=None) -> PeerRecord | None:
        """
        Delete and return the record, or None if absent.

        With `connection`, only remove the record if it still belongs to that
        connection. A late close from an evicted session never drops a
        newer registration that reused the id.
        """
        with self._lock:
            record = self._records.get(peer_id)
            if record is None:
                return None
            if connection is not None and record.connection is not connection:
                return None
            del self._records[peer_id]
        log.debug("Removed peer %s", peer_id)
        return record

    def remove_if_idle(self, peer_id: str, threshold: float, now: float | None = None) -> PeerRecord | None:
        """Evict peer_id only if it has been idle for more than `threshold` seconds."""
        now = self._clock() if now is None else now
        with self._lock:
            record = self._records.get(peer_id)
            if record is None or now - record.last_active_at <= threshold:
                return None
            del self._records[peer_id]
        return record

    def list_ids(self) -> list[str]:
        with self._lock:
            return list(self._records)

    def snapshot(self) -> list[PeerRecord]:
        with self._lock:
            return list(self._records.values())

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, peer_id: str) -> bool:
        with self._lock:
            return peer_id in self._records
