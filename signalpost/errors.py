"""
Relay error taxonomy.

Every error carries a short wire `code` that is sent back to clients inside
an error frame:  {"type": "error", "code": "<code>", ...}
"""


class SignalpostError(RuntimeError):
    code = "error"

    def to_frame(self, **extra) -> dict:
        frame = {"type": "error", "code": self.code, "message": str(self)}
        frame.update(extra)
        return frame


class DuplicatePeerId(SignalpostError):
    """Registration attempted with an id that is already live."""
    code = "id-taken"


class PeerNotFound(SignalpostError):
    """Target id is not present in the registry."""
    code = "unknown-target"


class RateExceeded(SignalpostError):
    code = "rate-limited"


class TransportFailure(SignalpostError):
    """Write to a peer's socket failed (closed, reset, partial frame)."""
    code = "transport"


class BadFrame(SignalpostError):
    code = "bad-frame"


class InvalidPeerId(SignalpostError):
    code = "invalid-id"


class InvalidKey(SignalpostError):
    code = "invalid-key"


class PeerExpired(SignalpostError):
    """Peer was evicted by the liveness sweeper."""
    code = "inactive"


class DiscoveryDisabled(SignalpostError):
    code = "discovery-disabled"
