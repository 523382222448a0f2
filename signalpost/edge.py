"""
HTTP edge hooks applied to every request.

  before_request  preflight short-circuit, then the per-address rate limiter
                  (runs before any route, including the WebSocket upgrade,
                  so a throttled client never touches the registry)
  after_request   security headers and CORS
"""
import logging

from flask import Flask, jsonify, make_response, request

from signalpost import state
from signalpost.errors import RateExceeded

log = logging.getLogger("signalpost.edge")

_SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}
_CORS_METHODS = "GET, POST, OPTIONS"
_CORS_HEADERS = "Content-Type, Accept, Origin, X-Requested-With"


def client_address() -> str:
    """
    Address the limiter keys on. Behind a proxy (TRUST_PROXY) the first hop
    of X-Forwarded-For is the real client.
    """
    if state.settings.trust_proxy:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.remote_addr or "unknown"


def _rate_limit():
    if request.method == "OPTIONS":
        return make_response("", 204)
    addr = client_address()
    if not state.rate_limiter.allow(addr):
        log.warning("Rate limit exceeded for %s (%s %s)", addr, request.method, request.path)
        return jsonify({"error": "too many requests, try again later",
                        "code": RateExceeded.code}), 429
    return None


def _origin_allowed(origin: str) -> bool:
    allowed = state.settings.allowed_origins()
    return "*" in allowed or origin in allowed


def _add_headers(resp):
    for name, value in _SECURITY_HEADERS.items():
        resp.headers.setdefault(name, value)
    origin = request.headers.get("Origin", "")
    if origin and _origin_allowed(origin):
        resp.headers["Access-Control-Allow-Origin"] = origin
        resp.headers["Access-Control-Allow-Credentials"] = "true"
        resp.headers["Access-Control-Allow-Methods"] = _CORS_METHODS
        resp.headers["Access-Control-Allow-Headers"] = _CORS_HEADERS
        resp.headers.add("Vary", "Origin")
    elif not origin and "*" in state.settings.allowed_origins():
        resp.headers["Access-Control-Allow-Origin"] = "*"
    return resp


def install(app: Flask):
    """Attach the edge hooks to the Flask app."""
    app.before_request(_rate_limit)
    app.after_request(_add_headers)
