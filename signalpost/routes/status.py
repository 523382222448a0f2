"""Service status routes: banner, health (for keepalive pingers), status."""
import logging

from flask import Blueprint, jsonify

from signalpost import state

log = logging.getLogger("signalpost.routes.status")

bp = Blueprint("status", __name__)


@bp.route("/")
def index():
    return "signalpost relay is running", 200, {"Content-Type": "text/plain; charset=utf-8"}


@bp.route("/health")
def health():
    return jsonify({
        "status": "ok",
        "peers": state.registry.count(),
        "uptime": round(state.uptime(), 3),
    })


@bp.route("/status")
def status():
    sweeper = state.sweeper
    return jsonify({
        "status": "ok",
        "peers": state.registry.count(),
        "uptime": round(state.uptime(), 3),
        "rate_limited_addresses": state.rate_limiter.tracked(),
        "sweeper": {
            "running": sweeper is not None,
            "last_sweep_at": sweeper.last_sweep_at if sweeper else None,
            "total_evicted": sweeper.total_evicted if sweeper else 0,
        },
        "settings": state.settings.to_dict(),
    })
