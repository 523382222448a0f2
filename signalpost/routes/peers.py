import logging

from flask import Blueprint, jsonify

from signalpost import state
from signalpost.channel import generate_unused_id

log = logging.getLogger("signalpost.routes.peers")

bp = Blueprint("peers", __name__)


@bp.route("/peers")
def list_peers():
    """Discovery: point-in-time list of live peer ids."""
    if not state.settings.allow_discovery:
        return jsonify({"error": "peer discovery is disabled"}), 403
    return jsonify(state.registry.list_ids())


@bp.route("/peers/<peer_id>")
def get_peer(peer_id):
    if not state.settings.allow_discovery:
        return jsonify({"error": "peer discovery is disabled"}), 403
    record = state.registry.lookup(peer_id)
    if record is None:
        return jsonify({"error": "peer not found"}), 404
    return jsonify(record.to_dict())


@bp.route("/id")
def new_id():
    """A fresh id the client may propose on connect (not reserved)."""
    return generate_unused_id(state.registry), 200, {"Content-Type": "text/plain; charset=utf-8"}
