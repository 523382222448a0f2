import logging

from flask import Blueprint, request, jsonify, Response

from signalpost.log_buffer import get_recent_logs

log = logging.getLogger("signalpost.routes.logs")

bp = Blueprint("logs", __name__)

TAIL_DEFAULT = 200
TAIL_MAX = 500
_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@bp.route("/logs")
def get_logs():
    tail = request.args.get("tail", default=TAIL_DEFAULT, type=int)
    tail = max(1, min(TAIL_MAX, tail))
    level = (request.args.get("level") or "").strip().upper()
    if level and level not in _LEVELS:
        return jsonify({"error": f"level must be one of {', '.join(_LEVELS)}"}), 400
    fmt = (request.args.get("format") or "json").strip().lower()

    lines = get_recent_logs(limit=tail, min_level=level or None)

    if fmt == "text":
        text = "\n".join(entry["message"] for entry in lines)
        return Response(text, mimetype="text/plain; charset=utf-8")

    return jsonify({"lines": lines})
