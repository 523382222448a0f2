from flask import Blueprint, Response, jsonify

from signalpost import state
from signalpost.openapi_spec import get_openapi_dict, get_openapi_yaml

bp = Blueprint("docs", __name__)


@bp.route("/openapi.json")
def openapi_json():
    return jsonify(get_openapi_dict(state.settings.peer_path))


@bp.route("/openapi.yaml")
def openapi_yaml():
    return Response(get_openapi_yaml(state.settings.peer_path), mimetype="application/yaml")
