"""
OpenAPI 3 description of the relay's HTTP surface, served at /openapi.json
and /openapi.yaml. Paths under the signaling mount follow settings.peer_path.
"""
from apispec import APISpec

from signalpost.openapi_schemas import (
    frame_schemas,
    health_schema,
    peer_record_schema,
    schemas_from_models,
)

REF_HEALTH = {"$ref": "#/components/schemas/Health"}
REF_PEER = {"$ref": "#/components/schemas/PeerRecord"}
REF_SETTINGS = {"$ref": "#/components/schemas/Settings"}
REF_ERROR = {"$ref": "#/components/schemas/Error"}

_ERROR_SCHEMA = {"type": "object", "properties": {"error": {"type": "string"}}}


def _resp_json(schema, status="200", description="OK"):
    return {
        status: {
            "description": description,
            "content": {"application/json": {"schema": schema}},
        }
    }


def _throttled():
    return _resp_json(REF_ERROR, status="429", description="Rate limit exceeded for this address")


def build_spec(peer_path: str = "/peerjs") -> APISpec:
    spec = APISpec(
        title="signalpost relay API",
        version="1.0.0",
        openapi_version="3.0.3",
        info=dict(
            description=(
                "Presence and signaling relay for browser peers. Every route is "
                "subject to the per-address rate limiter."
            ),
        ),
    )
    spec.options["servers"] = [{"url": "/", "description": "Current origin"}]

    spec.components.schema("Health", health_schema())
    spec.components.schema("PeerRecord", peer_record_schema())
    spec.components.schema("Error", _ERROR_SCHEMA)
    for name, schema in schemas_from_models().items():
        spec.components.schema(name, schema)
    for name, schema in frame_schemas().items():
        spec.components.schema(name, schema)

    spec.path(
        path="/health",
        operations=dict(get=dict(
            summary="Health",
            description="Service status, live peer count and uptime. Used by keepalive pingers.",
            operationId="getHealth",
            responses={**_resp_json(REF_HEALTH), **_throttled()},
        )),
    )
    spec.path(
        path="/status",
        operations=dict(get=dict(
            summary="Relay status",
            description="Health plus sweeper statistics and the effective settings.",
            operationId="getStatus",
            responses={**_resp_json({
                "allOf": [REF_HEALTH, {"type": "object", "properties": {
                    "rate_limited_addresses": {"type": "integer"},
                    "sweeper": {"type": "object", "additionalProperties": True},
                    "settings": REF_SETTINGS,
                }}],
            }), **_throttled()},
        )),
    )
    spec.path(
        path=f"{peer_path}/peers",
        operations=dict(get=dict(
            summary="Discover peers",
            description="Point-in-time list of live peer ids.",
            operationId="listPeers",
            responses={
                **_resp_json({"type": "array", "items": {"type": "string"}}),
                **_resp_json(REF_ERROR, status="403", description="Discovery disabled"),
                **_throttled(),
            },
        )),
    )
    spec.path(
        path=f"{peer_path}/peers/{{peer_id}}",
        operations=dict(get=dict(
            summary="Peer presence",
            operationId="getPeer",
            parameters=[{"name": "peer_id", "in": "path", "required": True,
                         "schema": {"type": "string"}}],
            responses={
                **_resp_json(REF_PEER),
                **_resp_json(REF_ERROR, status="403", description="Discovery disabled"),
                **_resp_json(REF_ERROR, status="404", description="Peer not registered"),
                **_throttled(),
            },
        )),
    )
    spec.path(
        path=f"{peer_path}/id",
        operations=dict(get=dict(
            summary="Generate a peer id",
            description="A fresh id that is not currently registered. Not reserved.",
            operationId="newPeerId",
            responses={
                "200": {"description": "OK",
                        "content": {"text/plain": {"schema": {"type": "string"}}}},
                **_throttled(),
            },
        )),
    )
    spec.path(
        path=peer_path,
        operations=dict(get=dict(
            summary="Signaling socket (WebSocket upgrade)",
            description=(
                "Upgrade to a WebSocket signaling session. The first frame from the relay is "
                "`{\"type\": \"open\", \"id\": ...}` or an ErrorFrame (`id-taken`, `invalid-id`, "
                "`invalid-key`) followed by close. Client frames follow ClientFrame."
            ),
            operationId="openSignalingSocket",
            parameters=[
                {"name": "key", "in": "query", "required": True, "schema": {"type": "string"}},
                {"name": "id", "in": "query", "required": False, "schema": {"type": "string"},
                 "description": "Proposed peer id; generated when omitted"},
            ],
            responses={
                "101": {"description": "Switching protocols"},
                **_throttled(),
            },
        )),
    )
    spec.path(
        path="/logs",
        operations=dict(get=dict(
            summary="Recent logs",
            operationId="getLogs",
            parameters=[
                {"name": "tail", "in": "query", "schema": {"type": "integer", "maximum": 500}},
                {"name": "level", "in": "query", "schema": {"type": "string"}},
                {"name": "format", "in": "query", "schema": {"type": "string", "enum": ["json", "text"]}},
            ],
            responses={
                **_resp_json({"type": "object", "properties": {
                    "lines": {"type": "array", "items": {"type": "object"}}}}),
                **_resp_json(REF_ERROR, status="400", description="Bad level"),
                **_throttled(),
            },
        )),
    )
    return spec


_specs: dict[str, APISpec] = {}


def get_openapi_dict(peer_path: str = "/peerjs") -> dict:
    """OpenAPI spec as a dict (built once per mount path)."""
    if peer_path not in _specs:
        _specs[peer_path] = build_spec(peer_path)
    return _specs[peer_path].to_dict()


def get_openapi_yaml(peer_path: str = "/peerjs") -> str:
    import yaml
    return yaml.dump(
        get_openapi_dict(peer_path),
        default_flow_style=False,
        allow_unicode=True,
        sort_keys=False,
    )
