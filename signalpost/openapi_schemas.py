"""
Marshall model dataclasses to OpenAPI 3 schema dicts.
Schemas are derived from signalpost.models so field lists are not duplicated.
"""
from __future__ import annotations

import dataclasses
import typing
from typing import Any, Literal, get_args, get_origin

from signalpost import models

# Internal or secret fields that never appear in API responses
_HIDDEN = {"connection", "peer_key", "started_at"}


def _type_to_schema(typ: Any, refs: dict[type, str]) -> dict[str, Any]:
    """Map a Python type to an OpenAPI schema dict. refs maps dataclass -> component name."""
    if typ is type(None):
        return {"type": "string", "nullable": True}
    origin = get_origin(typ)
    args = get_args(typ)

    # Optional / X | None
    if args and type(None) in args:
        inner = next(a for a in args if a is not type(None))
        s = dict(_type_to_schema(inner, refs))
        s["nullable"] = True
        return s

    if origin is Literal and args and all(isinstance(a, str) for a in args):
        return {"type": "string", "enum": list(args)}

    if origin is list:
        item_type = args[0] if args else Any
        return {"type": "array", "items": _type_to_schema(item_type, refs)}

    if origin is dict:
        return {"type": "object", "additionalProperties": True}

    if dataclasses.is_dataclass(typ) and typ in refs:
        return {"$ref": f"#/components/schemas/{refs[typ]}"}

    if typ is str:
        return {"type": "string"}
    if typ is bool:
        return {"type": "boolean"}
    if typ is int:
        return {"type": "integer"}
    if typ is float:
        return {"type": "number"}

    # Any: opaque JSON value
    return {}


def _dataclass_to_schema(cls: type, refs: dict[type, str]) -> dict[str, Any]:
    """Build an OpenAPI object schema from a dataclass's fields and type hints."""
    try:
        hints = typing.get_type_hints(cls)
    except (NameError, TypeError):
        hints = {}
    properties: dict[str, Any] = {}
    required: list[str] = []
    for f in dataclasses.fields(cls):
        if f.name.startswith("_") or f.name in _HIDDEN:
            continue
        properties[f.name] = _type_to_schema(hints.get(f.name, f.type), refs)
        if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            required.append(f.name)
    out: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        out["required"] = required
    if cls.__doc__:
        doc = cls.__doc__.strip().split("\n")[0]
        if doc:
            out["description"] = doc
    return out


MODEL_ORDER: list[tuple[type, str]] = [
    (models.SignalingMessage, "SignalingMessage"),
    (models.RelaySettings, "Settings"),
]
REF_MAP: dict[type, str] = {cls: name for cls, name in MODEL_ORDER}


def schemas_from_models() -> dict[str, dict[str, Any]]:
    """OpenAPI components/schemas keyed by name, derived from the models."""
    out = {name: _dataclass_to_schema(cls, REF_MAP) for cls, name in MODEL_ORDER}
    out["Settings"]["description"] = "Relay configuration (read from the environment at startup)."
    return out


def peer_record_schema() -> dict[str, Any]:
    """GET <peer_path>/peers/{id} response. Timestamps are serialised as ISO 8601."""
    return {
        "type": "object",
        "properties": {
            "id": {"type": "string"},
            "registered_at": {"type": "string", "format": "date-time"},
            "last_active_at": {"type": "string", "format": "date-time"},
        },
        "required": ["id", "registered_at", "last_active_at"],
    }


def health_schema() -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "status": {"type": "string", "enum": ["ok"]},
            "peers": {"type": "integer"},
            "uptime": {"type": "number", "description": "seconds since start"},
        },
    }


def frame_schemas() -> dict[str, dict[str, Any]]:
    """WebSocket frame envelopes (documentation only; not HTTP bodies)."""
    return {
        "ClientFrame": {
            "type": "object",
            "description": "Frame sent by a client over the signaling socket.",
            "properties": {
                "type": {"type": "string", "enum": ["signal", "control"]},
                "target": {"type": "string", "description": "Destination peer id (signal only)"},
                "payload": {"description": "Opaque for signal; {op: heartbeat|peers|leave} for control"},
            },
            "required": ["type"],
        },
        "ErrorFrame": {
            "type": "object",
            "description": "Notice sent by the relay; the session stays open unless noted.",
            "properties": {
                "type": {"type": "string", "enum": ["error"]},
                "code": {"type": "string", "enum": [
                    "id-taken", "invalid-id", "invalid-key", "unknown-target",
                    "transport", "bad-frame", "inactive", "discovery-disabled", "internal",
                ]},
                "message": {"type": "string"},
                "target": {"type": "string"},
            },
            "required": ["type", "code"],
        },
    }
