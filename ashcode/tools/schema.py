"""Argument dataclasses → JSON Schema, and JSON arguments → dataclass instances.

Every tool declares one dataclass for its parameters::

    @dataclass
    class ReadFileArgs:
        path: str = field(metadata={"description": "The file path to read"})

``build_schema`` turns that into an OpenAI-compatible function schema and
``parse_arguments`` validates a raw JSON argument string against it once,
before the handler ever sees it.
"""

import dataclasses
import json
from typing import Any, Dict, Optional, Type, get_type_hints

from ..errors import ArgumentError

# Python type -> JSON Schema type
_TYPE_MAP = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
}


def _resolve_optional(hint):
    """Optional[X] -> X."""
    args = getattr(hint, "__args__", None)
    if args and type(None) in args:
        return next((a for a in args if a is not type(None)), None)
    return hint


def _has_default(f: dataclasses.Field) -> bool:
    return (f.default is not dataclasses.MISSING
            or f.default_factory is not dataclasses.MISSING)  # type: ignore[misc]


def build_schema(name: str, description: str, args_cls: Type) -> dict:
    """Auto-generate an OpenAI-compatible function schema from an argument dataclass."""
    hints = get_type_hints(args_cls)
    properties: Dict[str, Any] = {}
    required = []

    for f in dataclasses.fields(args_cls):
        hint = _resolve_optional(hints.get(f.name))
        prop: Dict[str, Any] = {"type": _TYPE_MAP.get(hint, "string")}
        desc = f.metadata.get("description")
        if desc:
            prop["description"] = desc
        choices = f.metadata.get("enum")
        if choices:
            prop["enum"] = list(choices)
        if _has_default(f):
            if f.default is not dataclasses.MISSING and f.default is not None:
                prop["default"] = f.default
        else:
            required.append(f.name)
        properties[f.name] = prop

    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


def _coerce(tool_name: str, field_name: str, hint, value: Any) -> Any:
    if value is None:
        return None
    if hint is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0", "yes", "no"):
            return value.strip().lower() in ("true", "1", "yes")
        raise ArgumentError(tool_name, f"'{field_name}' must be a boolean")
    if hint is int:
        if isinstance(value, bool):
            raise ArgumentError(tool_name, f"'{field_name}' must be an integer")
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value.strip())
        raise ArgumentError(tool_name, f"'{field_name}' must be an integer")
    if hint is float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        raise ArgumentError(tool_name, f"'{field_name}' must be a number")
    if hint is str:
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        raise ArgumentError(tool_name, f"'{field_name}' must be a string")
    return value


def parse_arguments(tool_name: str, args_cls: Type, raw: Optional[str]) -> Any:
    """Decode ``raw`` JSON and build ``args_cls`` from it.

    Unknown keys are ignored and an explicit null keeps a field's default;
    missing required keys and wrong basic types raise ``ArgumentError``.
    """
    text = (raw or "").strip() or "{}"
    try:
        data = json.loads(text)
    except ValueError as e:
        raise ArgumentError(tool_name, f"Failed to parse arguments - {e}") from e
    if not isinstance(data, dict):
        raise ArgumentError(tool_name, "Failed to parse arguments - expected a JSON object")

    hints = get_type_hints(args_cls)
    kwargs: Dict[str, Any] = {}
    for f in dataclasses.fields(args_cls):
        if f.name not in data:
            if not _has_default(f):
                raise ArgumentError(tool_name, f"missing required argument '{f.name}'")
            continue
        if data[f.name] is None:
            if not _has_default(f):
                raise ArgumentError(tool_name, f"missing required argument '{f.name}'")
            continue
        value = _coerce(tool_name, f.name, _resolve_optional(hints.get(f.name)), data[f.name])
        choices = f.metadata.get("enum")
        if choices and value is not None and value not in choices:
            raise ArgumentError(tool_name, f"'{f.name}' must be one of: {', '.join(choices)}")
        kwargs[f.name] = value
    return args_cls(**kwargs)
