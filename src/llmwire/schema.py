"""Normalize JSON Schemas into the dialect a vendor accepts.

The sanitizer never mutates its input: every level of the output is freshly
built, so callers may share one schema across threads.
"""

from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
from dataclasses import dataclass
import json
from typing import Any

from pydantic import BaseModel

from llmwire.errors import SchemaError

BASE_KEYS: frozenset[str] = frozenset({"type", "properties", "required", "items"})

# Keys whose values are lists of sub-schemas or maps of named sub-schemas.
_SCHEMA_LIST_KEYS = frozenset({"anyOf", "oneOf", "allOf"})
_SCHEMA_MAP_KEYS = frozenset({"$defs", "definitions"})


@dataclass(frozen=True)
class SchemaDialect:
    """An allow-list of schema keys for one vendor."""

    name: str
    extra_keys: frozenset[str] = frozenset()
    #: Strict modes reject objects whose properties are not all required.
    require_all_properties: bool = False

    @property
    def allowed_keys(self) -> frozenset[str]:
        return BASE_KEYS | self.extra_keys


BASE_DIALECT = SchemaDialect("base")
OPENAI_DIALECT = SchemaDialect(
    "openai",
    frozenset({"description", "enum", "anyOf", "$defs", "$ref"}),
    require_all_properties=True,
)
ANTHROPIC_DIALECT = SchemaDialect(
    "anthropic",
    frozenset({"description", "enum", "const", "anyOf", "$defs", "$ref", "format"}),
    require_all_properties=True,
)
GEMINI_DIALECT = SchemaDialect(
    "gemini",
    frozenset(
        {
            "description",
            "enum",
            "format",
            "nullable",
            "anyOf",
            "minItems",
            "maxItems",
            "minimum",
            "maximum",
            "propertyOrdering",
        }
    ),
)
COHERE_DIALECT = SchemaDialect(
    "cohere", frozenset({"description", "enum", "anyOf", "format"})
)
OLLAMA_DIALECT = SchemaDialect("ollama", frozenset({"description", "enum"}))


def load_schema(schema: Any) -> Any:
    """Decode *schema* into an in-memory tree.

    Accepts a JSON string, raw bytes, a mapping, or a pydantic model class or
    instance. Anything else is returned as-is for the sanitizer to pass
    through.

    Raises:
        SchemaError: Text or bytes that are not valid JSON.
    """
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return schema.model_json_schema()
    if isinstance(schema, BaseModel):
        return type(schema).model_json_schema()
    if isinstance(schema, (bytes, bytearray)):
        try:
            schema = bytes(schema).decode("utf-8")
        except UnicodeDecodeError as e:
            raise SchemaError(
                "Schema bytes are not valid UTF-8",
                hint="Pass the schema as UTF-8 encoded JSON.",
            ) from e
    if isinstance(schema, str):
        try:
            return json.loads(schema)
        except json.JSONDecodeError as e:
            raise SchemaError(
                f"Schema is not valid JSON: {e.msg} (line {e.lineno}, column {e.colno})",
                hint="Pass a dict, a pydantic model, or a JSON Schema string.",
            ) from e
    return schema


def sanitize_schema(schema: Any, dialect: SchemaDialect = BASE_DIALECT) -> Any:
    """Restrict *schema* to the keys *dialect* accepts.

    Object nodes are closed with ``additionalProperties: false``. A root that
    does not decode to a mapping is returned unchanged.
    """
    tree = load_schema(schema)
    if not isinstance(tree, Mapping):
        return schema
    return _sanitize_node(tree, dialect)


def _sanitize_node(node: Mapping[str, Any], dialect: SchemaDialect) -> dict[str, Any]:
    allowed = dialect.allowed_keys
    out: dict[str, Any] = {}
    for key, value in node.items():
        if key not in allowed:
            continue
        if key == "properties" and isinstance(value, Mapping):
            out[key] = {
                name: _sanitize_value(prop, dialect) for name, prop in value.items()
            }
        elif key == "items":
            out[key] = _sanitize_value(value, dialect)
        elif key in _SCHEMA_LIST_KEYS and isinstance(value, list):
            out[key] = [_sanitize_value(v, dialect) for v in value]
        elif key in _SCHEMA_MAP_KEYS and isinstance(value, Mapping):
            out[key] = {name: _sanitize_value(v, dialect) for name, v in value.items()}
        else:
            out[key] = deepcopy(value)

    if _is_object(out.get("type")):
        out["additionalProperties"] = False
        properties = out.get("properties")
        if dialect.require_all_properties and isinstance(properties, dict):
            _require_all(out, properties)
    return out


def _is_object(kind: Any) -> bool:
    return kind == "object" or (isinstance(kind, list) and "object" in kind)


def _require_all(node: dict[str, Any], properties: dict[str, Any]) -> None:
    """List every property as required, as strict modes demand.

    Properties missing from a caller-supplied ``required`` list stay optional
    in effect by also accepting ``null``.
    """
    declared = node.get("required")
    if isinstance(declared, list):
        for name, prop in properties.items():
            if name not in declared:
                properties[name] = _nullable(prop)
    node["required"] = list(properties)


def _nullable(prop: Any) -> Any:
    if not isinstance(prop, dict):
        return prop
    kind = prop.get("type")
    if isinstance(kind, str):
        if kind == "null":
            return prop
        prop = {**prop, "type": [kind, "null"]}
    elif isinstance(kind, list):
        if "null" in kind:
            return prop
        prop = {**prop, "type": [*kind, "null"]}
    elif isinstance(prop.get("anyOf"), list):
        if {"type": "null"} not in prop["anyOf"]:
            prop = {**prop, "anyOf": [*prop["anyOf"], {"type": "null"}]}
        return prop
    else:
        return {"anyOf": [prop, {"type": "null"}]}
    enum = prop.get("enum")
    if isinstance(enum, list) and None not in enum:
        prop["enum"] = [*enum, None]
    return prop


def _sanitize_value(value: Any, dialect: SchemaDialect) -> Any:
    if isinstance(value, Mapping):
        return _sanitize_node(value, dialect)
    # Tuple-form items and boolean schemas are kept as copies.
    return deepcopy(value)
