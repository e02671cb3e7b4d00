"""Schema and type registry.

Message shapes are registered once at startup and frozen before any
command can be dispatched. Decoding is strict: a payload either matches
its schema exactly (every declared field present, no silent type
coercion, no unknown fields) or a ValidationError is raised.

Schemas are described with Avro record definitions:

    {
        "type": "record",
        "namespace": "agent_mail",
        "name": "SendMailCommand",
        "fields": [{"name": "id", "type": "string"}, ...]
    }

Usage:
    registry = TypeRegistry()
    registry.register_schema(load_avro_schema(text))
    registry.register_type("send-mail", "agent_mail.SendMailCommand")
    value = registry.decode("send-mail", {"id": "42", ...})
"""

from __future__ import annotations

import json
import keyword
import logging
from dataclasses import dataclass
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from .errors import (
    DuplicateNameError,
    RegistryFrozenError,
    SchemaDefinitionError,
    UnknownSchemaError,
    UnknownTypeError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Avro primitive type -> Python type
PRIMITIVE_TYPES: dict[str, type] = {
    "string": str,
    "boolean": bool,
    "int": int,
    "long": int,
    "float": float,
    "double": float,
    "bytes": bytes,
}


class SchemaField(BaseModel):
    """One declared field of a message schema."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str
    optional: bool = False


class MessageSchema(BaseModel):
    """Structural schema of a message: a name and ordered, typed fields."""

    model_config = ConfigDict(frozen=True)

    name: str
    fields: tuple[SchemaField, ...]
    doc: str | None = None

    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]


@dataclass(frozen=True)
class SchemaHandle:
    name: str
    schema: MessageSchema


@dataclass(frozen=True)
class TypeHandle:
    """A registered message type bound to its schema and decoder model."""

    name: str
    schema: MessageSchema
    model: type[BaseModel]


def _parse_field_type(field_name: str, raw_type: Any) -> tuple[str, bool]:
    """Map an Avro field type to (primitive name, optional)."""
    if isinstance(raw_type, str) and raw_type in PRIMITIVE_TYPES:
        return raw_type, False

    # ["null", "string"] style optional fields
    if isinstance(raw_type, list):
        branches = [t for t in raw_type if t != "null"]
        if "null" in raw_type and len(branches) == 1 and branches[0] in PRIMITIVE_TYPES:
            return branches[0], True

    raise SchemaDefinitionError(f"Unsupported type for field '{field_name}': {raw_type!r}")


def load_avro_schema(text: str | bytes) -> MessageSchema:
    """Parse an Avro record definition into a MessageSchema.

    Args:
        text: JSON text of the record definition

    Returns:
        The parsed schema, named ``namespace.name`` when a namespace is set

    Raises:
        SchemaDefinitionError: If the text is not a supported Avro record
    """
    try:
        definition = json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaDefinitionError(f"Schema is not valid JSON: {e}") from e

    if not isinstance(definition, dict) or definition.get("type") != "record":
        raise SchemaDefinitionError("Only Avro 'record' schemas are supported")

    name = definition.get("name")
    if not name or not isinstance(name, str):
        raise SchemaDefinitionError("Schema has no name")

    namespace = definition.get("namespace")
    full_name = f"{namespace}.{name}" if namespace and "." not in name else name

    raw_fields = definition.get("fields")
    if not isinstance(raw_fields, list):
        raise SchemaDefinitionError(f"Schema '{full_name}' has no field list")

    fields: list[SchemaField] = []
    seen: set[str] = set()
    for raw in raw_fields:
        if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
            raise SchemaDefinitionError(f"Malformed field in schema '{full_name}': {raw!r}")
        field_name = raw["name"]
        if field_name in seen:
            raise SchemaDefinitionError(f"Field '{field_name}' declared twice in '{full_name}'")
        seen.add(field_name)
        type_name, optional = _parse_field_type(field_name, raw.get("type"))
        fields.append(SchemaField(name=field_name, type=type_name, optional=optional))

    return MessageSchema(name=full_name, fields=tuple(fields), doc=definition.get("doc"))


def _build_model(type_name: str, schema: MessageSchema) -> type[BaseModel]:
    """Build a strict pydantic model that decodes payloads of a schema.

    Field names that are not valid identifiers (``from`` for instance) get
    a trailing underscore and keep the schema name as alias.
    """
    definitions: dict[str, Any] = {}
    for f in schema.fields:
        attr = f.name
        if keyword.iskeyword(attr) or not attr.isidentifier() or attr.startswith("_"):
            attr = f"{attr.strip('_') or 'field'}_"
        py_type: Any = PRIMITIVE_TYPES[f.type]
        if f.optional:
            definitions[attr] = (py_type | None, Field(default=None, alias=f.name))
        else:
            definitions[attr] = (py_type, Field(alias=f.name))

    model_name = "".join(part.capitalize() for part in type_name.replace("#", "-").split("-"))
    return pydantic.create_model(  # type: ignore[call-overload]
        model_name or "Message",
        __config__=ConfigDict(strict=True, extra="forbid", frozen=True, populate_by_name=False),
        **definitions,
    )


class TypeRegistry:
    """Maps message names to schemas and decodes payloads.

    Registration is append-only. After ``freeze()`` the registry is
    read-only and can be shared by concurrent handlers without locking.
    """

    def __init__(self) -> None:
        self._schemas: dict[str, MessageSchema] = {}
        self._types: dict[str, TypeHandle] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Make the registry read-only."""
        self._frozen = True

    def _check_writable(self, what: str) -> None:
        if self._frozen:
            raise RegistryFrozenError(f"Cannot register {what}: registry is frozen")

    def register_schema(self, schema: MessageSchema) -> SchemaHandle:
        """Register a schema under its name.

        Raises:
            DuplicateNameError: If a schema with this name exists
            RegistryFrozenError: If startup already completed
        """
        self._check_writable(f"schema '{schema.name}'")
        if schema.name in self._schemas:
            raise DuplicateNameError(f"Schema already registered: {schema.name}")
        self._schemas[schema.name] = schema
        logger.debug(f"Registered schema {schema.name} ({len(schema.fields)} fields)")
        return SchemaHandle(name=schema.name, schema=schema)

    def register_type(self, name: str, schema_name: str) -> TypeHandle:
        """Bind a message name to a registered schema.

        Raises:
            UnknownSchemaError: If the schema was never registered
            DuplicateNameError: If a type with this name exists
            RegistryFrozenError: If startup already completed
        """
        self._check_writable(f"type '{name}'")
        schema = self._schemas.get(schema_name)
        if schema is None:
            raise UnknownSchemaError(f"Type '{name}' refers to unknown schema '{schema_name}'")
        if name in self._types:
            raise DuplicateNameError(f"Type already registered: {name}")
        handle = TypeHandle(name=name, schema=schema, model=_build_model(name, schema))
        self._types[name] = handle
        logger.debug(f"Registered type {name} -> {schema_name}")
        return handle

    def get_type(self, name: str) -> TypeHandle:
        handle = self._types.get(name)
        if handle is None:
            raise UnknownTypeError(f"Unknown message type: {name}")
        return handle

    def has_type(self, name: str) -> bool:
        return name in self._types

    def type_names(self) -> list[str]:
        return list(self._types)

    def schema_names(self) -> list[str]:
        return list(self._schemas)

    def decode(self, name: str, payload: Any) -> BaseModel:
        """Decode a raw payload into the typed value of a message type.

        Args:
            name: Registered message name
            payload: Raw mapping, typically parsed JSON

        Returns:
            Frozen typed value

        Raises:
            UnknownTypeError: If no type is registered under ``name``
            ValidationError: If a field is missing, unknown or of the wrong type
        """
        handle = self.get_type(name)
        if not isinstance(payload, dict):
            raise ValidationError(
                f"Payload for '{name}' must be an object, got {type(payload).__name__}"
            )
        try:
            return handle.model.model_validate(payload)
        except pydantic.ValidationError as e:
            errors = e.errors(include_url=False, include_context=False, include_input=False)
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in errors
            )
            raise ValidationError(f"Invalid '{name}' payload: {details}", errors=errors) from e

    def validate(self, name: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Check fields against a message type and return their canonical form."""
        return self.decode(name, fields).model_dump(by_alias=True)
