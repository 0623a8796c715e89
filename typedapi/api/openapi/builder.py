"""Schema synthesis from type descriptors.

``SchemaBuilder`` walks an annotation and returns a ``Schema``; named
models (and unions declared with the ``type`` statement) are registered
once in the shared components map and referenced by ``$ref``, anonymous
models are always inlined. Constraint metadata is translated into schema
facets so documentation stays in step with runtime validation.
"""

import inspect
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from typedapi.api.constants import SCHEMA_REF_PREFIX
from typedapi.api.introspection import (
    FieldConstraints,
    FieldSpec,
    TypeDescriptor,
    TypeKind,
    collect_constraints,
    describe_type,
    is_anonymous,
    model_fields,
)
from typedapi.api.openapi.models import Components, Discriminator, Schema
from typedapi.api.openapi.naming import unique_schema_name
from typedapi.core.exceptions import ConfigurationError

NULL_TYPE = "null"


def make_nullable(schema: Schema | None) -> Schema:
    """Allow ``null`` in addition to ``schema``.

    Scalars get a two-element ``type`` list ending in ``"null"``; references
    and object-like schemas are paired with a null schema under ``anyOf``.
    """
    if schema is None:
        return Schema(type=NULL_TYPE)
    if schema.has_structure:
        return Schema(any_of=[schema, Schema(type=NULL_TYPE)])
    if isinstance(schema.type, str):
        if schema.type == NULL_TYPE:
            return schema
        return schema.model_copy(update={"type": [schema.type, NULL_TYPE]})
    if isinstance(schema.type, list):
        if NULL_TYPE in schema.type:
            return schema
        return schema.model_copy(update={"type": [*schema.type, NULL_TYPE]})
    return Schema(any_of=[schema, Schema(type=NULL_TYPE)])


def primitive_schema(tp: type) -> Schema:
    """Schema for a primitive Python type, with a format where one applies."""
    if issubclass(tp, bool):
        return Schema(type="boolean")
    if issubclass(tp, int):
        return Schema(type="integer")
    if issubclass(tp, float):
        return Schema(type="number")
    if issubclass(tp, Decimal):
        return Schema(type="string", format="decimal")
    if issubclass(tp, UUID):
        return Schema(type="string", format="uuid")
    if issubclass(tp, datetime):
        return Schema(type="string", format="date-time")
    if issubclass(tp, date):
        return Schema(type="string", format="date")
    if issubclass(tp, (bytes, bytearray)):
        return Schema(type="string", format="binary")
    return Schema(type="string")


def _json_type(values: tuple[Any, ...]) -> str | None:
    kinds = {
        primitive_schema(type(value)).type for value in values if value is not None
    }
    if len(kinds) == 1:
        return kinds.pop()
    return None


def _type_label(descriptor: TypeDescriptor) -> str:
    if descriptor.name:
        return descriptor.name
    return getattr(descriptor.python_type, "__name__", descriptor.kind.value)


def _base_type(schema: Schema) -> str | None:
    if isinstance(schema.type, list):
        return next((item for item in schema.type if item != NULL_TYPE), None)
    return schema.type


_FACETS = {
    "string": {
        "min_length": "min_length",
        "max_length": "max_length",
        "pattern": "pattern",
    },
    "array": {"min_length": "min_items", "max_length": "max_items"},
    "integer": {
        "ge": "minimum",
        "le": "maximum",
        "gt": "exclusive_minimum",
        "lt": "exclusive_maximum",
        "multiple_of": "multiple_of",
    },
}
_FACETS["number"] = _FACETS["integer"]


def apply_constraints(schema: Schema, constraints: FieldConstraints) -> Schema:
    """Copy declarative constraints onto ``schema`` according to its type."""
    for source, target in _FACETS.get(_base_type(schema) or "", {}).items():
        value = getattr(constraints, source)
        if isinstance(value, Decimal):
            value = float(value)
        if value is not None:
            setattr(schema, target, value)
    return schema


def discriminator_of(model: type[BaseModel]) -> tuple[str, str] | None:
    """Wire name and value of the model's discriminator field, if any.

    Raises:
        ConfigurationError: If more than one field carries a discriminator.
    """
    found = [
        (spec.wire_name, spec.discriminator)
        for spec in model_fields(model)
        if spec.discriminator
    ]
    if len(found) > 1:
        msg = f"{model.__name__} declares more than one discriminator field"
        raise ConfigurationError(msg)
    return found[0] if found else None


class SchemaBuilder:
    """Builds schemas into a shared ``Components`` object.

    Args:
        components: Components receiving named schemas.
    """

    def __init__(self, components: Components) -> None:
        self.components = components
        self._names: dict[Any, str] = {}

    def schema_for(self, annotation: Any, nullable: bool = True) -> Schema:
        """Schema of an arbitrary annotation."""
        return self.from_descriptor(describe_type(annotation), nullable=nullable)

    def from_descriptor(  # noqa: PLR0911
        self, descriptor: TypeDescriptor, nullable: bool = True
    ) -> Schema:
        """Schema for a type descriptor; ``nullable`` applies to optional types."""
        kind = descriptor.kind
        if kind is TypeKind.OPTIONAL:
            inner = self.from_descriptor(descriptor.inner, nullable=nullable)
            return make_nullable(inner) if nullable else inner
        if kind is TypeKind.UNION:
            return self._union(descriptor)
        if kind is TypeKind.MODEL:
            return self.model_schema(descriptor.python_type)
        if kind is TypeKind.SEQUENCE:
            return self._array(descriptor)
        if kind is TypeKind.MAPPING:
            value = descriptor.inner
            additional: Schema | bool = (
                True if value.kind is TypeKind.ANY else self.from_descriptor(value)
            )
            return self._with_metadata(
                Schema(type="object", additional_properties=additional), descriptor
            )
        if kind in (TypeKind.LITERAL, TypeKind.ENUM):
            return self._enumeration(descriptor)
        if kind in (TypeKind.PRIMITIVE, TypeKind.DATETIME, TypeKind.BYTES):
            schema = primitive_schema(descriptor.python_type)
            return self._with_metadata(schema, descriptor)
        if kind is TypeKind.ANY:
            return Schema()
        return Schema(
            type="object",
            description=f"Unsupported type: {_type_label(descriptor)}",
        )

    def field_schema(self, spec: FieldSpec, nullable: bool = True) -> Schema:
        """Schema of one model field, including its constraints and description."""
        schema = self.from_descriptor(spec.descriptor, nullable=nullable)
        if not schema.ref and not schema.any_of:
            apply_constraints(schema, spec.constraints)
        if spec.discriminator and _base_type(schema) == "string":
            schema.enum = [spec.discriminator]
        if spec.description:
            schema.description = spec.description
        return schema

    def model_schema(self, model: type[BaseModel]) -> Schema:
        """Reference to a named model, or the inline schema of an anonymous one."""
        if is_anonymous(model):
            return self.object_schema(model)
        return self.named_schema(model)

    def named_schema(
        self,
        key: Any,
        name: str | None = None,
        model: type[BaseModel] | None = None,
    ) -> Schema:
        """Register ``model`` once under a unique name and reference it.

        Args:
            key: Identity the registration is tracked by; also the model
                to describe when ``model`` is not given.
            name: Preferred component name.
            model: Model whose fields make up the component.
        """
        existing = self._names.get(key)
        if existing is None:
            existing = unique_schema_name(key, self.components.schemas, name=name)
            self._names[key] = existing
            # placeholder so self-references resolve to the reference
            self.components.schemas[existing] = Schema(type="object", title=existing)
            self.components.schemas[existing] = self.object_schema(
                model or key, title=existing
            )
        return Schema(ref=SCHEMA_REF_PREFIX + existing)

    def component_name(self, key: Any) -> str | None:
        """Name ``key`` was registered under, if it has been."""
        return self._names.get(key)

    def object_schema(self, model: type[BaseModel], title: str | None = None) -> Schema:
        """Inline object schema listing a model's fields by wire name."""
        properties: dict[str, Schema] = {}
        required: list[str] = []
        for spec in model_fields(model):
            properties[spec.wire_name] = self.field_schema(spec)
            if spec.required:
                required.append(spec.wire_name)

        doc = model.__dict__.get("__doc__")
        return Schema(
            type="object",
            title=title,
            description=inspect.cleandoc(doc) if doc else None,
            properties=properties,
            required=required or None,
        )

    def _array(self, descriptor: TypeDescriptor) -> Schema:
        element = descriptor.inner
        label = self.component_name(element.python_type) or _type_label(element)
        schema = Schema(
            type="array",
            items=self.from_descriptor(element),
            title=f"[]{label}",
            description=f"Array of {label}",
        )
        return self._with_metadata(schema, descriptor)

    def _enumeration(self, descriptor: TypeDescriptor) -> Schema:
        values = descriptor.values
        enum_type = descriptor.python_type
        if descriptor.kind is TypeKind.ENUM and issubclass(enum_type, Enum):
            values = tuple(member.value for member in enum_type)
        return Schema(type=_json_type(values), enum=list(values))

    def _union(self, descriptor: TypeDescriptor) -> Schema:
        if descriptor.name:
            existing = self._names.get(descriptor.python_type)
            if existing is None:
                existing = unique_schema_name(
                    descriptor.python_type,
                    self.components.schemas,
                    name=descriptor.name,
                )
                self._names[descriptor.python_type] = existing
                schema = self._one_of(descriptor)
                schema.title = existing
                self.components.schemas[existing] = schema
            return Schema(ref=SCHEMA_REF_PREFIX + existing)
        return self._one_of(descriptor)

    def _one_of(self, descriptor: TypeDescriptor) -> Schema:
        branches: list[Schema] = []
        mapping: dict[str, str] = {}
        properties: set[str] = set()
        for branch in descriptor.args:
            schema = self.from_descriptor(branch, nullable=False)
            branches.append(schema)
            if branch.kind is not TypeKind.MODEL or not schema.ref:
                continue
            found = discriminator_of(branch.python_type)
            if found is not None:
                properties.add(found[0])
                mapping[found[1]] = schema.ref

        schema = Schema(one_of=branches)
        if mapping and len(properties) == 1:
            schema.discriminator = Discriminator(
                property_name=properties.pop(), mapping=mapping
            )
        return schema

    def _with_metadata(self, schema: Schema, descriptor: TypeDescriptor) -> Schema:
        if descriptor.metadata:
            constraints, _ = collect_constraints(list(descriptor.metadata))
            apply_constraints(schema, constraints)
        return schema
