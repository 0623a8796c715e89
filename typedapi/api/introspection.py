"""Type descriptor walk shared by extraction, validation and schema synthesis.

Request and response types are pydantic models whose reserved fields
(``path``, ``query``, ``headers``, ``cookies``, ``body``) hold the sections.
This module turns annotations into ``TypeDescriptor`` trees and model
fields into ``FieldSpec`` records carrying wire names and constraints, so
that every consumer sees the same shape.
"""

import collections.abc
import enum
import inspect
import types
import typing
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from functools import lru_cache
from typing import Annotated, Any, Literal, Union, get_args, get_origin
from uuid import UUID

import annotated_types
from pydantic import BaseModel
from pydantic.fields import FieldInfo
from pydantic_core import core_schema

from typedapi.api.constants import SECTION_ORDER

NONE_TYPE = type(None)

_SEQUENCE_ORIGINS = frozenset(
    {
        list,
        set,
        frozenset,
        collections.abc.Sequence,
        collections.abc.MutableSequence,
        collections.abc.Set,
        collections.abc.Iterable,
        collections.abc.Collection,
    }
)
_MAPPING_ORIGINS = frozenset(
    {dict, collections.abc.Mapping, collections.abc.MutableMapping}
)


class TypeKind(enum.Enum):
    """Shape classes recognized by the walk."""

    PRIMITIVE = "primitive"
    DATETIME = "datetime"
    BYTES = "bytes"
    MODEL = "model"
    SEQUENCE = "sequence"
    UNION = "union"
    OPTIONAL = "optional"
    LITERAL = "literal"
    ENUM = "enum"
    MAPPING = "mapping"
    ANY = "any"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class TypeDescriptor:
    """Normalized view of one annotation.

    ``args`` holds child descriptors: the wrapped type for OPTIONAL, the
    element for SEQUENCE, the value type for MAPPING and the branches for
    UNION. ``name`` is only set for unions declared with the ``type``
    statement, whose ``python_type`` is then the alias itself.
    """

    kind: TypeKind
    python_type: Any
    args: tuple["TypeDescriptor", ...] = ()
    metadata: tuple[Any, ...] = ()
    values: tuple[Any, ...] = ()
    name: str | None = None

    @property
    def inner(self) -> "TypeDescriptor":
        """The first child descriptor."""
        return self.args[0]


@dataclass(frozen=True)
class DiscriminatorValue:
    """Marks the field that identifies a union branch.

    Place it on exactly one field of every branch model::

        class CardPayment(BaseModel):
            kind: Annotated[str, DiscriminatorValue("card")] = "card"

    Besides feeding the OpenAPI discriminator mapping, the marker rejects any
    other value at validation time so pydantic picks the matching branch.
    """

    value: str

    def __get_pydantic_core_schema__(
        self, source_type: Any, handler: Any
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_after_validator_function(
            self._check, handler(source_type)
        )

    def _check(self, value: Any) -> Any:
        if value != self.value:
            msg = f"expected discriminator value '{self.value}'"
            raise ValueError(msg)
        return value


@dataclass(frozen=True)
class FieldConstraints:
    """Declarative constraints collected from pydantic field metadata."""

    min_length: int | None = None
    max_length: int | None = None
    ge: Any = None
    gt: Any = None
    le: Any = None
    lt: Any = None
    multiple_of: Any = None
    pattern: str | None = None


@dataclass(frozen=True)
class FieldSpec:
    """One model field as seen on the wire."""

    name: str
    wire_name: str
    descriptor: TypeDescriptor
    required: bool
    field_info: FieldInfo
    constraints: FieldConstraints = field(default_factory=FieldConstraints)
    discriminator: str | None = None

    @property
    def annotation(self) -> Any:
        """Annotation including the field's constraints, for pydantic adapters."""
        metadata = tuple(self.field_info.metadata)
        if not metadata:
            return self.field_info.annotation
        return Annotated[(self.field_info.annotation, *metadata)]

    @property
    def description(self) -> str | None:
        """Field description, if declared."""
        return self.field_info.description


def _is_type_alias(annotation: Any) -> bool:
    return isinstance(annotation, typing.TypeAliasType)


def describe_type(annotation: Any) -> TypeDescriptor:
    """Classify an annotation into a ``TypeDescriptor`` tree.

    Args:
        annotation: Any type annotation.

    Returns:
        TypeDescriptor: The normalized descriptor.
    """
    metadata: tuple[Any, ...] = ()
    if get_origin(annotation) is Annotated:
        annotation, *extra = get_args(annotation)
        metadata = tuple(extra)

    if _is_type_alias(annotation):
        descriptor = describe_type(annotation.__value__)
        if descriptor.kind is TypeKind.UNION:
            descriptor = replace(
                descriptor, python_type=annotation, name=annotation.__name__
            )
        elif (
            descriptor.kind is TypeKind.OPTIONAL
            and descriptor.inner.kind is TypeKind.UNION
        ):
            named = replace(
                descriptor.inner, python_type=annotation, name=annotation.__name__
            )
            descriptor = replace(descriptor, args=(named,))
        return replace(descriptor, metadata=descriptor.metadata + metadata)

    if annotation is Any:
        return TypeDescriptor(TypeKind.ANY, annotation, metadata=metadata)

    origin = get_origin(annotation)
    if origin in (Union, types.UnionType):
        return _describe_union(annotation, metadata)
    if origin is Literal:
        return TypeDescriptor(
            TypeKind.LITERAL, annotation, metadata=metadata, values=get_args(annotation)
        )
    if origin in _SEQUENCE_ORIGINS or annotation in (list, set, frozenset):
        args = get_args(annotation)
        item = describe_type(args[0] if args else Any)
        return TypeDescriptor(TypeKind.SEQUENCE, annotation, (item,), metadata)
    if origin is tuple or annotation is tuple:
        args = get_args(annotation)
        if not args or (len(args) == 2 and args[1] is Ellipsis):  # noqa: PLR2004
            item = describe_type(args[0] if args else Any)
            return TypeDescriptor(TypeKind.SEQUENCE, annotation, (item,), metadata)
        return TypeDescriptor(TypeKind.UNSUPPORTED, annotation, metadata=metadata)
    if origin in _MAPPING_ORIGINS or annotation is dict:
        args = get_args(annotation)
        value = describe_type(args[1] if len(args) == 2 else Any)  # noqa: PLR2004
        return TypeDescriptor(TypeKind.MAPPING, annotation, (value,), metadata)

    if inspect.isclass(annotation):
        return _describe_class(annotation, metadata)
    return TypeDescriptor(TypeKind.UNSUPPORTED, annotation, metadata=metadata)


def _describe_union(annotation: Any, metadata: tuple[Any, ...]) -> TypeDescriptor:
    args = get_args(annotation)
    branches = [arg for arg in args if arg is not NONE_TYPE]
    if len(branches) == 1:
        inner = describe_type(branches[0])
    else:
        inner = TypeDescriptor(
            TypeKind.UNION,
            annotation,
            tuple(describe_type(branch) for branch in branches),
        )
    if len(branches) != len(args):
        return TypeDescriptor(TypeKind.OPTIONAL, annotation, (inner,), metadata)
    return replace(inner, metadata=inner.metadata + metadata)


def _describe_class(annotation: type, metadata: tuple[Any, ...]) -> TypeDescriptor:
    if issubclass(annotation, BaseModel):
        return TypeDescriptor(TypeKind.MODEL, annotation, metadata=metadata)
    if issubclass(annotation, enum.Enum):
        return TypeDescriptor(
            TypeKind.ENUM,
            annotation,
            metadata=metadata,
            values=tuple(member.value for member in annotation),
        )
    if issubclass(annotation, (bytes, bytearray)):
        return TypeDescriptor(TypeKind.BYTES, annotation, metadata=metadata)
    if issubclass(annotation, (datetime, date)):
        return TypeDescriptor(TypeKind.DATETIME, annotation, metadata=metadata)
    if issubclass(annotation, (bool, int, float, str, Decimal, UUID)):
        return TypeDescriptor(TypeKind.PRIMITIVE, annotation, metadata=metadata)
    return TypeDescriptor(TypeKind.UNSUPPORTED, annotation, metadata=metadata)


def is_scalar(descriptor: TypeDescriptor) -> bool:
    """Whether a descriptor can be coerced from a single string."""
    return descriptor.kind in (
        TypeKind.PRIMITIVE,
        TypeKind.DATETIME,
        TypeKind.LITERAL,
        TypeKind.ENUM,
    )


def is_anonymous(tp: type) -> bool:
    """Whether a model is declared inline, inside another class body.

    Inline models are never registered as components; they are always
    expanded where they are used.
    """
    parts = tp.__qualname__.split(".")
    return len(parts) > 1 and parts[-2] != "<locals>"


def wire_name(name: str, field_info: FieldInfo) -> str:
    """Name a field carries on the wire: alias, serialization alias, then name."""
    if isinstance(field_info.alias, str) and field_info.alias:
        return field_info.alias
    serialization_alias = field_info.serialization_alias
    if isinstance(serialization_alias, str) and serialization_alias:
        return serialization_alias
    return name


def validation_key(spec: FieldSpec) -> str:
    """Key pydantic expects for a field when validating a plain dict."""
    info = spec.field_info
    if isinstance(info.validation_alias, str):
        return info.validation_alias
    if isinstance(info.alias, str) and info.alias:
        return info.alias
    return spec.name


def collect_constraints(items: list[Any]) -> tuple[FieldConstraints, str | None]:
    """Field constraints and discriminator from ``Annotated`` metadata."""
    values: dict[str, Any] = {}
    discriminator = None
    for item in items:
        if isinstance(item, DiscriminatorValue):
            discriminator = item.value
        elif isinstance(item, annotated_types.MinLen):
            values["min_length"] = item.min_length
        elif isinstance(item, annotated_types.MaxLen):
            values["max_length"] = item.max_length
        elif isinstance(item, annotated_types.Ge):
            values["ge"] = item.ge
        elif isinstance(item, annotated_types.Gt):
            values["gt"] = item.gt
        elif isinstance(item, annotated_types.Le):
            values["le"] = item.le
        elif isinstance(item, annotated_types.Lt):
            values["lt"] = item.lt
        elif isinstance(item, annotated_types.MultipleOf):
            values["multiple_of"] = item.multiple_of
        elif isinstance(item, annotated_types.GroupedMetadata):
            nested, nested_discriminator = collect_constraints(list(item))
            values.update(
                {key: val for key, val in vars(nested).items() if val is not None}
            )
            discriminator = discriminator or nested_discriminator
        elif isinstance(getattr(item, "pattern", None), str):
            values["pattern"] = item.pattern
    return FieldConstraints(**values), discriminator


@lru_cache(maxsize=512)
def model_fields(model: type[BaseModel]) -> tuple[FieldSpec, ...]:
    """Ordered field specs of a pydantic model.

    Args:
        model: A pydantic model class.

    Returns:
        tuple[FieldSpec, ...]: One spec per declared field.
    """
    specs = []
    for name, info in model.model_fields.items():
        constraints, discriminator = collect_constraints(list(info.metadata))
        specs.append(
            FieldSpec(
                name=name,
                wire_name=wire_name(name, info),
                descriptor=describe_type(info.annotation),
                required=info.is_required(),
                field_info=info,
                constraints=constraints,
                discriminator=discriminator,
            )
        )
    return tuple(specs)


def request_sections(model: type[BaseModel]) -> dict[str, FieldSpec]:
    """Declared sections of a request or response model, in canonical order.

    Args:
        model: A request or response model.

    Returns:
        dict[str, FieldSpec]: Section name to the field holding it.
    """
    by_name = {spec.name: spec for spec in model_fields(model)}
    return {name: by_name[name] for name in SECTION_ORDER if name in by_name}


def section_model(spec: FieldSpec) -> type[BaseModel] | None:
    """Model class held by a section field, unwrapping ``Optional``."""
    descriptor = spec.descriptor
    if descriptor.kind is TypeKind.OPTIONAL:
        descriptor = descriptor.inner
    if descriptor.kind is TypeKind.MODEL:
        return descriptor.python_type
    return None


def is_raw_body(spec: FieldSpec) -> bool:
    """Whether a body section captures the raw request bytes."""
    descriptor = spec.descriptor
    if descriptor.kind is TypeKind.OPTIONAL:
        descriptor = descriptor.inner
    return descriptor.kind is TypeKind.BYTES
