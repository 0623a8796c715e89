"""Section extraction: raw Starlette request to an unvalidated request model.

Each declared section is filled independently, in the order Path, Query,
Headers, Cookies, Body:

- path values come from the matched route parameters
- query, header and cookie values come from the transport, empty query and
  header values counting as absent
- the body is either the raw bytes or a JSON object decoded with orjson

Scalars are coerced here with fixed, locale-independent rules; custom types
go through a ``ConverterRegistry``. Nothing is validated: sections are
built with ``model_construct`` and constraint checks are left to the
validation pipeline. Fields of a shape that cannot come from a string
(nested models, mappings, sequences of records) are left unset.
"""

import inspect
import re
from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Final
from uuid import UUID

import orjson
from loguru import logger
from pydantic import BaseModel
from starlette.requests import ClientDisconnect, Request

from typedapi.api.constants import (
    BODY_SECTION,
    COOKIES_SECTION,
    HEADERS_SECTION,
    PATH_SECTION,
    QUERY_SECTION,
    REQUEST_BODY_METHODS,
)
from typedapi.api.introspection import (
    FieldSpec,
    TypeDescriptor,
    TypeKind,
    is_raw_body,
    is_scalar,
    model_fields,
    request_sections,
    section_model,
)
from typedapi.core.exceptions import ConfigurationError, ExtractionError

type Converter = Callable[[Any, str], Any]

TRUE_VALUES: Final = frozenset({"1", "t", "true", "yes"})
FALSE_VALUES: Final = frozenset({"0", "f", "false", "no"})

# ASCII only, no whitespace or digit separators
INTEGER_PATTERN: Final = re.compile(r"[+-]?[0-9]+")
FLOAT_PATTERN: Final = re.compile(
    r"[+-]?(?:(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf|infinity|nan)",
    re.IGNORECASE,
)


class _Unset:
    """Sentinel for values the extractor leaves out of the section."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Final = _Unset()


class CoercionError(ValueError):
    """A raw string could not be turned into the declared type."""


class ConverterRegistry:
    """Converters for custom field types, keyed by target type.

    A converter has the shape ``converter(ctx, raw) -> value`` and may raise
    to reject the input; its message is reported as an extraction error.
    """

    def __init__(self) -> None:
        self._converters: dict[Any, Converter] = {}

    def register(self, target: Any, converter: Converter) -> None:
        """Register ``converter`` for fields annotated with ``target``.

        Raises:
            ConfigurationError: If the converter does not take ``(ctx, raw)``.
        """
        if not callable(converter):
            msg = f"converter for {target!r} must be callable"
            raise ConfigurationError(msg)
        params = [
            param
            for param in inspect.signature(converter).parameters.values()
            if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD)
        ]
        if len(params) != 2:  # noqa: PLR2004
            msg = (
                f"converter for {target!r} must accept (ctx, raw), "
                f"got {len(params)} positional parameters"
            )
            raise ConfigurationError(msg)
        self._converters[target] = converter

    def get(self, target: Any) -> Converter | None:
        """The converter registered for ``target``, if any."""
        return self._converters.get(target)

    def has(self, target: Any) -> bool:
        """Whether a converter is registered for ``target``."""
        return target in self._converters

    def registered_types(self) -> list[Any]:
        """Target types with a converter, in registration order."""
        return list(self._converters)


def parse_bool(raw: str) -> bool:
    """Parse a boolean the way query strings spell them."""
    lowered = raw.lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    msg = f"invalid boolean value: {raw}"
    raise CoercionError(msg)


def coerce_scalar(descriptor: TypeDescriptor, raw: str) -> Any:  # noqa: PLR0911
    """Coerce one raw string to a scalar descriptor's type.

    Args:
        descriptor: A primitive, datetime, literal or enum descriptor.
        raw: The raw transport value.

    Returns:
        Any: The coerced value.

    Raises:
        CoercionError: If the string does not parse.
    """
    tp = descriptor.python_type
    if descriptor.kind is TypeKind.LITERAL:
        for value in descriptor.values:
            if str(value) == raw:
                return value
        msg = f"invalid value: {raw}"
        raise CoercionError(msg)
    if descriptor.kind is TypeKind.ENUM:
        for member in tp:
            if str(member.value) == raw:
                return member
        msg = f"invalid value: {raw}"
        raise CoercionError(msg)
    if descriptor.kind is TypeKind.DATETIME:
        try:
            if issubclass(tp, datetime):
                return datetime.fromisoformat(raw)
            return date.fromisoformat(raw)
        except ValueError as exc:
            msg = f"invalid datetime value: {raw}"
            raise CoercionError(msg) from exc

    if issubclass(tp, bool):
        return parse_bool(raw)
    if issubclass(tp, int):
        if not INTEGER_PATTERN.fullmatch(raw):
            msg = f"invalid integer value: {raw}"
            raise CoercionError(msg)
        return tp(raw)
    if issubclass(tp, float):
        if not FLOAT_PATTERN.fullmatch(raw):
            msg = f"invalid float value: {raw}"
            raise CoercionError(msg)
        return tp(raw)
    if issubclass(tp, Decimal):
        if not FLOAT_PATTERN.fullmatch(raw):
            msg = f"invalid decimal value: {raw}"
            raise CoercionError(msg)
        return tp(raw)
    if issubclass(tp, UUID):
        try:
            return tp(raw)
        except ValueError as exc:
            msg = f"invalid uuid value: {raw}"
            raise CoercionError(msg) from exc
    return tp(raw)


def split_values(raw_values: list[str]) -> list[str]:
    """Repeated keys as-is; a single value is split on commas and trimmed."""
    if len(raw_values) == 1:
        return [part.strip() for part in raw_values[0].split(",") if part.strip()]
    return raw_values


class SectionExtractor:
    """Fill request models from Starlette requests.

    Args:
        converters: Registry consulted before the built-in coercions.
    """

    def __init__(self, converters: ConverterRegistry | None = None) -> None:
        self.converters = converters or ConverterRegistry()

    async def extract(
        self, ctx: Any, request_type: type[BaseModel], request: Request
    ) -> BaseModel:
        """Build an unvalidated ``request_type`` instance from ``request``.

        Args:
            ctx: Handler context passed to converters.
            request_type: The request model declaring the sections.
            request: The incoming Starlette request.

        Returns:
            BaseModel: The request with every present section populated.

        Raises:
            ExtractionError: If a section cannot be parsed.
        """
        if not (isinstance(request_type, type) and issubclass(request_type, BaseModel)):
            msg = f"request type {request_type!r} is not a pydantic model"
            raise ConfigurationError(msg)

        sections: dict[str, Any] = {}
        for name, spec in request_sections(request_type).items():
            try:
                value = await self._extract_section(ctx, name, spec, request)
            except CoercionError as exc:
                msg = f"failed to parse {name} section: {exc}"
                raise ExtractionError(
                    msg, context={"section": name}, cause=exc
                ) from exc
            if value is not UNSET:
                sections[name] = value

        logger.debug(
            "Extracted {} sections for {}",
            len(sections),
            request_type.__name__,
            sections=list(sections),
        )
        return request_type.model_construct(**sections)

    async def _extract_section(
        self, ctx: Any, name: str, spec: FieldSpec, request: Request
    ) -> Any:
        if name == BODY_SECTION:
            return await self._extract_body(spec, request)

        model = section_model(spec)
        if model is None:
            return UNSET
        lookup = self._lookup(name, request)
        return self.populate(ctx, model, lookup)

    @staticmethod
    def _lookup(name: str, request: Request) -> Callable[[str], list[str]]:
        if name == PATH_SECTION:

            def from_path(key: str) -> list[str]:
                value = request.path_params.get(key)
                return [] if value is None or value == "" else [str(value)]

            return from_path
        if name == QUERY_SECTION:
            return lambda key: [v for v in request.query_params.getlist(key) if v != ""]
        if name == HEADERS_SECTION:
            return lambda key: [v for v in request.headers.getlist(key) if v != ""]
        if name == COOKIES_SECTION:

            def from_cookies(key: str) -> list[str]:
                value = request.cookies.get(key)
                return [] if value is None else [value]

            return from_cookies
        msg = f"unknown section: {name}"
        raise ConfigurationError(msg)

    def populate(
        self,
        ctx: Any,
        model: type[BaseModel],
        lookup: Callable[[str], list[str]],
    ) -> BaseModel:
        """Construct a parameter section from a wire-name lookup.

        Args:
            ctx: Handler context passed to converters.
            model: The section model.
            lookup: Returns the raw values present for a wire name.

        Returns:
            BaseModel: The constructed, unvalidated section.
        """
        values: dict[str, Any] = {}
        for spec in model_fields(model):
            raw_values = lookup(spec.wire_name)
            if not raw_values:
                continue
            value = self.convert(ctx, spec.descriptor, raw_values)
            if value is UNSET:
                logger.debug(
                    "Leaving field {} unset: unsupported type",
                    spec.name,
                    field_type=repr(spec.descriptor.python_type),
                )
                continue
            values[spec.name] = value
        return model.model_construct(**values)

    def convert(
        self, ctx: Any, descriptor: TypeDescriptor, raw_values: list[str]
    ) -> Any:
        """Convert raw transport strings to a descriptor's type.

        Returns ``UNSET`` for shapes that cannot be built from strings.
        """
        if descriptor.kind is TypeKind.OPTIONAL:
            descriptor = descriptor.inner

        if descriptor.kind is TypeKind.SEQUENCE:
            item = descriptor.inner
            convertible = self._converter_for(item) or is_scalar(item)
            if not (convertible or item.kind is TypeKind.ANY):
                return UNSET
            values = split_values(raw_values)
            return [self._convert_one(ctx, item, raw) for raw in values]
        if (
            self._converter_for(descriptor)
            or is_scalar(descriptor)
            or descriptor.kind is TypeKind.ANY
        ):
            return self._convert_one(ctx, descriptor, raw_values[0])
        return UNSET

    def _converter_for(self, descriptor: TypeDescriptor) -> Converter | None:
        try:
            return self.converters.get(descriptor.python_type)
        except TypeError:
            # unhashable annotations cannot have converters
            return None

    def _convert_one(self, ctx: Any, descriptor: TypeDescriptor, raw: str) -> Any:
        converter = self._converter_for(descriptor)
        if converter is not None:
            try:
                return converter(ctx, raw)
            except Exception as exc:
                raise CoercionError(str(exc)) from exc
        if descriptor.kind is TypeKind.ANY:
            return raw
        return coerce_scalar(descriptor, raw)

    async def _extract_body(self, spec: FieldSpec, request: Request) -> Any:
        if is_raw_body(spec):
            try:
                return await request.body()
            except (ClientDisconnect, OSError, RuntimeError) as exc:
                msg = "failed to parse body section: failed to read request body"
                raise ExtractionError(
                    msg, context={"section": BODY_SECTION}, cause=exc
                ) from exc

        model = section_model(spec)
        if model is None:
            return UNSET
        if request.method.upper() not in REQUEST_BODY_METHODS:
            return model.model_construct()

        try:
            raw = await request.body()
        except (ClientDisconnect, OSError, RuntimeError) as exc:
            msg = "failed to parse body section: failed to read request body"
            raise ExtractionError(
                msg, context={"section": BODY_SECTION}, cause=exc
            ) from exc
        if not raw:
            return model.model_construct()

        try:
            payload = orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            msg = "failed to parse body section: failed to decode JSON body"
            raise ExtractionError(
                msg, context={"section": BODY_SECTION}, cause=exc
            ) from exc
        if not isinstance(payload, dict):
            msg = "failed to parse body section: failed to decode JSON body"
            raise ExtractionError(msg, context={"section": BODY_SECTION})

        values = {}
        for field_spec in model_fields(model):
            if field_spec.wire_name in payload:
                values[field_spec.name] = payload[field_spec.wire_name]
            elif field_spec.name in payload:
                values[field_spec.name] = payload[field_spec.name]
        return model.model_construct(**values)
