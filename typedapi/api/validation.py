"""Three-tier request validation.

1. Declarative field constraints, section by section, through an injectable
   ``FieldValidator`` (pydantic by default).
2. Section-level ``validate`` hooks.
3. The request's own ``validate`` hook, then any extra rule functions.

Client failures are collected per section across every tier and raised
together as one ``RequestValidationError``. A server fault stops the
pipeline at once and is raised on its own, without the client messages
gathered so far.

A ``validate`` hook takes either no argument or the handler context::

    class Query(BaseModel):
        start: int
        end: int

        def validate(self) -> None:
            if self.end < self.start:
                raise ValidationError("end must not precede start")

Hooks report caller mistakes by raising ``ValidationError``; anything else
they raise is treated as a server fault and re-raised unchanged. Every hook
runs even when an earlier tier failed; a section that broke its declarative
checks hands its hook the record as extracted.
"""

import inspect
from collections.abc import Callable, Sequence
from typing import Any, Protocol

import pydantic
from loguru import logger
from pydantic import BaseModel, TypeAdapter

from typedapi.api.constants import REQUEST_KEY, VALIDATION_SERVER_ERROR_MESSAGE
from typedapi.api.introspection import (
    is_raw_body,
    model_fields,
    request_sections,
    validation_key,
)
from typedapi.core.exceptions import (
    RequestValidationError,
    ServerFaultError,
    ValidationError,
)
from typedapi.core.types import ValidationDetails

type Rule = Callable[[Any, BaseModel], None]


class FieldValidator(Protocol):
    """Declarative constraint checks.

    Both methods raise ``pydantic.ValidationError`` when the input breaks a
    constraint. Any other exception is treated as a server fault.
    """

    def check_value(self, value: Any, annotation: Any) -> Any:
        """Check one opaque value against an annotation."""
        ...

    def check_record(self, record: BaseModel) -> BaseModel:
        """Check a constructed section and return its validated copy."""
        ...


class PydanticFieldValidator:
    """Default ``FieldValidator`` backed by pydantic."""

    def check_value(self, value: Any, annotation: Any) -> Any:
        return TypeAdapter(annotation).validate_python(value)

    def check_record(self, record: BaseModel) -> BaseModel:
        model = type(record)
        data = {
            validation_key(spec): record.__dict__[spec.name]
            for spec in model_fields(model)
            if spec.name in record.model_fields_set and spec.name in record.__dict__
        }
        return model.model_validate(data)


def format_errors(exc: pydantic.ValidationError, prefix: str = "") -> list[str]:
    """Render pydantic errors as ``"<field> is required"`` or ``"<field>: <msg>"``.

    Args:
        exc: The pydantic error.
        prefix: Location used when an error has no location of its own.

    Returns:
        list[str]: One message per error.
    """
    messages = []
    for error in exc.errors(include_url=False):
        location = ".".join(str(part) for part in error["loc"]) or prefix
        if error["type"] == "missing":
            messages.append(f"{location} is required")
        elif location:
            messages.append(f"{location}: {error['msg']}")
        else:
            messages.append(error["msg"])
    return messages


def is_client_error(exc: BaseException) -> bool:
    """Whether an error is attributable to the caller's input."""
    return isinstance(exc, ValidationError)


def custom_validator(target: Any) -> Callable[..., Any] | None:
    """The user-defined ``validate`` hook of ``target``, if it declares one.

    pydantic's own deprecated ``BaseModel.validate`` is not a hook.
    """
    for klass in type(target).__mro__:
        if klass is BaseModel or klass is object:
            return None
        if "validate" in vars(klass):
            hook = getattr(target, "validate")
            return hook if callable(hook) else None
    return None


def _call_hook(hook: Callable[..., Any], ctx: Any) -> None:
    params = inspect.signature(hook).parameters
    if params:
        hook(ctx)
    else:
        hook()


class ValidationPipeline:
    """Runs the three validation tiers over an extracted request.

    Args:
        field_validator: Declarative checker; ``PydanticFieldValidator`` by default.
        rules: Extra request-level rules, called as ``rule(ctx, request)``.
    """

    def __init__(
        self,
        field_validator: FieldValidator | None = None,
        rules: Sequence[Rule] = (),
    ) -> None:
        self.field_validator = field_validator or PydanticFieldValidator()
        self.rules = tuple(rules)

    def validate(self, ctx: Any, request: BaseModel) -> None:
        """Validate ``request`` in place.

        Validated section records replace the constructed ones on ``request``.

        Raises:
            RequestValidationError: With every client failure, keyed by section.
            ServerFaultError: If a declarative check fails unexpectedly.
            Exception: Any non-client error raised by a hook, unchanged.
        """
        details: ValidationDetails = {}
        sections = request_sections(type(request))

        for name, spec in sections.items():
            if name not in request.__dict__:
                continue
            self._check_declarative(
                request, name, is_raw_body(spec), spec.annotation, details
            )

        for name in sections:
            value = request.__dict__.get(name)
            if value is not None:
                self._run_hook(ctx, value, name, details)

        self._run_hook(ctx, request, REQUEST_KEY, details)
        for rule in self.rules:
            self._run_rule(ctx, request, rule, details)

        if details:
            logger.debug(
                "Request validation failed for {}",
                type(request).__name__,
                sections=sorted(details),
            )
            raise RequestValidationError(details)

    def _check_declarative(
        self,
        request: BaseModel,
        name: str,
        raw_body: bool,
        annotation: Any,
        details: ValidationDetails,
    ) -> None:
        value = request.__dict__[name]
        try:
            if raw_body:
                self.field_validator.check_value(value, annotation)
            elif isinstance(value, BaseModel):
                setattr(request, name, self.field_validator.check_record(value))
        except pydantic.ValidationError as exc:
            details.setdefault(name, []).extend(format_errors(exc, prefix=name))
        except Exception as exc:
            logger.opt(exception=exc).error(
                "Field validator failed on {} section", name, section=name
            )
            msg = f"validation panic: {exc}"
            raise ServerFaultError(
                msg, public_message=VALIDATION_SERVER_ERROR_MESSAGE, cause=exc
            ) from exc

    @staticmethod
    def _run_hook(ctx: Any, target: Any, key: str, details: ValidationDetails) -> None:
        hook = custom_validator(target)
        if hook is None:
            return
        try:
            _call_hook(hook, ctx)
        except ValidationError as exc:
            details.setdefault(key, []).extend(exc.errors)
        except pydantic.ValidationError as exc:
            details.setdefault(key, []).extend(format_errors(exc))

    @staticmethod
    def _run_rule(
        ctx: Any, request: BaseModel, rule: Rule, details: ValidationDetails
    ) -> None:
        try:
            rule(ctx, request)
        except ValidationError as exc:
            details.setdefault(REQUEST_KEY, []).extend(exc.errors)
