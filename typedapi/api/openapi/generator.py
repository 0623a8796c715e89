"""OpenAPI document generation from a ``RouteRegistry``.

The document is rebuilt from the registry on every call. For a fixed set of
registrations in a fixed order the output is identical from one call to
the next.
"""

import inspect
import re
from collections.abc import Callable
from typing import Any

from loguru import logger
from pydantic import BaseModel

from typedapi.api.constants import (
    API_KEY_HEADER,
    BODY_SECTION,
    COOKIES_SECTION,
    DEFAULT_DOCUMENT_TITLE,
    DEFAULT_DOCUMENT_VERSION,
    HEADERS_SECTION,
    PATH_SECTION,
    QUERY_SECTION,
    RESPONSE_REF_PREFIX,
)
from typedapi.api.introspection import (
    FieldSpec,
    is_anonymous,
    is_raw_body,
    model_fields,
    request_sections,
    section_model,
)
from typedapi.api.openapi.builder import SchemaBuilder
from typedapi.api.openapi.content import binary_content, json_content
from typedapi.api.openapi.models import (
    Header,
    Info,
    MediaType,
    OpenAPIDocument,
    Operation,
    Parameter,
    PathItem,
    RequestBody,
    ResponseObject,
    Schema,
    SecurityScheme,
)
from typedapi.api.openapi.webhooks import build_webhook_operation
from typedapi.api.options import SecurityRequirement
from typedapi.api.registry import RouteInfo, RouteRegistry
from typedapi.api.schemas.errors import ErrorResponse, ValidationErrorResponse

type RouteFilter = Callable[[RouteInfo], bool]

_PATH_PARAM = re.compile(r"\{([^}:]+)(?::[^}]*)?\}")

_PARAMETER_SECTIONS = (
    (PATH_SECTION, "path"),
    (QUERY_SECTION, "query"),
    (HEADERS_SECTION, "header"),
    (COOKIES_SECTION, "cookie"),
)

SECURITY_SCHEMES: dict[str, tuple[str, SecurityScheme]] = {
    "basic": ("BasicAuth", SecurityScheme(type="http", scheme="basic")),
    "bearer": ("BearerAuth", SecurityScheme(type="http", scheme="bearer")),
    "apiKey": (
        "ApiKeyAuth",
        SecurityScheme(type="apiKey", in_="header", name=API_KEY_HEADER),
    ),
}


def default_route_filter(route: RouteInfo) -> bool:
    """Hide routes that serve the OpenAPI document itself."""
    return route.response_type is not OpenAPIDocument


def openapi_path(path: str) -> str:
    """Strip Starlette converters: ``/users/{id:int}`` -> ``/users/{id}``."""
    return _PATH_PARAM.sub(r"{\1}", path)


def path_parameter_names(path: str) -> list[str]:
    """Names of the ``{variables}`` in a route path, in order."""
    return _PATH_PARAM.findall(path)


def split_docstring(target: Any) -> tuple[str | None, str | None]:
    """Summary line and remaining description of a callable's docstring."""
    doc = inspect.getdoc(target)
    if not doc:
        return None, None
    summary, _, rest = doc.partition("\n")
    return summary.strip() or None, rest.strip() or None


def body_component_name(request_type: type[BaseModel]) -> str:
    """``CreateUserRequest`` -> ``CreateUserBody``."""
    return request_type.__name__.removesuffix("Request") + "Body"


class OperationGenerator:
    """Builds one ``Operation`` per registered route."""

    def __init__(self, builder: SchemaBuilder) -> None:
        self.builder = builder
        self.components = builder.components

    def build(self, route: RouteInfo) -> Operation:
        operation = Operation(
            operation_id=route.handler_name,
            tags=list(route.options.tags) or None,
        )
        if route.webhook is not None:
            return build_webhook_operation(route, operation, self)

        operation.summary, operation.description = split_docstring(route.handler)
        parameters: list[Parameter] = []
        if route.request_type is not None:
            parameters = self.parameters(route.request_type)
            operation.request_body = self.request_body(route.request_type)
        parameters.extend(self.template_parameters(route.path, parameters))
        operation.parameters = parameters or None

        self.add_responses(route.response_type, operation)
        self.add_security(route.options.security, operation)
        self.add_standard_error_responses(operation)
        return operation

    def parameters(self, request_type: type[BaseModel]) -> list[Parameter]:
        """Path, query, header and cookie parameters, in that order."""
        sections = request_sections(request_type)
        parameters = []
        for section, location in _PARAMETER_SECTIONS:
            spec = sections.get(section)
            model = section_model(spec) if spec is not None else None
            if model is None:
                continue
            parameters.extend(
                self._parameter(field, location) for field in model_fields(model)
            )
        return parameters

    def _parameter(self, spec: FieldSpec, location: str) -> Parameter:
        return Parameter(
            name=spec.wire_name,
            in_=location,
            required=location == "path" or spec.required,
            description=spec.description,
            schema_=self.builder.field_schema(spec, nullable=False),
        )

    @staticmethod
    def template_parameters(path: str, declared: list[Parameter]) -> list[Parameter]:
        """Required string parameters for path variables no section declares."""
        known = {param.name for param in declared if param.in_ == "path"}
        return [
            Parameter(
                name=name, in_="path", required=True, schema_=Schema(type="string")
            )
            for name in path_parameter_names(path)
            if name not in known
        ]

    def request_body(self, request_type: type[BaseModel]) -> RequestBody | None:
        """Request body for a request type, or ``None`` without a Body section."""
        spec = request_sections(request_type).get(BODY_SECTION)
        if spec is None:
            return None
        if is_raw_body(spec):
            return RequestBody(required=spec.required, content=binary_content())

        model = section_model(spec)
        if model is None:
            schema = self.builder.field_schema(spec, nullable=False)
        elif is_anonymous(model):
            schema = self.builder.named_schema(
                model, name=body_component_name(request_type)
            )
        else:
            schema = self.builder.model_schema(model)
        return RequestBody(required=spec.required, content=json_content(schema))

    def add_responses(self, response_type: type | None, operation: Operation) -> None:
        """Success response: 200 with the body, or 204 when there is none."""
        is_model = isinstance(response_type, type) and issubclass(
            response_type, BaseModel
        )
        if not is_model:
            operation.responses["204"] = ResponseObject(description="No Content")
            return

        sections = request_sections(response_type)
        headers = self.response_headers(sections.get(HEADERS_SECTION))
        body = sections.get(BODY_SECTION)
        if body is None:
            operation.responses["204"] = ResponseObject(
                description="No Content", headers=headers
            )
            return

        operation.responses["200"] = ResponseObject(
            description="Success",
            headers=headers,
            content=self.response_content(body),
        )

    def response_content(self, spec: FieldSpec) -> dict[str, MediaType]:
        """Media types of a response body section."""
        if is_raw_body(spec):
            return binary_content()
        model = section_model(spec)
        if model is None:
            return json_content(self.builder.field_schema(spec, nullable=False))
        return json_content(self.builder.model_schema(model))

    def response_headers(self, spec: FieldSpec | None) -> dict[str, Header] | None:
        model = section_model(spec) if spec is not None else None
        if model is None:
            return None
        headers = {
            field.wire_name: Header(
                description=field.description,
                required=field.required or None,
                schema_=self.builder.field_schema(field, nullable=False),
            )
            for field in model_fields(model)
        }
        return headers or None

    def add_security(
        self, requirements: tuple[SecurityRequirement, ...], operation: Operation
    ) -> None:
        """Attach requirements and create their schemes on first use."""
        entries = []
        for requirement in requirements:
            known = SECURITY_SCHEMES.get(requirement.type)
            if known is None:
                logger.debug("Ignoring unknown security type {}", requirement.type)
                continue
            name, scheme = known
            self.components.security_schemes.setdefault(name, scheme.model_copy())
            entries.append({name: list(requirement.scopes)})
        if entries:
            operation.security = entries

    def ensure_standard_responses(self) -> None:
        responses = self.components.responses
        if "BadRequest" not in responses:
            responses["BadRequest"] = ResponseObject(
                description="Bad Request - request validation failed",
                content=json_content(self.builder.schema_for(ValidationErrorResponse)),
            )
        if "UnprocessableEntity" not in responses:
            responses["UnprocessableEntity"] = ResponseObject(
                description="Unprocessable Entity - request body could not be parsed",
                content=json_content(self.builder.schema_for(ErrorResponse)),
            )
        if "InternalServerError" not in responses:
            responses["InternalServerError"] = ResponseObject(
                description="Internal Server Error",
                content=json_content(self.builder.schema_for(ErrorResponse)),
            )

    def add_standard_error_responses(
        self, operation: Operation, codes: tuple[str, ...] = ("400", "422", "500")
    ) -> None:
        """Reference the shared 400, 422 and 500 responses from ``operation``."""
        self.ensure_standard_responses()
        names = {
            "400": "BadRequest",
            "422": "UnprocessableEntity",
            "500": "InternalServerError",
        }
        for code in codes:
            operation.responses[code] = ResponseObject(
                ref=RESPONSE_REF_PREFIX + names[code]
            )


def generate_openapi(
    registry: RouteRegistry,
    *,
    title: str = DEFAULT_DOCUMENT_TITLE,
    version: str = DEFAULT_DOCUMENT_VERSION,
    route_filter: RouteFilter = default_route_filter,
) -> OpenAPIDocument:
    """Synthesize the OpenAPI document for every route the filter accepts.

    Args:
        registry: Registry holding the routes.
        title: Document title.
        version: Document version.
        route_filter: Predicate deciding which routes are documented.

    Returns:
        OpenAPIDocument: The document, with paths in sorted order.
    """
    document = OpenAPIDocument(info=Info(title=title, version=version))
    generator = OperationGenerator(SchemaBuilder(document.components))

    for route in registry.routes():
        if not route_filter(route):
            continue
        method = route.method.lower()
        if method not in PathItem.model_fields:
            logger.warning(
                "Skipping {} {}: method not representable", route.method, route.path
            )
            continue
        item = document.paths.setdefault(openapi_path(route.path), PathItem())
        setattr(item, method, generator.build(route))

    document.paths = dict(sorted(document.paths.items()))
    logger.debug(
        "Generated OpenAPI document",
        paths=len(document.paths),
        schemas=len(document.components.schemas),
    )
    return document
