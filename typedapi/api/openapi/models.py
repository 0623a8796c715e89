"""OpenAPI 3.1 document objects.

Field names follow Python conventions and are aliased to the OpenAPI keys;
``to_dict`` dumps by alias and drops unset values. Operations carry vendor
extensions (``x-...`` keys) that are merged into their serialized form.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_serializer

from typedapi.api.constants import (
    DEFAULT_DOCUMENT_TITLE,
    DEFAULT_DOCUMENT_VERSION,
    OPENAPI_VERSION,
)
from typedapi.core.types import OpenAPIFragment


class OpenAPIModel(BaseModel):
    """Base for document objects."""

    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> OpenAPIFragment:
        """JSON-ready mapping keyed by OpenAPI names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Discriminator(OpenAPIModel):
    property_name: str = Field(alias="propertyName")
    mapping: dict[str, str] | None = None


class Schema(OpenAPIModel):
    """JSON Schema subset used by the synthesizer."""

    ref: str | None = Field(default=None, alias="$ref")
    title: str | None = None
    description: str | None = None
    type: str | list[str] | None = None
    format: str | None = None
    properties: dict[str, "Schema"] | None = None
    required: list[str] | None = None
    items: "Schema | None" = None
    additional_properties: "Schema | bool | None" = Field(
        default=None, alias="additionalProperties"
    )
    one_of: list["Schema"] | None = Field(default=None, alias="oneOf")
    any_of: list["Schema"] | None = Field(default=None, alias="anyOf")
    discriminator: Discriminator | None = None
    enum: list[Any] | None = None
    minimum: int | float | None = None
    maximum: int | float | None = None
    exclusive_minimum: int | float | None = Field(
        default=None, alias="exclusiveMinimum"
    )
    exclusive_maximum: int | float | None = Field(
        default=None, alias="exclusiveMaximum"
    )
    multiple_of: int | float | None = Field(default=None, alias="multipleOf")
    min_length: int | None = Field(default=None, alias="minLength")
    max_length: int | None = Field(default=None, alias="maxLength")
    min_items: int | None = Field(default=None, alias="minItems")
    max_items: int | None = Field(default=None, alias="maxItems")
    pattern: str | None = None

    @property
    def has_structure(self) -> bool:
        """Whether the schema is a reference or an object-like composite."""
        return bool(
            self.ref
            or self.one_of
            or self.any_of
            or self.properties is not None
            or self.type == "object"
        )


class Header(OpenAPIModel):
    description: str | None = None
    required: bool | None = None
    schema_: Schema | None = Field(default=None, alias="schema")


class MediaType(OpenAPIModel):
    schema_: Schema | None = Field(default=None, alias="schema")


class Parameter(OpenAPIModel):
    name: str
    in_: str = Field(alias="in")
    required: bool = False
    description: str | None = None
    schema_: Schema | None = Field(default=None, alias="schema")


class RequestBody(OpenAPIModel):
    description: str | None = None
    required: bool | None = None
    content: dict[str, MediaType] = Field(default_factory=dict)


class ResponseObject(OpenAPIModel):
    ref: str | None = Field(default=None, alias="$ref")
    description: str | None = None
    headers: dict[str, Header] | None = None
    content: dict[str, MediaType] | None = None


class SecurityScheme(OpenAPIModel):
    type: str
    scheme: str | None = None
    in_: str | None = Field(default=None, alias="in")
    name: str | None = None


class Operation(OpenAPIModel):
    operation_id: str | None = Field(default=None, alias="operationId")
    summary: str | None = None
    description: str | None = None
    tags: list[str] | None = None
    security: list[dict[str, list[str]]] | None = None
    parameters: list[Parameter] | None = None
    request_body: RequestBody | None = Field(default=None, alias="requestBody")
    responses: dict[str, ResponseObject] = Field(default_factory=dict)
    extensions: dict[str, Any] = Field(default_factory=dict, exclude=True)

    @model_serializer(mode="wrap")
    def _merge_extensions(self, handler: Any) -> dict[str, Any]:
        data = handler(self)
        data.update(self.extensions)
        return data


class PathItem(OpenAPIModel):
    get: Operation | None = None
    put: Operation | None = None
    post: Operation | None = None
    delete: Operation | None = None
    options: Operation | None = None
    head: Operation | None = None
    patch: Operation | None = None


class Components(OpenAPIModel):
    schemas: dict[str, Schema] = Field(default_factory=dict)
    responses: dict[str, ResponseObject] = Field(default_factory=dict)
    security_schemes: dict[str, SecurityScheme] = Field(
        default_factory=dict, alias="securitySchemes"
    )

    @model_serializer(mode="wrap")
    def _drop_empty(self, handler: Any) -> dict[str, Any]:
        return {key: value for key, value in handler(self).items() if value}


class Info(OpenAPIModel):
    title: str = DEFAULT_DOCUMENT_TITLE
    version: str = DEFAULT_DOCUMENT_VERSION
    description: str | None = None


class OpenAPIDocument(OpenAPIModel):
    """A complete OpenAPI 3.1 document."""

    openapi: str = OPENAPI_VERSION
    info: Info = Field(default_factory=Info)
    paths: dict[str, PathItem] = Field(default_factory=dict)
    components: Components = Field(default_factory=Components)
