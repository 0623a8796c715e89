"""OpenAPI 3.1 document synthesis from the route registry."""

from typedapi.api.openapi.builder import SchemaBuilder, make_nullable
from typedapi.api.openapi.generator import default_route_filter, generate_openapi
from typedapi.api.openapi.models import OpenAPIDocument, Schema
from typedapi.api.openapi.naming import unique_schema_name

__all__ = [
    "OpenAPIDocument",
    "Schema",
    "SchemaBuilder",
    "default_route_filter",
    "generate_openapi",
    "make_nullable",
    "unique_schema_name",
]
