"""Media type maps shared by request bodies and responses."""

from typedapi.api.openapi.models import MediaType, Schema

JSON_CONTENT = "application/json"
BINARY_CONTENT = "application/octet-stream"


def json_content(schema: Schema) -> dict[str, MediaType]:
    return {JSON_CONTENT: MediaType(schema_=schema)}


def binary_content() -> dict[str, MediaType]:
    return {BINARY_CONTENT: MediaType(schema_=Schema(type="string", format="binary"))}
