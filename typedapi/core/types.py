"""Type aliases for JSON-shaped data passed around typedapi.

These aliases name data that cannot be typed more precisely: decoded
request payloads, synthesized OpenAPI fragments and log context.
"""

from typing import Any

# Any valid JSON value
type JsonValue = (
    dict[str, "JsonValue"] | list["JsonValue"] | str | int | float | bool | None
)

# Decoded JSON object, keyed by wire name
type JsonObject = dict[str, Any]

# Serialized OpenAPI fragment (vendor extensions, inline schemas)
type OpenAPIFragment = dict[str, Any]

# Context dictionary for structured logging
type LogContext = dict[str, Any]

# Per-section validation messages
type ValidationDetails = dict[str, list[str]]
