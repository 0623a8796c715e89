"""API-related constants."""

from typing import Final

# Reserved section field names, in extraction and validation order
PATH_SECTION: Final = "path"
QUERY_SECTION: Final = "query"
HEADERS_SECTION: Final = "headers"
COOKIES_SECTION: Final = "cookies"
BODY_SECTION: Final = "body"
SECTION_ORDER: Final = (
    PATH_SECTION,
    QUERY_SECTION,
    HEADERS_SECTION,
    COOKIES_SECTION,
    BODY_SECTION,
)
REQUEST_KEY: Final = "request"

# HTTP methods
REQUEST_BODY_METHODS: Final = frozenset({"POST", "PUT", "PATCH"})
READ_ONLY_METHODS: Final = frozenset({"GET", "HEAD", "OPTIONS"})

# HTTP headers
CORRELATION_ID_HEADER: Final = "X-Correlation-ID"
API_KEY_HEADER: Final = "X-API-Key"

# Public message for validation failures caused by the server
VALIDATION_SERVER_ERROR_MESSAGE: Final = "Request validation failed due to server error"

# OpenAPI
OPENAPI_VERSION: Final = "3.1.0"
DEFAULT_DOCUMENT_TITLE: Final = "Generated API"
DEFAULT_DOCUMENT_VERSION: Final = "0.1.0"
SCHEMA_REF_PREFIX: Final = "#/components/schemas/"
RESPONSE_REF_PREFIX: Final = "#/components/responses/"
