"""Shared infrastructure used by every typedapi layer.

- **config**: pydantic-settings configuration with environment overrides
- **context**: correlation id storage backed by contextvars
- **exceptions**: error codes, severities and the exception hierarchy
- **logging**: Loguru setup with console and JSON formatters
- **types**: type aliases for JSON-shaped data
"""
