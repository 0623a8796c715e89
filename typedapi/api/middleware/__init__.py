"""Middleware and exception handlers for typedapi applications.

- **RequestContextMiddleware**: correlation ids and access logging
- **error_handler**: maps exceptions to ``ErrorResponse`` bodies
"""
