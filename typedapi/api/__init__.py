"""HTTP layer: typed handlers on top of FastAPI and Starlette.

Key components:
- **introspection**: type descriptors and the request section convention
- **extraction**: path, query, headers, cookies and body into request models
- **validation**: the three-tier pipeline and its error aggregation
- **registry**: route metadata behind a readers-writer lock
- **router**: handler registration and the per-request endpoint
- **responses**: response models into HTTP responses
- **openapi**: OpenAPI 3.1 synthesis from the route registry
- **middleware**: request context and centralized error handling
- **main**: application factory and lifecycle

Handlers stay plain functions over pydantic models; everything HTTP-shaped
is derived from the section layout of their request and response types.
"""
