"""typedapi - typed request handling and OpenAPI synthesis for FastAPI services.

Service authors write plain functions ``handler(ctx, request) -> response``
over pydantic models split into named sections, and typedapi provides:

- **Extraction**: path, query, headers, cookies and body pulled into the
  request model, with deterministic primitive coercion
- **Validation**: declarative pydantic constraints plus section-level and
  request-level custom checks, aggregated per section
- **Responses**: body serialization and header/cookie propagation
- **OpenAPI 3.1**: a document synthesized from the registered routes
- **Webhooks**: provider verification and typed per-event dispatch

Layout:
- **core**: configuration, exceptions, logging and request context
- **api**: section convention, registry, router and schema synthesis
- **webhooks**: provider abstraction, dispatch registry and providers
"""
