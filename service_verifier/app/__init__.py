"""
Verifier Service package.

This package exposes the FastAPI application that checks opaque bearer
tokens against an upstream identity API and keeps track of the ones that
verified successfully.

- app.main: Application entrypoint that wires routes and lifecycle.
- app.pipeline: Facade behind the single and bulk check operations.
- app.verification: Upstream client and the result models.
- app.batch: Sequential, paced processing of token lists.
- app.store: Verified-record stores.
- app.audit: Secret redaction and the outbound audit webhook.

Design notes:
- Module import must not perform network calls. All IO happens in route
  handlers or in the lifespan hooks.
- Use the shared/ utilities for logging, metrics, and errors.
"""
