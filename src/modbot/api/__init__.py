"""
HTTP surface for ModBot.

- **app.py**: ``create_app`` factory, request id and rate limit middleware,
  error envelopes.
- **security.py**: API key dependency and the fixed-window rate limiter.
- **schemas.py**: Request bodies.
- **dependencies.py**: Shared application context and helpers.
- **routers/**: Moderation, metadata and warning administration routes.
"""
