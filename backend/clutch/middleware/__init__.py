# Middleware package init
"""
Clutch Backend — Middleware Package
=====================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters!):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Rate Limit first: reject abusive clients before any processing
    2. Request ID: correlation id for logs and error envelopes
    3. Logging: access log line carrying the request id
    4. GZip / CORS: applied by Starlette's own middleware

    Responses travel back through the chain in reverse, so the access log
    sees the final status code and the X-Request-ID header is always set.
"""
