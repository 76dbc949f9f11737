"""
SnipVault Backend — Middleware Package
========================================

Cross-cutting request handling shared by every route.

Execution order (outermost first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    - Rate limit first: abusive clients are turned away before any work
    - Request ID before logging so every access line carries the ID
    - CORS innermost; it answers preflight OPTIONS itself
"""
