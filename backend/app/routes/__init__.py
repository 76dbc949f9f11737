"""
SnipVault Backend — API Routes Package
========================================

Route Inventory:
    - snippets.py: GET/POST /api/snippets, GET/PUT/DELETE /api/snippets/{id}
    - stats.py:    GET /api/stats
    - health.py:   GET /health

Routes are thin: parse the request, resolve the caller, call SnippetService.
"""
