"""
SnipVault Backend — Services Layer
====================================

Service Inventory:
    - query_builder:    visibility rules, filters, sort and page window (pure)
    - SnippetService:   create/get/list/update/delete/stats over a SnippetStore
    - IdentityProvider: abstract token verifier; JWTIdentityProvider is the
                        python-jose implementation

Shared by the FastAPI routes and the serverless handler.
"""
