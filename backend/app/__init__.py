"""
SnipVault Backend — Application Package
=========================================

A multi-user code snippet vault: owners store snippets privately or share them
publicly; anyone can browse the public ones.

Layering:

    ┌─────────────────────────────────────────────────────┐
    │  Transports: routes/ (FastAPI)   serverless.py      │  ← HTTP/event shape only
    ├─────────────────────────────────────────────────────┤
    │  services/snippet_service.py                         │  ← one transaction per op
    │  services/query_builder.py                           │  ← visibility + filters
    │  services/identity_base.py, jwt_identity.py          │  ← token → Identity
    ├─────────────────────────────────────────────────────┤
    │  models/ (SQLAlchemy)   schemas/ (pydantic)          │
    ├─────────────────────────────────────────────────────┤
    │  database.py: SnippetStore (engine lifecycle)        │
    └─────────────────────────────────────────────────────┘
"""

__version__ = "1.0.0"
