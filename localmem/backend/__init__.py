"""localmem Backend API.

FastAPI backend serving the memory store over loopback HTTP:
- Memory operations (add, list, soft delete)
- Keyword search and profile extraction
- Bearer-token auth, loopback-only CORS, request body cap
"""

from localmem.backend.app import create_app

__all__ = ["create_app"]
