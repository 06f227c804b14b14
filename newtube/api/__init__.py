"""HTTP API (FastAPI routers, dependencies and wire schemas)."""
