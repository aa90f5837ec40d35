"""HTTP operations surface (FastAPI routers)."""
