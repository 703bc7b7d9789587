"""HTTP API server for browser clients (FastAPI)."""
