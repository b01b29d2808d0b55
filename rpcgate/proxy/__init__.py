"""HTTP surface: RPC forwarding, middleware and the FastAPI app."""
