"""HTTP layer: FastAPI app, gateway middleware, routes."""
