"""HTTP surface: FastAPI routes, middleware, templates."""
