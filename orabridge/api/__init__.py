"""FastAPI application (lifespan, middleware, exception handlers)."""
