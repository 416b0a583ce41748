"""Feature routers (query, vector, sync, health)."""
