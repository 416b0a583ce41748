"""Repository implementations (Oracle and in-memory)."""
