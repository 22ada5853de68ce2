"""Application layer: services, background workers and caches."""
