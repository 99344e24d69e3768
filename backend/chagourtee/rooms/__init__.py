"""Room CRUD endpoints."""
