"""Room message endpoints."""
