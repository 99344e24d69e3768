"""User administration and registration verification endpoints."""
