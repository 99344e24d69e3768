"""Chagourtee chat backend: HTTP API and realtime fan-out."""
