"""Resilience – retry/backoff building blocks."""
