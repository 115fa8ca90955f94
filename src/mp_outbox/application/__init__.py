"""Application layer – outbox relay, idempotent consumers and derived-state maintainers."""
