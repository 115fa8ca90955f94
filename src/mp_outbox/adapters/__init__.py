"""Adapters – SQLAlchemy, Kafka, Redis and OpenTelemetry implementations of the ports."""
