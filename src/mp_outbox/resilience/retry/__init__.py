"""Resilience – backoff strategies."""
from mp_outbox.resilience.retry.backoff import BackoffStrategy, ConstantBackoff, ExponentialBackoff

__all__ = ["BackoffStrategy", "ConstantBackoff", "ExponentialBackoff"]
