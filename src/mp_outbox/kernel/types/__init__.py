"""Kernel types – identifier helpers."""
from mp_outbox.kernel.types.ids import new_event_id, parse_event_id

__all__ = ["new_event_id", "parse_event_id"]
