"""Application outbox – writer, publisher and relay wiring."""
from mp_outbox.application.outbox.publisher import OutboxPublisher, PublishReport, TopicResolver
from mp_outbox.application.outbox.relay import OutboxRelay
from mp_outbox.application.outbox.writer import OutboxWriter

__all__ = ["OutboxPublisher", "OutboxRelay", "OutboxWriter", "PublishReport", "TopicResolver"]
