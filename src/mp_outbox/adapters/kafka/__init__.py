"""Kafka adapter – broker publish and subscription via aiokafka."""
from mp_outbox.adapters.kafka.consumer import KafkaDelivery, KafkaSubscription
from mp_outbox.adapters.kafka.producer import KafkaBroker

__all__ = ["KafkaBroker", "KafkaDelivery", "KafkaSubscription"]
