# src/libs/portools-common/portools_common/kafka_utils.py
import logging
from confluent_kafka import Producer, KafkaException
from .config import KAFKA_BOOTSTRAP_SERVERS
from .monitoring import observe_kafka_published
import json
from typing import Dict, Any, Optional, List, Tuple, Callable

logger = logging.getLogger(__name__)


class KafkaProducer:
    """
    Thin wrapper around confluent_kafka.Producer with durable defaults:
    idempotence enabled, acks=all and bounded in-flight requests, so a
    portfolio's change events land on the topic once and in order.
    """

    def __init__(self, bootstrap_servers: str = KAFKA_BOOTSTRAP_SERVERS, producer_factory=Producer):
        self.producer = None
        self.bootstrap_servers = bootstrap_servers
        self._producer_factory = producer_factory
        self._initialize_producer()

    def _initialize_producer(self):
        try:
            conf = {
                "bootstrap.servers": self.bootstrap_servers,
                "client.id": "portools-producer",

                # Reliability
                "enable.idempotence": True,
                "acks": "all",
                "retries": 5,
                "max.in.flight.requests.per.connection": 5,  # safe with idempotence

                "linger.ms": 5,
                "compression.type": "zstd",
                "delivery.timeout.ms": 120000,
                "request.timeout.ms": 30000,
            }

            self.producer = self._producer_factory(conf)
            logger.info(f"Kafka producer initialized for brokers: {self.bootstrap_servers}")
        except KafkaException as e:
            logger.error(f"Failed to initialize Kafka producer: {e}")
            self.producer = None
            raise

    def publish_message(
        self,
        topic: str,
        key: str,
        value: Dict[str, Any],
        headers: Optional[List[Tuple[str, bytes]]] = None,
        *,
        on_delivery: Optional[Callable[[bool, Optional[str]], None]] = None,
    ):
        """
        Publish a JSON message. `on_delivery(success, error_message)` is invoked
        from the delivery report once the broker acknowledges (or rejects) it.
        """
        if not self.producer:
            logger.error(f"Kafka producer not initialized. Cannot publish message to topic {topic}.")
            raise RuntimeError("Kafka producer is not initialized.")

        def delivery_report(err, msg):
            if err is not None:
                logger.error(f"Message delivery failed for topic {msg.topic()} key {msg.key()}: {err}")
                if on_delivery:
                    on_delivery(False, str(err))
            else:
                observe_kafka_published(msg.topic())
                logger.info(
                    "Message delivered",
                    extra={"topic": msg.topic(), "partition": msg.partition(), "offset": msg.offset()},
                )
                if on_delivery:
                    on_delivery(True, None)

        try:
            self.producer.produce(
                topic,
                key=key.encode("utf-8") if isinstance(key, str) else key,
                value=json.dumps(value, default=str).encode("utf-8"),
                headers=headers or [],
                callback=delivery_report,
            )
            self.producer.poll(0)
        except Exception as e:
            logger.error(f"An unexpected error occurred during message production: {e}", exc_info=True)
            raise

    def flush(self, timeout: int = 10):
        if self.producer:
            return self.producer.flush(timeout)
        return 0


_kafka_producer_instance = None


def get_kafka_producer() -> KafkaProducer:
    global _kafka_producer_instance
    if _kafka_producer_instance is None:
        _kafka_producer_instance = KafkaProducer()
    return _kafka_producer_instance
