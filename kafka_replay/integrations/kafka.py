import threading
from typing import List, Optional

from confluent_kafka import (
    OFFSET_STORED,
    Consumer,
    KafkaError,
    KafkaException,
    Producer,
    TopicPartition,
)
from confluent_kafka.admin import AdminClient, NewTopic
from loguru import logger

from kafka_replay.config import KafkaSettings
from kafka_replay.core.datatypes import RecordedMessage
from kafka_replay.core.errors import ConfigurationError, DeliveryError


def admin_client(broker: str) -> AdminClient:
    return AdminClient({"bootstrap.servers": broker})


class KafkaConsumer:
    """Single-partition consumer.

    Starts from the group's committed offset (falling back to
    ``auto.offset.reset``) until ``set_offset`` moves it.
    """

    def __init__(
        self,
        brokers: List[str],
        topic: str,
        partition: int = 0,
        group_id: Optional[str] = None,
        settings: Optional[KafkaSettings] = None,
        consumer: Optional[Consumer] = None,
    ):
        self.settings = settings or KafkaSettings()
        self.topic = topic
        self.partition = partition
        self._consumer = consumer or Consumer(
            self.settings.to_consumer_config(brokers, group_id)
        )
        self._consumer.assign([TopicPartition(topic, partition, OFFSET_STORED)])

    def set_offset(self, offset: int):
        logger.debug(f"Seeking {self.topic}[{self.partition}] to offset {offset}")
        self._consumer.assign([TopicPartition(self.topic, self.partition, offset)])

    def read_next(self, stop: Optional[threading.Event] = None) -> Optional[bytes]:
        msg = self._consumer.poll(self.settings.poll_timeout)
        if msg is None:
            return None
        if msg.error():
            if msg.error().code() == KafkaError._PARTITION_EOF:
                logger.debug("Reached end of partition")
                return None
            raise KafkaException(msg.error())
        return msg.value() or b""

    def close(self):
        self._consumer.close()


class KafkaProducer:
    def __init__(
        self,
        brokers: List[str],
        topic: str,
        settings: Optional[KafkaSettings] = None,
        producer: Optional[Producer] = None,
        admin: Optional[AdminClient] = None,
    ):
        self.settings = settings or KafkaSettings()
        self.brokers = brokers
        self.topic = topic
        self._producer = producer or Producer(self.settings.to_producer_config(brokers))
        self._admin = admin

    @property
    def admin(self) -> AdminClient:
        if self._admin is None:
            self._admin = AdminClient({"bootstrap.servers": ",".join(self.brokers)})
        return self._admin

    def ensure_topic_exists(self):
        metadata = self.admin.list_topics(
            topic=self.topic, timeout=self.settings.metadata_timeout
        )
        topic = metadata.topics.get(self.topic)
        if topic is None or topic.error is not None:
            raise ConfigurationError(f"Topic '{self.topic}' does not exist")

    def create_topic(self, num_partitions: int = 1, replication_factor: int = 1):
        futures = self.admin.create_topics(
            [
                NewTopic(
                    self.topic,
                    num_partitions=num_partitions,
                    replication_factor=replication_factor,
                )
            ]
        )
        try:
            futures[self.topic].result()
            logger.info(f"Created topic '{self.topic}'")
        except KafkaException as e:
            if e.args[0].code() == KafkaError.TOPIC_ALREADY_EXISTS:
                logger.debug(f"Topic '{self.topic}' already exists")
                return
            raise

    def _produce(self, message: RecordedMessage, on_delivery):
        timestamp_ms = int(message.timestamp.timestamp() * 1000)
        while True:
            try:
                self._producer.produce(
                    self.topic,
                    value=message.data,
                    timestamp=timestamp_ms,
                    on_delivery=on_delivery,
                )
                return
            except BufferError:
                # Local queue is full, let librdkafka drain it
                self._producer.poll(1.0)

    def publish(self, messages: List[RecordedMessage]):
        failures = []

        def delivery_report(err, msg):
            if err is not None:
                failures.append(err)

        for message in messages:
            self._produce(message, delivery_report)
        remaining = self._producer.flush(self.settings.flush_timeout)
        if remaining:
            raise DeliveryError(
                f"{remaining} messages still queued after {self.settings.flush_timeout}s",
                failed=remaining,
            )
        if failures:
            raise DeliveryError(
                f"{len(failures)} of {len(messages)} messages failed delivery: {failures[0]}",
                failed=len(failures),
            )

    def close(self):
        self._producer.flush(self.settings.flush_timeout)
