from typing import Any, Callable, Dict, List, Optional

from confluent_kafka import KafkaException
from loguru import logger

from kafka_replay.core.datatypes import BrokerInfo, ClusterInfo, PartitionInfo, TopicInfo
from kafka_replay.core.errors import ConfigurationError


def _fetch_metadata(brokers: List[str], admin_factory: Callable[[str], Any], timeout: float):
    last_error: Optional[Exception] = None
    for broker in brokers:
        try:
            metadata = admin_factory(broker).list_topics(timeout=timeout)
        except KafkaException as e:
            logger.debug(f"Broker {broker} unreachable: {e}")
            last_error = e
            continue
        logger.debug(f"Fetched cluster metadata from {broker}")
        return metadata
    raise ConfigurationError(
        f"Failed to connect to any broker (tried: {', '.join(brokers)}): {last_error}"
    )


def build_cluster_info(metadata) -> ClusterInfo:
    """
    Assemble a ClusterInfo snapshot from confluent-kafka ``ClusterMetadata``.

    Brokers, replica ids and in-sync replica ids are sorted ascending; a broker
    is flagged as leader when it leads at least one partition.
    """
    leaders = set()
    topics: Dict[str, TopicInfo] = {}
    for name, topic in metadata.topics.items():
        partitions = {}
        for pid, partition in topic.partitions.items():
            leaders.add(partition.leader)
            partitions[pid] = PartitionInfo(
                id=pid,
                leader=partition.leader,
                replicas=sorted(partition.replicas),
                in_sync_replicas=sorted(partition.isrs),
            )
        topics[name] = TopicInfo(name=name, partitions=partitions)

    brokers = [
        BrokerInfo(
            id=broker.id,
            address=f"{broker.host}:{broker.port}",
            is_leader=broker.id in leaders,
        )
        for broker in sorted(metadata.brokers.values(), key=lambda b: b.id)
    ]
    return ClusterInfo(brokers=brokers, topics=topics)


def collect_info(
    brokers: List[str],
    admin_factory: Optional[Callable[[str], Any]] = None,
    timeout: float = 10.0,
) -> ClusterInfo:
    if not brokers:
        raise ConfigurationError("At least one broker address is required")
    if admin_factory is None:
        from kafka_replay.integrations.kafka import admin_client

        admin_factory = admin_client
    return build_cluster_info(_fetch_metadata(brokers, admin_factory, timeout))
