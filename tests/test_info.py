from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from confluent_kafka import KafkaException

from kafka_replay.core.errors import ConfigurationError
from kafka_replay.core.info import build_cluster_info, collect_info


def _metadata():
    def partition(leader, replicas, isrs):
        return SimpleNamespace(leader=leader, replicas=replicas, isrs=isrs)

    return SimpleNamespace(
        brokers={
            3: SimpleNamespace(id=3, host="kafka-3", port=9092),
            1: SimpleNamespace(id=1, host="kafka-1", port=9092),
            2: SimpleNamespace(id=2, host="kafka-2", port=9093),
        },
        topics={
            "orders": SimpleNamespace(
                partitions={
                    0: partition(1, [2, 1], [1, 2]),
                    1: partition(2, [1, 2], []),
                }
            ),
            "audit": SimpleNamespace(partitions={0: partition(1, [1], [1])}),
        },
    )


def _admin_factory(metadata):
    factory = MagicMock()
    factory.return_value.list_topics.return_value = metadata
    return factory


def test_build_cluster_info_sorts_and_flags_leaders():
    info = build_cluster_info(_metadata())

    assert [b.id for b in info.brokers] == [1, 2, 3]
    assert [b.address for b in info.brokers] == ["kafka-1:9092", "kafka-2:9093", "kafka-3:9092"]
    assert [b.is_leader for b in info.brokers] == [True, True, False]

    orders = info.topics["orders"].partitions
    assert orders[0].replicas == [1, 2]
    assert orders[0].in_sync_replicas == [1, 2]
    assert orders[1].leader == 2


def test_to_dict_omits_unset_fields():
    data = build_cluster_info(_metadata()).to_dict()
    follower = next(b for b in data["brokers"] if b["id"] == 3)
    assert "is_leader" not in follower
    assert "in_sync_replicas" not in data["topics"]["orders"]["partitions"][1]
    assert data["topics"]["orders"]["partitions"][0]["in_sync_replicas"] == [1, 2]
    assert data["topics"]["orders"]["partitions"][1]["replicas"] == [1, 2]


def test_to_dict_empty_cluster_keeps_keys():
    data = build_cluster_info(SimpleNamespace(brokers={}, topics={})).to_dict()
    assert data == {"brokers": [], "topics": {}}


def test_broker_topics_mapping():
    mapping = build_cluster_info(_metadata()).broker_topics()
    assert mapping == {1: ["audit", "orders"], 2: ["orders"]}


def test_collect_info_falls_back_to_next_broker():
    metadata = _metadata()
    good = MagicMock()
    good.list_topics.return_value = metadata
    bad = MagicMock()
    bad.list_topics.side_effect = KafkaException("connection refused")
    clients = {"down:9092": bad, "up:9092": good}

    info = collect_info(["down:9092", "up:9092"], admin_factory=clients.__getitem__, timeout=1.0)

    assert len(info.brokers) == 3
    good.list_topics.assert_called_once_with(timeout=1.0)


def test_collect_info_all_brokers_down():
    factory = MagicMock()
    factory.return_value.list_topics.side_effect = KafkaException("connection refused")
    with pytest.raises(ConfigurationError) as exc_info:
        collect_info(["a:9092", "b:9092"], admin_factory=factory)
    assert "a:9092, b:9092" in str(exc_info.value)


def test_collect_info_requires_brokers():
    with pytest.raises(ConfigurationError):
        collect_info([], admin_factory=_admin_factory(_metadata()))
