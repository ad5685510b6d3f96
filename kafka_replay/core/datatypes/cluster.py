from typing import Dict, List

from pydantic import BaseModel, Field


class BrokerInfo(BaseModel):
    id: int
    address: str
    is_leader: bool = False

    class Config:
        frozen = True


class PartitionInfo(BaseModel):
    id: int
    leader: int
    replicas: List[int]
    in_sync_replicas: List[int] = Field(default_factory=list)

    class Config:
        frozen = True


class TopicInfo(BaseModel):
    name: str
    partitions: Dict[int, PartitionInfo]

    class Config:
        frozen = True


class ClusterInfo(BaseModel):
    brokers: List[BrokerInfo] = Field(default_factory=list)
    topics: Dict[str, TopicInfo] = Field(default_factory=dict)

    class Config:
        frozen = True

    def to_dict(self) -> dict:
        # is_leader and in_sync_replicas are left out when unset
        data = self.model_dump()
        for broker in data["brokers"]:
            if not broker["is_leader"]:
                del broker["is_leader"]
        for topic in data["topics"].values():
            for partition in topic["partitions"].values():
                if not partition["in_sync_replicas"]:
                    del partition["in_sync_replicas"]
        return data

    def broker_topics(self) -> Dict[int, List[str]]:
        """Map every broker id to the sorted topics it leads or replicates."""
        mapping: Dict[int, set] = {}
        for name, topic in self.topics.items():
            for partition in topic.partitions.values():
                for broker_id in [partition.leader, *partition.replicas]:
                    mapping.setdefault(broker_id, set()).add(name)
        return {bid: sorted(mapping[bid]) for bid in sorted(mapping)}
