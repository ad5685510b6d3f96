from .cluster import BrokerInfo, ClusterInfo, PartitionInfo, TopicInfo
from .message import RecordedMessage, RecordResult, ReplayResult

__all__ = [
    "BrokerInfo",
    "ClusterInfo",
    "PartitionInfo",
    "TopicInfo",
    "RecordedMessage",
    "RecordResult",
    "ReplayResult",
]
