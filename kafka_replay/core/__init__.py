from .errors import (
    ConfigurationError,
    CorruptFrameError,
    DeliveryError,
    EndOfStream,
    KafkaReplayError,
    OperationCancelled,
)
from .info import collect_info
from .reader import MessageFileReader
from .record import Recorder
from .replay import ReplayConfig, Replayer

__all__ = [
    "ConfigurationError",
    "CorruptFrameError",
    "DeliveryError",
    "EndOfStream",
    "KafkaReplayError",
    "OperationCancelled",
    "collect_info",
    "MessageFileReader",
    "Recorder",
    "ReplayConfig",
    "Replayer",
]
