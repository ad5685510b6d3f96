from typing import Any, Optional


class KafkaReplayError(Exception):
    """Base class for all errors raised by kafka_replay."""


class EndOfStream(KafkaReplayError):
    """No more frames: the source ended cleanly at a frame boundary."""


class CorruptFrameError(KafkaReplayError):
    def __init__(self, message: str, offset: Optional[int] = None):
        if offset is not None:
            message = f"{message} (frame at byte {offset})"
        super().__init__(message)
        self.offset = offset


class OperationCancelled(KafkaReplayError):
    """Raised when the stop event is set while an engine is running.

    ``result`` holds what was accomplished before the cancellation; work that
    was already flushed is never rolled back.
    """

    def __init__(self, result: Any = None):
        super().__init__("operation cancelled")
        self.result = result


class ConfigurationError(KafkaReplayError):
    pass


class DeliveryError(KafkaReplayError):
    def __init__(self, message: str, failed: int = 0):
        super().__init__(message)
        self.failed = failed
