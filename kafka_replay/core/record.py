import threading
from typing import BinaryIO, Optional, Protocol

from loguru import logger

from kafka_replay.core.datatypes import RecordResult
from kafka_replay.core.errors import OperationCancelled
from kafka_replay.core.frame import write_frame
from kafka_replay.core.progress import ProgressReporter
from kafka_replay.core.timeprovider import RealTimeProvider, TimeProvider


class Consumer(Protocol):
    def read_next(self, stop: Optional[threading.Event] = None) -> Optional[bytes]:
        """Return the next message, or None when nothing is available yet."""
        ...

    def set_offset(self, offset: int) -> None: ...


class Recorder:
    """Drain a consumer into a recording file, one frame per message.

    Frames are stamped with ``time_provider.now()`` at write time; any event
    time carried by the inbound message is ignored.
    """

    def __init__(
        self,
        consumer: Consumer,
        output: BinaryIO,
        limit: int = 0,
        offset: Optional[int] = None,
        time_provider: Optional[TimeProvider] = None,
        progress: Optional[ProgressReporter] = None,
    ):
        if limit < 0:
            raise ValueError("limit must be >= 0")
        self.consumer = consumer
        self.output = output
        self.limit = limit
        self.offset = offset
        self.time_provider = time_provider or RealTimeProvider()
        self.progress = progress
        self.result = RecordResult()

    def _limit_reached(self) -> bool:
        return self.limit > 0 and self.result.message_count >= self.limit

    def run(self, stop: Optional[threading.Event] = None) -> RecordResult:
        if self.offset is not None:
            self.consumer.set_offset(self.offset)
        if self.progress is not None and self.limit > 0:
            self.progress.set_total(self.limit)
        try:
            self._record(stop)
        finally:
            if self.progress is not None:
                self.progress.close()
        logger.debug(
            f"Recorded {self.result.message_count} messages ({self.result.bytes_written} bytes)"
        )
        return self.result

    def _record(self, stop: Optional[threading.Event]):
        while not self._limit_reached():
            if stop is not None and stop.is_set():
                logger.debug(f"Recording cancelled after {self.result.message_count} messages")
                raise OperationCancelled(self.result)

            data = self.consumer.read_next(stop)
            if data is None:
                # Streams may pause without ending, keep polling
                continue

            self.result.bytes_written += write_frame(
                self.output, data, self.time_provider.now()
            )
            self.result.message_count += 1
            if self.progress is not None:
                self.progress.add(1)
            if self.result.message_count % 100 == 0:
                logger.debug(f"Recorded {self.result.message_count} messages so far")
