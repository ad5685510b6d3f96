import threading
import time
from contextlib import contextmanager
from typing import Callable, List, Optional, Protocol, TextIO

from loguru import logger
from pydantic import BaseModel, Field

from kafka_replay.core.datatypes import RecordedMessage, ReplayResult
from kafka_replay.core.errors import EndOfStream, OperationCancelled
from kafka_replay.core.frame import HEADER_SIZE
from kafka_replay.core.progress import ProgressReporter
from kafka_replay.core.reader import MessageFileReader

DEFAULT_BATCH_SIZE = 100
DEFAULT_BATCH_BYTES = 10 * 1024 * 1024


class Producer(Protocol):
    def publish(self, messages: List[RecordedMessage]) -> None:
        """Deliver the whole batch or raise."""
        ...


class ReplayConfig(BaseModel):
    rate: int = Field(default=0, ge=0, description="Messages per second, 0 for unlimited")
    loop: bool = False
    max_batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=0)
    max_batch_bytes: int = Field(default=DEFAULT_BATCH_BYTES, ge=0)

    def model_post_init(self, __context):
        # 0 selects the default threshold
        if not self.max_batch_size:
            self.max_batch_size = DEFAULT_BATCH_SIZE
        if not self.max_batch_bytes:
            self.max_batch_bytes = DEFAULT_BATCH_BYTES


class RateLimiter:
    """Periodic ticker: every ``wait`` returns on the next tick.

    Ticks missed while the caller was busy are dropped, so a slow consumer
    gets at most one immediate tick before falling back to the schedule.
    """

    def __init__(self, rate: int, clock: Callable[[], float] = time.monotonic):
        if rate <= 0:
            raise ValueError("rate must be > 0")
        self.interval = 1.0 / rate
        self._clock = clock
        self._next_tick = clock() + self.interval

    def wait(self, stop: Optional[threading.Event] = None) -> bool:
        """Block until the next tick. Returns False if ``stop`` was set first."""
        if stop is not None and stop.is_set():
            return False
        delay = self._next_tick - self._clock()
        if delay > 0:
            if stop is not None:
                if stop.wait(delay):
                    return False
            else:
                time.sleep(delay)
        now = self._clock()
        self._next_tick += self.interval
        if self._next_tick < now:
            self._next_tick = now + self.interval
        return True


class Replayer:
    """Publish the records of a recording file in batches.

    Progress is reported in bytes read from the file, not messages sent, so
    it may run slightly ahead of what the producer has delivered.
    """

    def __init__(
        self,
        reader: MessageFileReader,
        producer: Producer,
        config: Optional[ReplayConfig] = None,
        progress: Optional[ProgressReporter] = None,
        log_writer: Optional[TextIO] = None,
    ):
        self.reader = reader
        self.producer = producer
        self.config = config or ReplayConfig()
        self.progress = progress
        self.log_writer = log_writer
        self.result = ReplayResult()
        self._batch: List[RecordedMessage] = []
        self._batch_bytes = 0
        self._bytes_read = 0
        self._file_size = 0

    def run(self, stop: Optional[threading.Event] = None) -> ReplayResult:
        if self.progress is not None:
            self._file_size = self.reader.size()
            self.progress.set_total(self._file_size)
        limiter = RateLimiter(self.config.rate) if self.config.rate > 0 else None
        try:
            with self._flush_on_exit():
                self._replay(stop, limiter)
        except OperationCancelled as exc:
            exc.result = self.result
            logger.debug(f"Replay cancelled after {self.result.message_count} messages")
            raise
        finally:
            if self.progress is not None:
                self.progress.close()
        logger.debug(f"Replayed {self.result.message_count} messages")
        return self.result

    @contextmanager
    def _flush_on_exit(self):
        try:
            yield
        except BaseException:
            pending = len(self._batch)
            try:
                self._flush()
            except Exception as e:
                logger.error(f"Failed to flush {pending} pending messages: {e}")
            raise
        self._flush()

    def _flush(self):
        if not self._batch:
            return
        batch = self._batch
        self._batch, self._batch_bytes = [], 0
        self.producer.publish(batch)
        self.result.message_count += len(batch)

    def _replay(self, stop: Optional[threading.Event], limiter: Optional[RateLimiter]):
        records_this_pass = 0
        while True:
            try:
                message = self.reader.read_next(stop)
            except EndOfStream:
                self._flush()
                if self.progress is not None and self._file_size > 0:
                    self.progress.set(self._file_size)
                if not self.config.loop:
                    return
                if records_this_pass == 0:
                    logger.warning("Recording contains no messages, not looping")
                    return
                self._restart()
                records_this_pass = 0
                continue

            records_this_pass += 1
            self._bytes_read += HEADER_SIZE + len(message.data)
            if self.progress is not None:
                self.progress.set(self._bytes_read)

            if limiter is not None and not limiter.wait(stop):
                raise OperationCancelled()

            self._batch.append(message)
            self._batch_bytes += len(message.data)
            if (
                len(self._batch) >= self.config.max_batch_size
                or self._batch_bytes >= self.config.max_batch_bytes
            ):
                self._flush()

    def _restart(self):
        self.reader.reset()
        self.result.loops += 1
        self._bytes_read = 0
        if self.progress is not None:
            self.progress.set(0)
        logger.debug(f"Reached end of recording, starting pass {self.result.loops + 1}")
        if self.log_writer is not None:
            self.log_writer.write(
                f"Looping: restarting from beginning (iteration {self.result.loops + 1})\n"
            )
