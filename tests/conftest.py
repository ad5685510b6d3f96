import io
import sys
from datetime import datetime, timezone
from typing import List

import pytest
from loguru import logger

from kafka_replay.core.frame import encode_frame

RECORDED_AT = datetime(2024, 1, 15, 10, 30, 0, 123456, tzinfo=timezone.utc)
REPLAYED_AT = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FixedTimeProvider:
    def __init__(self, now: datetime = REPLAYED_AT):
        self.current = now

    def now(self) -> datetime:
        return self.current


class FakeConsumer:
    """Serves queued items; ``None`` items mean "no message available yet".

    When the queue runs dry it sets the stop event if ``stop_when_empty``.
    """

    def __init__(self, items, stop_when_empty: bool = False):
        self.items = list(items)
        self.stop_when_empty = stop_when_empty
        self.offsets: List[int] = []
        self.reads = 0

    def read_next(self, stop=None):
        self.reads += 1
        if not self.items:
            if self.stop_when_empty and stop is not None:
                stop.set()
            return None
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def set_offset(self, offset):
        self.offsets.append(offset)


class FakeProducer:
    def __init__(self, on_publish=None, error: Exception = None):
        self.batches = []
        self.calls = 0
        self.on_publish = on_publish
        self.error = error

    def publish(self, messages):
        self.calls += 1
        if self.error is not None:
            raise self.error
        self.batches.append(list(messages))
        if self.on_publish is not None:
            self.on_publish(self)

    @property
    def payloads(self):
        return [m.data for batch in self.batches for m in batch]


class RecordingProgress:
    def __init__(self):
        self.calls = []
        self.closed = False

    def set_total(self, total):
        self.calls.append(("set_total", total))

    def add(self, delta):
        self.calls.append(("add", delta))

    def set(self, current):
        self.calls.append(("set", current))

    def close(self):
        self.closed = True


def make_recording(payloads, timestamp: datetime = RECORDED_AT) -> bytes:
    return b"".join(encode_frame(p, timestamp) for p in payloads)


@pytest.fixture
def time_provider():
    return FixedTimeProvider()


@pytest.fixture
def recording_file(tmp_path):
    """Write a recording to disk and return its path."""

    def _write(payloads, name="messages.log"):
        path = tmp_path / name
        path.write_bytes(make_recording(payloads))
        return path

    return _write


@pytest.fixture
def stream():
    def _stream(payloads):
        return io.BytesIO(make_recording(payloads))

    return _stream


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger.remove()
    logger.add(sys.stderr)
