"""
Unit tests for the Replayer engine and its rate limiter.
"""

import io
import threading
import time

import pytest
from loguru import logger

from kafka_replay.core.errors import CorruptFrameError, DeliveryError, OperationCancelled
from kafka_replay.core.frame import HEADER_SIZE
from kafka_replay.core.reader import MessageFileReader
from kafka_replay.core.replay import (
    DEFAULT_BATCH_BYTES,
    DEFAULT_BATCH_SIZE,
    RateLimiter,
    Replayer,
    ReplayConfig,
)
from tests.conftest import FakeProducer, RecordingProgress, make_recording


def _reader(payloads, **kwargs):
    return MessageFileReader(io.BytesIO(make_recording(payloads)), **kwargs)


def test_publishes_records_in_file_order():
    producer = FakeProducer()
    config = ReplayConfig(max_batch_size=1)
    result = Replayer(_reader([b"first", b"second"]), producer, config).run()
    assert result.message_count == 2
    assert [len(b) for b in producer.batches] == [1, 1]
    assert producer.payloads == [b"first", b"second"]
    assert producer.calls == 2


def test_batches_by_count():
    producer = FakeProducer()
    payloads = [bytes([i]) for i in range(5)]
    Replayer(_reader(payloads), producer, ReplayConfig(max_batch_size=2)).run()
    assert [len(b) for b in producer.batches] == [2, 2, 1]
    assert producer.payloads == payloads


def test_batches_by_bytes():
    producer = FakeProducer()
    payloads = [b"x" * 400] * 5
    config = ReplayConfig(max_batch_size=100, max_batch_bytes=1000)
    result = Replayer(_reader(payloads), producer, config).run()
    assert [len(b) for b in producer.batches] == [3, 2]
    assert result.message_count == 5


def test_zero_thresholds_select_defaults():
    config = ReplayConfig(max_batch_size=0, max_batch_bytes=0)
    assert config.max_batch_size == DEFAULT_BATCH_SIZE
    assert config.max_batch_bytes == DEFAULT_BATCH_BYTES


def test_negative_rate_rejected():
    with pytest.raises(ValueError):
        ReplayConfig(rate=-1)


def test_loop_restarts_until_cancelled():
    stop = threading.Event()

    def stop_after_three(producer):
        if producer.calls == 3:
            stop.set()

    producer = FakeProducer(on_publish=stop_after_three)
    progress = RecordingProgress()
    log = io.StringIO()
    replayer = Replayer(
        _reader([b"a", b"b"]),
        producer,
        ReplayConfig(loop=True, max_batch_size=1),
        progress=progress,
        log_writer=log,
    )

    with pytest.raises(OperationCancelled) as exc_info:
        replayer.run(stop)

    file_size = 2 * HEADER_SIZE + 2
    assert producer.payloads == [b"a", b"b", b"a"]
    assert exc_info.value.result.loops == 1
    assert exc_info.value.result.message_count == 3
    assert "iteration 2" in log.getvalue()
    assert progress.calls[0] == ("set_total", file_size)
    restart = progress.calls.index(("set", 0))
    assert progress.calls[restart - 1] == ("set", file_size)
    assert progress.closed


def test_cancellation_flushes_partial_batch():
    stop = threading.Event()

    class StopOnFirstRecord(RecordingProgress):
        def set(self, current):
            super().set(current)
            if current > 0:
                stop.set()

    producer = FakeProducer()
    replayer = Replayer(
        _reader([b"one", b"two", b"three"]),
        producer,
        ReplayConfig(max_batch_size=10),
        progress=StopOnFirstRecord(),
    )

    with pytest.raises(OperationCancelled) as exc_info:
        replayer.run(stop)

    assert producer.payloads == [b"one"]
    assert exc_info.value.result.message_count == 1


def test_cancellation_preempts_rate_wait():
    stop = threading.Event()
    timer = threading.Timer(0.1, stop.set)
    producer = FakeProducer()
    replayer = Replayer(_reader([b"slow"]), producer, ReplayConfig(rate=1))

    started = time.monotonic()
    timer.start()
    try:
        with pytest.raises(OperationCancelled) as exc_info:
            replayer.run(stop)
    finally:
        timer.cancel()

    assert time.monotonic() - started < 0.9
    assert exc_info.value.result.message_count == 0
    assert producer.calls == 0


def test_rate_limits_throughput():
    producer = FakeProducer()
    started = time.monotonic()
    result = Replayer(_reader([b"m"] * 5), producer, ReplayConfig(rate=10)).run()
    assert time.monotonic() - started >= 0.4
    assert result.message_count == 5


def test_corrupt_frame_propagates_after_flushing_batch():
    data = make_recording([b"good", b"truncated"])[:-3]
    producer = FakeProducer()
    replayer = Replayer(
        MessageFileReader(io.BytesIO(data)),
        producer,
        ReplayConfig(loop=True, max_batch_size=10),
    )

    with pytest.raises(CorruptFrameError):
        replayer.run()

    assert producer.payloads == [b"good"]
    assert replayer.result.message_count == 1
    assert replayer.result.loops == 0


def test_delivery_failure_is_not_retried():
    producer = FakeProducer(error=DeliveryError("1 of 1 messages failed delivery", failed=1))
    replayer = Replayer(_reader([b"a", b"b"]), producer, ReplayConfig(max_batch_size=1))

    with pytest.raises(DeliveryError):
        replayer.run()

    assert producer.calls == 1
    assert replayer.result.message_count == 0


def test_empty_recording_in_loop_mode_returns():
    producer = FakeProducer()
    replayer = Replayer(MessageFileReader(io.BytesIO(b"")), producer, ReplayConfig(loop=True))
    result = replayer.run()
    assert result.message_count == 0
    assert result.loops == 0
    assert producer.calls == 0


def test_rate_limiter_rejects_non_positive_rate():
    with pytest.raises(ValueError):
        RateLimiter(0)


def test_rate_limiter_returns_false_when_stopped():
    stop = threading.Event()
    stop.set()
    assert RateLimiter(1).wait(stop) is False


def test_rate_limiter_drops_missed_ticks():
    now = [0.0]
    limiter = RateLimiter(10, clock=lambda: now[0])
    now[0] = 1.0
    assert limiter.wait()
    # One catch-up tick, then back on schedule
    assert limiter._next_tick == pytest.approx(1.1)


def test_completion_is_not_logged_at_info():
    messages = []
    logger.add(messages.append, level="INFO")
    Replayer(_reader([b"a"]), FakeProducer()).run()
    assert messages == []
