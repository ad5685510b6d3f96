"""
Binary framing for recording files.

A recording is a flat sequence of frames, each one laid out as::

    timestamp : 27 bytes, ASCII, "YYYY-MM-DDTHH:MM:SS.ssssssZ" (UTC)
    size      : 8 bytes, big-endian unsigned integer
    payload   : <size> bytes

There is no file header, index or checksum: the 35-byte frame header is all
a reader needs to find the next frame boundary.
"""

import struct
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import BinaryIO, Optional

from loguru import logger

from kafka_replay.core.datatypes import RecordedMessage
from kafka_replay.core.errors import CorruptFrameError, EndOfStream
from kafka_replay.core.timeprovider import TimeProvider

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
TIMESTAMP_SIZE = 27
SIZE_FIELD_SIZE = 8
HEADER_SIZE = TIMESTAMP_SIZE + SIZE_FIELD_SIZE
MAX_MESSAGE_SIZE = 100 * 1024 * 1024

_SIZE_STRUCT = struct.Struct(">Q")


@dataclass(frozen=True)
class Frame:
    timestamp: bytes
    payload: bytes

    @property
    def size(self) -> int:
        """Number of bytes the frame occupies on disk."""
        return HEADER_SIZE + len(self.payload)


def format_timestamp(timestamp: datetime) -> bytes:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    raw = timestamp.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT).encode("ascii")
    if len(raw) != TIMESTAMP_SIZE:
        raise ValueError(f"Timestamp {timestamp!r} does not fit the {TIMESTAMP_SIZE}-byte frame field")
    return raw


def parse_timestamp(raw: bytes) -> datetime:
    return datetime.strptime(raw.decode("ascii"), TIMESTAMP_FORMAT).replace(
        tzinfo=timezone.utc
    )


def encode_frame(payload: bytes, timestamp: datetime) -> bytes:
    return format_timestamp(timestamp) + _SIZE_STRUCT.pack(len(payload)) + payload


def write_frame(sink: BinaryIO, payload: bytes, timestamp: datetime) -> int:
    frame = encode_frame(payload, timestamp)
    sink.write(frame)
    return len(frame)


def _read_exact(source: BinaryIO, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = source.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_frame(source: BinaryIO, offset: Optional[int] = None) -> Frame:
    """
    Read one frame from ``source``.

    :param source: Binary stream positioned at a frame boundary.
    :param offset: Position of the frame in the stream, used in error messages.
    :return: The raw frame.
    :raises EndOfStream: When the stream has no bytes left at the frame boundary.
    :raises CorruptFrameError: On a truncated header or payload, or an invalid size.
    """
    timestamp = _read_exact(source, TIMESTAMP_SIZE)
    if not timestamp:
        raise EndOfStream()
    if len(timestamp) < TIMESTAMP_SIZE:
        raise CorruptFrameError(
            f"Truncated frame header: got {len(timestamp)} of {HEADER_SIZE} bytes",
            offset,
        )

    size_field = _read_exact(source, SIZE_FIELD_SIZE)
    if len(size_field) < SIZE_FIELD_SIZE:
        raise CorruptFrameError(
            f"Truncated frame header: got {TIMESTAMP_SIZE + len(size_field)} of {HEADER_SIZE} bytes",
            offset,
        )

    (size,) = _SIZE_STRUCT.unpack(size_field)
    if size > MAX_MESSAGE_SIZE:
        raise CorruptFrameError(f"Invalid message size: {size} bytes", offset)

    payload = _read_exact(source, size)
    if len(payload) < size:
        raise CorruptFrameError(
            f"Truncated payload: got {len(payload)} of {size} bytes", offset
        )
    return Frame(timestamp=timestamp, payload=payload)


def decode_frame(
    source: BinaryIO,
    time_provider: TimeProvider,
    preserve_timestamps: bool = False,
    offset: Optional[int] = None,
) -> RecordedMessage:
    frame = read_frame(source, offset)
    if not preserve_timestamps:
        return RecordedMessage(data=frame.payload, timestamp=time_provider.now())
    try:
        timestamp = parse_timestamp(frame.timestamp)
    except ValueError:
        logger.debug(f"Unparseable frame timestamp {frame.timestamp!r}, using current time")
        timestamp = time_provider.now()
    return RecordedMessage(data=frame.payload, timestamp=timestamp)
