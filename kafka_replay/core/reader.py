import io
import threading
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from kafka_replay.core.datatypes import RecordedMessage
from kafka_replay.core.errors import EndOfStream, OperationCancelled
from kafka_replay.core.frame import HEADER_SIZE, decode_frame
from kafka_replay.core.timeprovider import RealTimeProvider, TimeProvider


class MessageFileReader:
    """Sequential reader over a recording file.

    The underlying stream must be seekable: ``reset`` rewinds it for loop
    playback and ``size`` measures it for progress reporting.
    """

    def __init__(
        self,
        source: BinaryIO,
        preserve_timestamps: bool = False,
        time_provider: Optional[TimeProvider] = None,
    ):
        self.source = source
        self.preserve_timestamps = preserve_timestamps
        self.time_provider = time_provider or RealTimeProvider()
        self._offset = 0

    @classmethod
    def open(cls, path: str | Path, **kwargs) -> "MessageFileReader":
        return cls(open(path, "rb"), **kwargs)

    @property
    def offset(self) -> int:
        return self._offset

    def read_next(self, stop: Optional[threading.Event] = None) -> RecordedMessage:
        if stop is not None and stop.is_set():
            raise OperationCancelled()
        message = decode_frame(
            self.source,
            self.time_provider,
            preserve_timestamps=self.preserve_timestamps,
            offset=self._offset,
        )
        self._offset += HEADER_SIZE + len(message.data)
        return message

    def reset(self):
        self.source.seek(0, io.SEEK_SET)
        self._offset = 0

    def size(self) -> int:
        current = self.source.seek(0, io.SEEK_CUR)
        end = self.source.seek(0, io.SEEK_END)
        self.source.seek(current, io.SEEK_SET)
        return end

    def close(self):
        self.source.close()

    def __iter__(self) -> Iterator[RecordedMessage]:
        while True:
            try:
                yield self.read_next()
            except EndOfStream:
                return

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
