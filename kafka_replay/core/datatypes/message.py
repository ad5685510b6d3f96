from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class RecordedMessage:
    """A message decoded from a recording file."""

    data: bytes
    timestamp: datetime

    def __len__(self):
        return len(self.data)


@dataclass
class RecordResult:
    bytes_written: int = 0
    message_count: int = 0


@dataclass
class ReplayResult:
    message_count: int = 0
    loops: int = 0
