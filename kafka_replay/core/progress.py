from typing import Optional, Protocol

from tqdm import tqdm


class ProgressReporter(Protocol):
    def set_total(self, total: int) -> None: ...

    def add(self, delta: int) -> None: ...

    def set(self, current: int) -> None: ...

    def close(self) -> None: ...


class TqdmProgressReporter:
    def __init__(self, bar: tqdm):
        self.bar = bar

    def set_total(self, total: int):
        self.bar.total = total
        self.bar.refresh()

    def add(self, delta: int):
        self.bar.update(delta)

    def set(self, current: int):
        self.bar.n = current
        self.bar.refresh()

    def close(self):
        self.bar.close()


def record_progress(limit: int = 0, disable: bool = False) -> TqdmProgressReporter:
    total: Optional[int] = limit if limit > 0 else None
    return TqdmProgressReporter(
        tqdm(total=total, desc="Recording messages", unit="msg", disable=disable)
    )


def replay_progress(loop: bool = False, disable: bool = False) -> TqdmProgressReporter:
    desc = "Replaying messages (looping)" if loop else "Replaying messages"
    return TqdmProgressReporter(
        tqdm(
            desc=desc,
            unit="B",
            unit_scale=True,
            unit_divisor=1024,
            disable=disable,
        )
    )
