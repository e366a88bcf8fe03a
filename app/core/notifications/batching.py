from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Sequence, Tuple, TypeVar


T = TypeVar("T")


@dataclass
class BatchResult:
    sent: int = 0
    failed: List[Tuple[Any, str]] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


def chunked(items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def send_in_batches(
    items: Sequence[T],
    send: Callable[[T], Any],
    *,
    batch_size: int,
    delay_seconds: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
) -> BatchResult:
    """
    Calls `send` for every item, `batch_size` at a time, pausing between
    batches to stay under provider rate limits. A failing item is recorded
    and the rest continue.
    """
    result = BatchResult()
    batches = list(chunked(list(items), max(batch_size, 1)))
    for index, batch in enumerate(batches):
        for item in batch:
            try:
                send(item)
                result.sent += 1
            except Exception as exc:
                result.failed.append((item, str(exc)))
        if delay_seconds > 0 and index < len(batches) - 1:
            sleep(delay_seconds)
    return result


__all__ = ["BatchResult", "chunked", "send_in_batches"]
