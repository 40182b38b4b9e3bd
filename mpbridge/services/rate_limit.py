"""Sequential executor that spaces calls to respect WeChat rate limits."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, List, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class ItemOutcome(Generic[T]):
    item: T
    ok: bool
    value: Any = None
    error: Optional[BaseException] = None


def run_rate_limited(
    items: Iterable[T],
    action: Callable[[T], Any],
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
) -> List[ItemOutcome[T]]:
    """Call ``action`` for each item in order, pausing ``interval`` seconds between calls.

    A failing item is recorded and the loop moves on; nothing raised by
    ``action`` aborts the run.
    """
    outcomes: List[ItemOutcome[T]] = []
    for index, item in enumerate(items):
        if index and interval > 0:
            sleep(interval)
        try:
            value = action(item)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Rate limited action failed item=%s: %s", item, exc)
            outcomes.append(ItemOutcome(item=item, ok=False, error=exc))
            continue
        outcomes.append(ItemOutcome(item=item, ok=True, value=value))
    return outcomes
