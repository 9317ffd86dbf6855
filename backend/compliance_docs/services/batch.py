import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

logger = logging.getLogger(__name__)

I = TypeVar("I")
R = TypeVar("R")


@dataclass
class BatchResult(Generic[R]):
    succeeded: list[R] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    # (position, label) of each failed item, in input order.
    failed: list[tuple[int, str]] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.errors)

    @property
    def is_partial(self) -> bool:
        return self.failure_count > 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "errors": self.errors,
        }


async def run_batch(
    items: Iterable[I],
    operation: Callable[[I], R | Awaitable[R]],
    label: Callable[[int, I], str] = lambda index, _: str(index + 1),
    on_failure: Callable[[], None] | None = None,
) -> BatchResult[R]:
    """Apply ``operation`` to each item in order, one at a time.

    A failing item is recorded as ``"item <label>: <message>"`` and the batch
    moves on; nothing an item raises escapes this function. ``label``
    receives the zero-based position and the item. ``on_failure`` runs after
    each failed item, before the next one starts; batches over a shared
    session use it to drop the failed item's uncommitted changes.
    """
    result: BatchResult[R] = BatchResult()
    for index, item in enumerate(items):
        item_label = label(index, item)
        try:
            outcome = operation(item)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception as exc:
            logger.error("Batch item %s failed: %s", item_label, exc)
            if on_failure is not None:
                on_failure()
            result.errors.append(f"item {item_label}: {exc}")
            result.failed.append((index, item_label))
            continue
        result.succeeded.append(outcome)
    return result
