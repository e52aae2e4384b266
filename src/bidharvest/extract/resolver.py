"""Ordered, fail-soft field resolution.

Every extracted field is described as a priority list of zero-argument
strategies. ``resolve`` walks the list and returns the first usable value;
a strategy that raises counts as a miss so one bad selector never aborts the
rest of a record.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Iterable, Sequence, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


def is_present(value: Any) -> bool:
    """True for values worth keeping: not None, not blank text, not an empty collection."""

    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict, set, frozenset)):
        return len(value) > 0
    return True


def resolve(strategies: Iterable[Callable[[], T | None]]) -> T | None:
    for index, strategy in enumerate(strategies):
        try:
            value = strategy()
        except Exception as exc:
            logger.debug("Strategy %d (%s) failed: %s", index, _name(strategy), exc)
            continue
        if is_present(value):
            return value
    return None


async def resolve_async(strategies: Iterable[Callable[[], Awaitable[T | None]]]) -> T | None:
    for index, strategy in enumerate(strategies):
        try:
            value = await strategy()
        except Exception as exc:
            logger.debug("Async strategy %d (%s) failed: %s", index, _name(strategy), exc)
            continue
        if is_present(value):
            return value
    return None


def first_of(values: Sequence[Callable[[], T | None]], *, default: T) -> T:
    resolved = resolve(values)
    return default if resolved is None else resolved


def _name(strategy: Callable[..., Any]) -> str:
    return getattr(strategy, "__name__", type(strategy).__name__)
