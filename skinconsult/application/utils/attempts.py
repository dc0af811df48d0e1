from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class AttemptResult(Generic[T]):
    value: T | None
    attempts: int
    exhausted: bool
    last: T | None = None


def attempt(
    fn: Callable[[int], T | None],
    max_retries: int,
    accept: Callable[[T], bool] = bool,
) -> AttemptResult[T]:
    """
    Call fn(0), fn(1), ... until a result is accepted, at most 1 + max_retries times.
    A None result counts as a failed try.
    """
    last: T | None = None
    tries = 0
    for index in range(max_retries + 1):
        tries += 1
        value = fn(index)
        if value is not None and accept(value):
            return AttemptResult(value=value, attempts=tries, exhausted=False)
        if value is not None:
            last = value
    return AttemptResult(value=None, attempts=tries, exhausted=True, last=last)
