"""
GSSMediator Compute-Once Cell

Holds the outcome of a one-time initialization: either the computed value
or the exception it raised, both kept permanently.

The outcome is published with a single attribute assignment, so readers
that find it set never take the lock.
"""

from __future__ import annotations

import threading
from typing import Callable, Generic, Optional, TypeVar

import attrs
from returns.result import Failure, Result, Success

T = TypeVar("T")


@attrs.define
class OnceCell(Generic[T]):
    """
    Compute-once cell with a latched failure.

    Example:
        cell: OnceCell[Factory] = OnceCell()

        outcome = cell.get_or_compute(build_factory)
        factory = outcome.unwrap()  # raises UnwrapFailedError on failure

    The first caller runs compute under the lock; concurrent callers block
    until it finishes and then see the same outcome. A failure is stored
    like a value and is never retried.
    """

    _outcome: Optional[Result[T, Exception]] = None
    _lock: threading.Lock = attrs.Factory(threading.Lock)

    def get_or_compute(self, compute: Callable[[], T]) -> Result[T, Exception]:
        outcome = self._outcome
        if outcome is not None:
            return outcome

        with self._lock:
            outcome = self._outcome
            if outcome is None:
                try:
                    outcome = Success(compute())
                except Exception as e:
                    outcome = Failure(e)
                self._outcome = outcome
        return outcome

    @property
    def outcome(self) -> Optional[Result[T, Exception]]:
        """Latched outcome, or None if compute has not finished yet."""
        return self._outcome

    @property
    def is_set(self) -> bool:
        return self._outcome is not None
