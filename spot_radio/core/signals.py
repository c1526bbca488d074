"""
Observable state values.

Front-ends need to react to two pieces of state without polling:
    - "needs re-login": the stored session cookie was rejected
    - "using fallback": a queue degraded to basic mode, with a reason

StateSignal holds the current value and calls subscribers when it changes.
Subscribers are plain callables; they run synchronously in the task that
changed the value.

Usage:
    needs_re_login = StateSignal(False)
    unsubscribe = needs_re_login.subscribe(lambda v: print(f"re-login: {v}"))
    needs_re_login.set(True)
    unsubscribe()
"""

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar


T = TypeVar("T")


class StateSignal(Generic[T]):
    """
    A value plus change notifications.

    Setting an equal value is a no-op, so subscribers only see real
    transitions.
    """

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._subscribers: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """Replace the value and notify subscribers if it changed."""
        if value == self._value:
            return
        self._value = value
        for callback in list(self._subscribers):
            callback(value)

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """
        Register `callback` for future changes.

        Returns:
            A function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe


@dataclass(frozen=True)
class FallbackState:
    """
    Banner state for degraded queues.

    Attributes:
        active: True while the current queue is the basic fallback.
        reason: Short human-readable cause, None when inactive.
    """
    active: bool = False
    reason: str | None = None


INACTIVE_FALLBACK = FallbackState()
