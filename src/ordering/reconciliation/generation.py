"""Monotonic request generations for discarding superseded async results."""


class RequestGeneration:
    """Hands out increasing tokens; only the newest token may commit.

    A load captures ``begin()`` when it starts and checks ``is_current`` at
    every completion point. Starting a newer load, or ``invalidate()``,
    makes every older token stale.
    """

    def __init__(self) -> None:
        self._value = 0

    @property
    def current(self) -> int:
        return self._value

    def begin(self) -> int:
        self._value += 1
        return self._value

    def is_current(self, token: int) -> bool:
        return token == self._value

    def invalidate(self) -> None:
        self._value += 1
