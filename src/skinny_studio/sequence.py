"""Request-sequence tokens for overlapping requests."""

import itertools


class RequestSequence:
    """Hand out increasing tokens so only the newest request's result is kept.

    Call :meth:`begin` before issuing a request and check :meth:`is_current`
    before applying its response.
    """

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._latest = 0

    def begin(self) -> int:
        self._latest = next(self._counter)
        return self._latest

    def invalidate(self) -> None:
        """Make every outstanding token stale."""
        self._latest = next(self._counter)

    def is_current(self, token: int) -> bool:
        return token == self._latest
