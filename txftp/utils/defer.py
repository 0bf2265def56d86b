"""
Helper functions for dealing with Twisted deferreds
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from twisted.internet.defer import Deferred
from twisted.python.failure import Failure

if TYPE_CHECKING:
    from twisted.internet.interfaces import IReactorTime


def defer_result(result: Any, clock: IReactorTime | None = None) -> Deferred[Any]:
    """Return a Deferred fired with ``result`` on the next reactor loop.

    Exceptions and failures errback, Deferreds are returned unchanged.
    """
    if isinstance(result, Deferred):
        return result
    if clock is None:
        from twisted.internet import reactor as clock
    if isinstance(result, BaseException):
        result = Failure(result)
    d: Deferred[Any] = Deferred()
    if isinstance(result, Failure):
        clock.callLater(0, d.errback, result)
    else:
        clock.callLater(0, d.callback, result)
    return d
