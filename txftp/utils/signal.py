"""Helper functions for working with signals"""

from __future__ import annotations

import logging
from typing import Any as TypingAny

from pydispatch.dispatcher import (
    Anonymous,
    Any,
    disconnect,
    getAllReceivers,
    liveReceivers,
)
from pydispatch.robustapply import robustApply
from twisted.python.failure import Failure

logger = logging.getLogger(__name__)


def send_catch_log(
    signal: TypingAny = Any,
    sender: TypingAny = Anonymous,
    *arguments: TypingAny,
    **named: TypingAny,
) -> list[tuple[TypingAny, TypingAny]]:
    """Call every live receiver of ``signal`` from ``sender``.

    Returns ``(receiver, response)`` pairs. A receiver that raises is logged
    and its response is the :class:`~twisted.python.failure.Failure`, the
    remaining receivers are still called.
    """
    responses: list[tuple[TypingAny, TypingAny]] = []
    for receiver in liveReceivers(getAllReceivers(sender, signal)):
        try:
            response = robustApply(
                receiver, signal=signal, sender=sender, *arguments, **named
            )
        except Exception:
            response = Failure()
            logger.error(
                "Error caught on signal handler: %(receiver)s",
                {"receiver": receiver},
                exc_info=True,
            )
        responses.append((receiver, response))
    return responses


def disconnect_all(signal: TypingAny = Any, sender: TypingAny = Any) -> None:
    """Disconnect every receiver of ``signal`` from ``sender``"""
    for receiver in liveReceivers(getAllReceivers(sender, signal)):
        disconnect(receiver, signal=signal, sender=sender)
