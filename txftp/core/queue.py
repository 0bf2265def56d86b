from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING, Any

from twisted.internet.defer import Deferred

from txftp.utils.defer import defer_result

if TYPE_CHECKING:
    from collections.abc import Iterator

    from twisted.internet.interfaces import IReactorTime


logger = logging.getLogger(__name__)


class PendingCommand:
    """A command waiting for the reply that completes it"""

    def __init__(self, verb: str, argument: Any = None):
        self.verb: str = str(verb).upper()
        self.argument: str | None = (
            None if argument is None or argument == "" else str(argument)
        )
        self.deferred: Deferred[Any] = Deferred()
        self.sent: bool = False

    @property
    def line(self) -> str:
        if self.argument is None:
            return self.verb
        return f"{self.verb} {self.argument}"

    def __repr__(self) -> str:
        return f"<PendingCommand {self.verb} argument={self.argument!r} sent={self.sent}>"


class CommandQueue:
    """FIFO of :class:`PendingCommand` s.

    Replies arrive in the order commands were written, so every completion
    belongs to the head. Deferreds are fired on the next reactor loop so
    that callers never run inside reply processing.
    """

    def __init__(self, clock: IReactorTime):
        self._clock = clock
        self._commands: deque[PendingCommand] = deque()

    def __len__(self) -> int:
        return len(self._commands)

    def __iter__(self) -> Iterator[PendingCommand]:
        return iter(self._commands)

    @property
    def head(self) -> PendingCommand | None:
        return self._commands[0] if self._commands else None

    def append(self, command: PendingCommand) -> None:
        self._commands.append(command)

    def push_front(self, command: PendingCommand) -> None:
        self._commands.appendleft(command)

    def next_unsent(self) -> PendingCommand | None:
        """The head, if it still has to be written"""
        head = self.head
        if head is None or head.sent:
            return None
        return head

    def pop_head(self) -> PendingCommand:
        return self._commands.popleft()

    def complete(self, command: PendingCommand, result: Any = None) -> None:
        """Fire ``command`` with ``result`` on the next reactor loop.

        Exceptions and failures errback, anything else is passed to the
        callbacks.
        """
        defer_result(result, self._clock).chainDeferred(command.deferred)

    def execute_next(self, result: Any = None) -> bool:
        if not self._commands:
            logger.debug("No command waiting for completion %r", result)
            return False
        self.complete(self.pop_head(), result)
        return True

    def fail_all(self, error: BaseException) -> None:
        while self._commands:
            self.complete(self.pop_head(), error)
