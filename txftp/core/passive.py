"""
Passive mode data connections.

A ``227 Entering Passive Mode (h1,h2,h3,h4,p1,p2)`` reply tells the client
where to connect for the next transfer. The PASV command is only completed
once that connection is established, so callers always get a live
:class:`DataConnection` and never the reply text.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from twisted.internet.defer import Deferred, DeferredList, FirstError
from twisted.internet.error import ConnectionDone
from twisted.internet.protocol import ClientFactory, Protocol, connectionDone
from zope.interface import implementer

from txftp.exceptions import (
    BadPassiveReply,
    ConnectionSevered,
    DataConnectionFailed,
    PassiveTimeout,
)
from txftp.interfaces import IDataStream
from txftp.utils.log import failure_to_exc_info

if TYPE_CHECKING:
    from collections.abc import Callable

    from twisted.internet.base import DelayedCall
    from twisted.internet.interfaces import IConnector
    from twisted.python.failure import Failure

    from txftp.core.protocol import FTPControlProtocol
    from txftp.core.queue import PendingCommand
    from txftp.core.replies import ReplyRecord


logger = logging.getLogger(__name__)


_PASV_RE = re.compile(r"(\d+),(\d+),(\d+),(\d+),(\d+),(\d+)")


def parse_pasv_reply(text: str) -> tuple[str, int]:
    """Return the ``(host, port)`` announced by a 227 reply"""
    match = _PASV_RE.search(text)
    if match is None:
        raise BadPassiveReply(text)
    h1, h2, h3, h4, p1, p2 = match.groups()
    return f"{h1}.{h2}.{h3}.{h4}", int(p1) * 256 + int(p2)


@implementer(IDataStream)
class DataConnection(Protocol):
    def __init__(self) -> None:
        self._consumer: Callable[[bytes], Any] | None = None
        self._buffered: list[bytes] = []
        self._close_waiters: list[Deferred[None]] = []
        self._close_reason: Failure | None = None
        self.closed: bool = False
        self.bytes_received: int = 0

    def connectionMade(self) -> None:
        self.factory.data_connection_made(self)

    def dataReceived(self, data: bytes) -> None:
        self.bytes_received += len(data)
        if self._consumer is None:
            self._buffered.append(data)
        else:
            self._consumer(data)

    def connectionLost(self, reason: Failure = connectionDone) -> None:
        self.closed = True
        if not reason.check(ConnectionDone):
            self._close_reason = reason
        waiters, self._close_waiters = self._close_waiters, []
        for d in waiters:
            self._fire_closed(d)
        self.factory.data_connection_lost(self, reason)

    def set_consumer(self, consumer: Callable[[bytes], Any]) -> None:
        self._consumer = consumer
        buffered, self._buffered = self._buffered, []
        for chunk in buffered:
            consumer(chunk)

    def write(self, data: bytes) -> None:
        self.transport.write(data)

    def finish(self) -> None:
        self.transport.loseConnection()

    def abort(self) -> None:
        if self.transport is None or self.closed:
            return
        if hasattr(self.transport, "abortConnection"):
            self.transport.abortConnection()
        else:
            self.transport.loseConnection()

    def when_closed(self) -> Deferred[None]:
        d: Deferred[None] = Deferred()
        if self.closed:
            self._fire_closed(d)
        else:
            self._close_waiters.append(d)
        return d

    def _fire_closed(self, d: Deferred[None]) -> None:
        if self._close_reason is None:
            d.callback(None)
        else:
            d.errback(self._close_reason)


class PassiveContext:
    """Bookkeeping for the data connection of one 227 reply"""

    def __init__(self, host: str, port: int, command: PendingCommand):
        self.host = host
        self.port = port
        self.command = command
        self.connector: IConnector | None = None
        self.protocol: DataConnection | None = None
        self.timeout_call: DelayedCall | None = None
        # set once the PASV command has been (or is being) completed
        self.completed: bool = False

    def cancel_timeout(self) -> None:
        if self.timeout_call is not None and self.timeout_call.active():
            self.timeout_call.cancel()
        self.timeout_call = None

    def __repr__(self) -> str:
        return f"<PassiveContext {self.host}:{self.port} completed={self.completed}>"


class PassiveDataFactory(ClientFactory):
    protocol = DataConnection
    noisy = False

    def __init__(self, orchestrator: PassiveOrchestrator, context: PassiveContext):
        self.orchestrator = orchestrator
        self.context = context

    def buildProtocol(self, addr):
        p = super().buildProtocol(addr)
        self.context.protocol = p
        return p

    def data_connection_made(self, protocol: DataConnection) -> None:
        self.orchestrator.connection_made(self.context, protocol)

    def data_connection_lost(self, protocol: DataConnection, reason: Failure) -> None:
        self.orchestrator.connection_lost(self.context, reason)

    def clientConnectionFailed(self, connector, reason):
        self.orchestrator.connection_failed(self.context, reason)


class PassiveOrchestrator:
    """Open the data connection of a 227 reply and complete the PASV command.

    If the connection is not established within ``timeout`` seconds an
    ``ABOR`` is placed in front of the queue. Once it has been answered the
    connection attempt is dropped and the PASV command fails with
    :class:`~txftp.exceptions.PassiveTimeout`.
    """

    factory_class = PassiveDataFactory

    def __init__(self, session: FTPControlProtocol, reactor, timeout: float):
        self.session = session
        self.reactor = reactor
        self.timeout = timeout
        self.context: PassiveContext | None = None

    def start(self, record: ReplyRecord, command: PendingCommand) -> PassiveContext:
        host, port = parse_pasv_reply(record.text)
        if self.context is not None and not self.context.completed:
            logger.warning(
                "Replacing unfinished passive context %r", self.context,
                extra={"session": self.session},
            )
        context = PassiveContext(host, port, command)
        self.context = context
        logger.debug("Opening data connection to %s:%d", host, port)
        factory = self.factory_class(self, context)
        context.timeout_call = self.reactor.callLater(
            self.timeout, self._timed_out, context
        )
        context.connector = self.reactor.connectTCP(host, port, factory)
        return context

    def connection_made(self, context: PassiveContext, protocol: DataConnection) -> None:
        if context.completed:
            # the attempt already timed out
            protocol.abort()
            return
        context.cancel_timeout()
        context.completed = True
        self._complete(context, protocol)

    def connection_failed(self, context: PassiveContext, reason: Failure) -> None:
        self._clear(context)
        if context.completed:
            return
        context.cancel_timeout()
        context.completed = True
        logger.error(
            "Data connection to %s:%d failed: %s",
            context.host, context.port, reason.getErrorMessage(),
            exc_info=failure_to_exc_info(reason), extra={"session": self.session},
        )
        self._complete(
            context, DataConnectionFailed(context.host, context.port, reason.value)
        )

    def connection_lost(self, context: PassiveContext, reason: Failure) -> None:
        self._clear(context)
        if not context.completed:
            context.cancel_timeout()
            context.completed = True
            self._complete(
                context, DataConnectionFailed(context.host, context.port, reason.value)
            )

    def close(self) -> None:
        """Drop the current data connection, if any"""
        context, self.context = self.context, None
        if context is None:
            return
        # the queue fails the PASV command, the disconnect must not complete it again
        context.completed = True
        context.cancel_timeout()
        if context.protocol is not None and context.protocol.transport is not None:
            context.protocol.abort()
        elif context.connector is not None:
            context.connector.disconnect()

    def _timed_out(self, context: PassiveContext) -> None:
        context.timeout_call = None
        if context.completed:
            return
        context.completed = True
        logger.warning(
            "Data connection to %s:%d not established within %s seconds, aborting",
            context.host, context.port, self.timeout,
            extra={"session": self.session},
        )
        queue = self.session.queue
        if queue.head is context.command:
            queue.pop_head()
        if not self.session.writable:
            self._drop(context)
            queue.complete(context.command, ConnectionSevered())
            return
        abort = self.session.send_urgent("ABOR")
        abort.addBoth(self._aborted, context)

    def _aborted(self, result: Any, context: PassiveContext) -> None:
        self._drop(context)
        self.session.queue.complete(context.command, PassiveTimeout(self.timeout))

    def _drop(self, context: PassiveContext) -> None:
        if context.connector is not None:
            context.connector.disconnect()
        self._clear(context)

    def _complete(self, context: PassiveContext, result: Any) -> None:
        queue = self.session.queue
        if queue.head is context.command:
            queue.pop_head()
        queue.complete(context.command, result)
        self.session.flush()

    def _clear(self, context: PassiveContext) -> None:
        if self.context is context:
            self.context = None


def when_transfer_done(
    command_deferred: Deferred[Any], stream: IDataStream
) -> Deferred[None]:
    """Fire once both the transfer command completed and ``stream`` closed.

    The first error wins and drops the data connection.
    """
    dl = DeferredList(
        [command_deferred, stream.when_closed()],
        fireOnOneErrback=True,
        consumeErrors=True,
    )

    def unwrap(failure: Failure) -> Failure:
        stream.abort()
        failure.trap(FirstError)
        return failure.value.subFailure

    return dl.addCallbacks(lambda _: None, unwrap)
