from __future__ import annotations

import codecs
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from twisted.internet.defer import Deferred, fail
from twisted.internet.protocol import Protocol, connectionDone
from twisted.protocols.policies import TimeoutMixin
from twisted.python.failure import Failure

from txftp import signals
from txftp.core.codes import Outcome, classify, is_preliminary, parse_quoted_path
from txftp.core.passive import PassiveOrchestrator
from txftp.core.queue import CommandQueue, PendingCommand
from txftp.core.replies import ReplyFramer
from txftp.exceptions import (
    BadPassiveReply,
    CommandFailed,
    ConnectionSevered,
    IdleTimeout,
    ServiceNotReady,
    UnexpectedReply,
)
from txftp.settings import Settings
from txftp.signalmanager import SignalManager
from txftp.utils.log import failure_to_exc_info
from txftp.utils.python import to_bytes

if TYPE_CHECKING:
    from txftp.core.replies import ReplyRecord


logger = logging.getLogger(__name__)


# seconds before the server side idle timeout at which a NOOP is sent
KEEPALIVE_MARGIN = 10


class SessionState(Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AUTHORIZED = "authorized"
    CLOSED = "closed"


def parse_features(text: str) -> dict[str, str | bool]:
    """Parse the text of a multi-line FEAT reply::

        211-Extensions supported:
         MDTM
         REST STREAM
         SIZE
        211 End

    gives ``{"MDTM": True, "REST": "STREAM", "SIZE": True}``.
    """
    features: dict[str, str | bool] = {}
    lines = text.split("\n")
    # the first and the last line are the reply framing
    for line in lines[1:-1]:
        feature = line.strip()
        if not feature:
            continue
        key, sep, value = feature.partition(" ")
        features[key.upper()] = value if sep else True
    return features


class FTPControlProtocol(Protocol, TimeoutMixin):
    """The control connection of one FTP session.

    Replies are matched to commands strictly in order: every command is
    written once the previous one has been answered, and every final reply
    completes the oldest command waiting in :attr:`queue`.
    """

    def __init__(self, settings: Settings | None = None, reactor=None):
        if settings is None:
            settings = Settings()
        if reactor is None:
            from twisted.internet import reactor
        self.settings = settings
        self.reactor = reactor
        # TimeoutMixin schedules through this
        self.callLater = reactor.callLater

        self.encoding: str = settings.get("FTP_ENCODING")
        self.idle_timeout: float = settings.getfloat("FTP_IDLE_TIMEOUT")
        self.state = SessionState.CONNECTING
        self.features: dict[str, str | bool] = {}
        self.queue = CommandQueue(reactor)
        self.passive = PassiveOrchestrator(
            self, reactor, settings.getfloat("FTP_CONNECT_TIMEOUT")
        )
        self.signals = SignalManager(self)

        # fired with the protocol once the greeting and FEAT were handled
        self.ready: Deferred[FTPControlProtocol] = Deferred()
        self._framer = ReplyFramer()
        self._decoder = codecs.getincrementaldecoder(self.encoding)("replace")

    @property
    def writable(self) -> bool:
        return (
            self.transport is not None
            and self.connected
            and self.state is not SessionState.CLOSED
            and not getattr(self.transport, "disconnecting", False)
        )

    @property
    def keepalive_period(self) -> float | None:
        if self.idle_timeout <= KEEPALIVE_MARGIN:
            return None
        return self.idle_timeout - KEEPALIVE_MARGIN

    def connectionMade(self) -> None:
        logger.debug("Control connection to %s established", self.transport.getPeer())

    def dataReceived(self, data: bytes) -> None:
        self.resetTimeout()
        records = self._framer.feed(self._decoder.decode(data))
        completed = False
        for record in records:
            logger.debug("< %s%s", record.code, record.text)
            self.signals.send_catch_log(signals.reply_received, record=record)
            if self.state is SessionState.CLOSED:
                break
            if self.state is SessionState.CONNECTING:
                self._handle_greeting(record)
            else:
                completed = self._dispatch(record) or completed
        if completed:
            self.flush()

    def connectionLost(self, reason: Failure = connectionDone) -> None:
        self.setTimeout(None)
        self.state = SessionState.CLOSED
        error = ConnectionSevered(reason.getErrorMessage())
        self.queue.fail_all(error)
        self.passive.close()
        if not self.ready.called:
            self.ready.errback(error)
        logger.debug("Control connection closed: %s", reason.getErrorMessage())
        self.signals.send_catch_log(signals.session_closed, reason=reason)

    def _handle_greeting(self, record: ReplyRecord) -> None:
        if is_preliminary(record.code):
            return
        if record.code != 220:
            error = ServiceNotReady(record.code, record.text)
            logger.error("%s", error, extra={"session": self})
            self.ready.errback(error)
            self.transport.loseConnection()
            return
        self.state = SessionState.CONNECTED
        self.send("FEAT").addBoth(self._features_received)

    def _features_received(self, result: Any) -> None:
        if self.state is SessionState.CLOSED:
            return
        if isinstance(result, Failure):
            logger.debug("Server does not support FEAT: %s", result.getErrorMessage())
        else:
            self.features = parse_features(result)
            self.signals.send_catch_log(
                signals.features_discovered, features=self.features
            )
        self.signals.send_catch_log(signals.session_connected)
        if not self.ready.called:
            self.ready.callback(self)

    def _dispatch(self, record: ReplyRecord) -> bool:
        """Complete the head of the queue with ``record``.

        Return whether a command was completed.
        """
        if is_preliminary(record.code):
            return False
        head = self.queue.head
        if head is None:
            logger.warning(
                "Discarding reply with no command waiting: %s%s",
                record.code, record.text, extra={"session": self},
            )
            return False
        if record.code >= 600:
            error = UnexpectedReply(record)
            logger.error("%s", error, extra={"session": self})
            return self.queue.execute_next(error)
        outcome = classify(record.code)
        if outcome is Outcome.PASSIVE:
            try:
                self.passive.start(record, head)
            except BadPassiveReply as e:
                logger.error("%s", e, extra={"session": self})
                return self.queue.execute_next(e)
            return False
        return self.queue.execute_next(self._result_for(outcome, record, head))

    def _result_for(
        self, outcome: Outcome, record: ReplyRecord, head: PendingCommand
    ) -> Any:
        if outcome is Outcome.ERROR:
            return CommandFailed(record.code, record.text)
        if outcome is Outcome.TEXT:
            return record.text
        if outcome is Outcome.PATH:
            return parse_quoted_path(record.text)
        if outcome is Outcome.PASSWORD_REQUIRED:
            return True
        if outcome is Outcome.LOGGED_IN:
            return False
        if record.code == 250 and head.verb == "MLST":
            return record.text
        return None

    def send(self, verb: str, argument: Any = None) -> Deferred[Any]:
        """Queue a command and return a Deferred for its completion"""
        if not self.writable:
            return fail(ConnectionSevered())
        command = PendingCommand(verb, argument)
        idle = not self.queue
        self.queue.append(command)
        if idle:
            self._write(command)
        return command.deferred

    def send_urgent(self, verb: str, argument: Any = None) -> Deferred[Any]:
        """Put a command at the head of the queue and write it right away"""
        if not self.writable:
            return fail(ConnectionSevered())
        command = PendingCommand(verb, argument)
        self.queue.push_front(command)
        self._write(command)
        return command.deferred

    def flush(self) -> None:
        command = self.queue.next_unsent()
        if command is not None and self.writable:
            self._write(command)

    def _write(self, command: PendingCommand) -> None:
        command.sent = True
        if command.verb == "PASS":
            logger.debug("> PASS ****")
        else:
            logger.debug("> %s", command.line)
        self.signals.send_catch_log(signals.command_sent, command=command)
        self.transport.write(to_bytes(command.line + "\r\n", self.encoding))
        self.resetTimeout()

    def auth(self, user: str | None = None, password: str | None = None):
        """Log in and switch to binary mode.

        Returns a Deferred fired with the result of ``TYPE I``, or ``False``
        when the session is not waiting for credentials.
        """
        if self.state is not SessionState.CONNECTED:
            return False
        if user is None:
            user = self.settings.get("FTP_USER")
        if password is None:
            password = self.settings.get("FTP_PASSWORD")
        d: Deferred[Any] = Deferred()
        steps = iter([("USER", user), ("PASS", password)])

        def next_step(password_required):
            if password_required:
                try:
                    verb, argument = next(steps)
                except StopIteration:
                    d.errback(CommandFailed(331, " Login incomplete after PASS"))
                    return
                self.send(verb, argument).addCallbacks(next_step, d.errback)
                return
            self._authorized()
            self.send("TYPE", "I").chainDeferred(d)

        next_step(True)
        return d

    def _authorized(self) -> None:
        self.state = SessionState.AUTHORIZED
        logger.info("Logged in", extra={"session": self})
        self.signals.send_catch_log(signals.session_authorized)
        self.setTimeout(self.keepalive_period)

    def set_idle_timeout(self, seconds: float) -> None:
        self.idle_timeout = seconds
        if self.state is SessionState.AUTHORIZED:
            self.setTimeout(self.keepalive_period)

    def timeoutConnection(self) -> None:
        if self.state is not SessionState.AUTHORIZED:
            return
        logger.debug("Control connection idle, sending NOOP")
        self.send("NOOP").addCallbacks(self._keepalive_sent, self._keepalive_failed)

    def _keepalive_sent(self, result: Any) -> None:
        self.setTimeout(self.keepalive_period)

    def _keepalive_failed(self, failure: Failure) -> None:
        error = IdleTimeout(self.idle_timeout)
        logger.warning(
            "%s: %s", error, failure.getErrorMessage(),
            exc_info=failure_to_exc_info(failure), extra={"session": self},
        )
        self.signals.send_catch_log(signals.session_timeout, error=error)
        if self.transport is not None:
            self.transport.loseConnection()

    def close(self) -> None:
        if self.transport is not None:
            self.transport.loseConnection()
