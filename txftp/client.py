from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from twisted.internet import defer
from twisted.internet.error import TimeoutError
from twisted.internet.protocol import ClientFactory

from txftp.core.passive import when_transfer_done
from txftp.core.protocol import FTPControlProtocol, SessionState
from txftp.exceptions import (
    BadTimestamp,
    ConnectionFailed,
    ConnectionSevered,
    ConnectTimeout,
    NotAuthorized,
    NotSupported,
)
from txftp.listing import ListingStream, parse_mlsd_line
from txftp.settings import Settings
from txftp.utils.log import failure_to_exc_info
from txftp.utils.python import to_bytes

if TYPE_CHECKING:
    from twisted.internet.defer import Deferred

    from txftp.core.passive import DataConnection
    from txftp.listing import ListingEntry


logger = logging.getLogger(__name__)


_MDTM_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})(\d{2})(\d{2})(\d{2})(?:\.\d+)?$")


class FTPClientFactory(ClientFactory):
    protocol = FTPControlProtocol
    noisy = False

    def __init__(self, settings: Settings, reactor, host: str, port: int):
        self.settings = settings
        self.reactor = reactor
        self.host = host
        self.port = port
        self.deferred: Deferred[FTPControlProtocol] = defer.Deferred()

    def buildProtocol(self, addr):
        p = self.protocol(self.settings, self.reactor)
        p.factory = self
        p.ready.chainDeferred(self.deferred)
        return p

    def clientConnectionFailed(self, connector, reason):
        if reason.check(TimeoutError):
            error = ConnectTimeout(
                self.host, self.port, self.settings.getfloat("FTP_CONNECT_TIMEOUT")
            )
        else:
            error = ConnectionFailed(self.host, self.port, reason.value)
        logger.error("%s", error, exc_info=failure_to_exc_info(reason))
        self.deferred.errback(error)


class FTPClient:
    """A single FTP session.

    All operations return Deferreds. Apart from :meth:`connect` and
    :meth:`auth` they require a logged in session and fail with
    :class:`~txftp.exceptions.NotAuthorized` otherwise.
    """

    factory_class = FTPClientFactory

    def __init__(self, settings: Settings | dict[str, Any] | None = None, reactor=None):
        if not isinstance(settings, Settings):
            settings = Settings(settings)
        if reactor is None:
            from twisted.internet import reactor
        self.settings = settings
        self.reactor = reactor
        self.protocol: FTPControlProtocol | None = None

    @property
    def state(self) -> SessionState:
        if self.protocol is None:
            return SessionState.CLOSED
        return self.protocol.state

    @property
    def features(self) -> dict[str, str | bool]:
        if self.protocol is None:
            return {}
        return self.protocol.features

    @property
    def signals(self):
        return self.protocol.signals if self.protocol is not None else None

    def connect(self, host: str | None = None, port: int | None = None) -> Deferred[FTPClient]:
        if host is None:
            host = self.settings.get("FTP_HOST")
        if port is None:
            port = self.settings.getint("FTP_PORT")
        if self.protocol is not None:
            self.protocol.close()
            self.protocol = None
        factory = self.factory_class(self.settings, self.reactor, host, port)
        logger.debug("Connecting to %s:%d", host, port)
        self.reactor.connectTCP(
            host, port, factory, timeout=self.settings.getfloat("FTP_CONNECT_TIMEOUT")
        )

        def connected(protocol: FTPControlProtocol) -> FTPClient:
            self.protocol = protocol
            return self

        return factory.deferred.addCallback(connected)

    def auth(self, user: str | None = None, password: str | None = None):
        """Log in, returns ``False`` if the session is not waiting for
        credentials"""
        if self.protocol is None:
            return False
        return self.protocol.auth(user, password)

    def send(self, verb: str, argument: Any = None) -> Deferred[Any]:
        if self.protocol is None:
            return defer.fail(ConnectionSevered())
        return self.protocol.send(verb, argument)

    def _authorized_send(self, verb: str, argument: Any = None) -> Deferred[Any]:
        if self.state is not SessionState.AUTHORIZED:
            return defer.fail(NotAuthorized())
        return self.send(verb, argument)

    def _check_feature(self, feature: str, value: str | None = None) -> NotSupported | None:
        supported = self.features.get(feature)
        if not supported or (value is not None and value not in str(supported).upper().split()):
            return NotSupported(f"{feature} {value}" if value else feature)
        return None

    def pwd(self) -> Deferred[str]:
        return self._authorized_send("PWD")

    def cwd(self, path: str) -> Deferred[None]:
        return self._authorized_send("CWD", path)

    def system(self) -> Deferred[str]:
        return self._authorized_send("SYST")

    def status(self, path: str | None = None) -> Deferred[str]:
        return self._authorized_send("STAT", path)

    def noop(self) -> Deferred[None]:
        return self._authorized_send("NOOP")

    def chmod(self, path: str, mode: str | int) -> Deferred[None]:
        return self._authorized_send("SITE CHMOD", f"{mode} {path}")

    def size(self, path: str) -> Deferred[int]:
        error = self._check_feature("SIZE")
        if error is not None:
            return defer.fail(error)
        return self._authorized_send("SIZE", path).addCallback(
            lambda text: int(text.strip())
        )

    def last_mod(self, path: str) -> Deferred[datetime]:
        error = self._check_feature("MDTM")
        if error is not None:
            return defer.fail(error)
        return self._authorized_send("MDTM", path).addCallback(parse_mdtm)

    def restart(self, offset: int) -> Deferred[None]:
        error = self._check_feature("REST", "STREAM")
        if error is not None:
            return defer.fail(error)
        return self._authorized_send("REST", offset)

    def idle(self, seconds: int | None = None) -> Deferred[int | None]:
        """Ask the server for a new idle timeout, the keepalive follows it"""
        error = self._check_feature("IDLE")
        if error is not None:
            return defer.fail(error)

        def changed(_):
            if seconds is not None:
                self.protocol.set_idle_timeout(seconds)
            return seconds

        return self._authorized_send("SITE IDLE", seconds).addCallback(changed)

    def mlst(self, path: str | None = None) -> Deferred[ListingEntry]:
        error = self._check_feature("MLST")
        if error is not None:
            return defer.fail(error)

        def parse(text: str) -> ListingEntry:
            lines = text.split("\n")
            # the facts are on the line between the framing lines
            fact_line = lines[1] if len(lines) > 2 else lines[0]
            return parse_mlsd_line(fact_line)

        return self._authorized_send("MLST", path).addCallback(parse)

    def list(self, path: str | None = None) -> Deferred[ListingStream]:
        return self._listing("LIST", path)

    def mlsd(self, path: str | None = None) -> Deferred[ListingStream]:
        return self._listing("MLSD", path)

    def _listing(self, command: str, path: str | None) -> Deferred[ListingStream]:
        def transfer(stream: DataConnection) -> ListingStream:
            listing = ListingStream(command, self.protocol.encoding)
            listing.attach(stream, self.send(command, path))
            return listing

        return self._authorized_send("PASV").addCallback(transfer)

    def retrieve(self, path: str) -> Deferred[bytes]:
        """Download ``path``, fires with its contents once the transfer is done"""

        def transfer(stream: DataConnection) -> Deferred[bytes]:
            chunks: list[bytes] = []
            stream.set_consumer(chunks.append)
            d = when_transfer_done(self.send("RETR", path), stream)
            return d.addCallback(lambda _: b"".join(chunks))

        return self._authorized_send("PASV").addCallback(transfer)

    def store(self, path: str, data: bytes | str, append: bool = False) -> Deferred[None]:
        def transfer(stream: DataConnection) -> Deferred[None]:
            d = self.send("APPE" if append else "STOR", path)
            stream.write(to_bytes(data, self.protocol.encoding))
            stream.finish()
            return when_transfer_done(d, stream)

        return self._authorized_send("PASV").addCallback(transfer)

    def close(self) -> None:
        if self.protocol is not None:
            self.protocol.close()


def parse_mdtm(text: str) -> datetime:
    """``YYYYMMDDHHMMSS[.fraction]`` in UTC, the fraction is dropped"""
    match = _MDTM_RE.match(text.strip())
    if match is None:
        raise BadTimestamp(text)
    try:
        return datetime(*map(int, match.groups()), tzinfo=timezone.utc)
    except ValueError:
        raise BadTimestamp(text)
