"""
tests: this package contains all txftp unittests
"""

from __future__ import annotations

from typing import Any

from twisted.internet.testing import MemoryReactorClock, StringTransport
from twisted.python.failure import Failure

from txftp.client import FTPClient
from txftp.core.protocol import FTPControlProtocol
from txftp.settings import Settings



FEATURES_REPLY = (
    b"211-Extensions supported:\r\n"
    b" MDTM\r\n"
    b" SIZE\r\n"
    b" REST STREAM\r\n"
    b" MLST type*;size*;modify*;\r\n"
    b" IDLE\r\n"
    b"211 End\r\n"
)


def result_of(d) -> Any:
    """Return the result of an already fired Deferred, raising its failure"""
    results: list[Any] = []
    d.addBoth(results.append)
    assert results, f"{d!r} has not fired"
    result = results[0]
    if isinstance(result, Failure):
        result.raiseException()
    return result


def get_protocol(
    settings: dict[str, Any] | None = None,
) -> tuple[FTPControlProtocol, StringTransport, MemoryReactorClock]:
    clock = MemoryReactorClock()
    protocol = FTPControlProtocol(Settings(settings), clock)
    transport = StringTransport()
    protocol.makeConnection(transport)
    return protocol, transport, clock


def reply(protocol: FTPControlProtocol, clock: MemoryReactorClock, data: bytes) -> None:
    protocol.dataReceived(data)
    clock.advance(0)


def greet(protocol, transport, clock, features: bytes = FEATURES_REPLY) -> None:
    reply(protocol, clock, b"220 Service ready\r\n")
    assert transport.value() == b"FEAT\r\n"
    transport.clear()
    reply(protocol, clock, features)


def login(protocol, transport, clock) -> None:
    d = protocol.auth("user", "secret")
    reply(protocol, clock, b"331 Password required for user\r\n")
    reply(protocol, clock, b"230 User logged in\r\n")
    reply(protocol, clock, b"200 Type set to I\r\n")
    assert result_of(d) is None
    transport.clear()


def get_session(settings: dict[str, Any] | None = None):
    """A logged in protocol over a StringTransport"""
    protocol, transport, clock = get_protocol(settings)
    greet(protocol, transport, clock)
    login(protocol, transport, clock)
    return protocol, transport, clock


def connect_data(clock: MemoryReactorClock, index: int = -1):
    """Complete the data connection attempt recorded by ``clock``"""
    factory = clock.tcpClients[index][2]
    data = factory.buildProtocol(None)
    data_transport = StringTransport()
    data.makeConnection(data_transport)
    return data, data_transport


def get_client(settings=None, features: bytes = FEATURES_REPLY, logged_in: bool = True):
    """An :class:`FTPClient` connected through a MemoryReactorClock"""
    clock = MemoryReactorClock()
    client = FTPClient(settings, reactor=clock)
    d = client.connect("ftp.example.com", 2121)
    factory = clock.tcpClients[0][2]
    protocol = factory.buildProtocol(None)
    transport = StringTransport()
    protocol.makeConnection(transport)
    greet(protocol, transport, clock, features)
    assert result_of(d) is client
    if logged_in:
        login(protocol, transport, clock)
    return client, protocol, transport, clock
