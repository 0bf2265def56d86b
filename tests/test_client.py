from datetime import datetime, timezone

import pytest
from testfixtures import LogCapture
from twisted.internet.error import ConnectionDone, ConnectionRefusedError, TimeoutError
from twisted.internet.testing import MemoryReactorClock
from twisted.python.failure import Failure

from tests import connect_data, get_client, reply, result_of
from txftp.client import FTPClient, parse_mdtm
from txftp.core.protocol import SessionState
from txftp.exceptions import (
    BadTimestamp,
    ConnectionFailed,
    ConnectionSevered,
    ConnectTimeout,
    NotAuthorized,
    NotSupported,
)
from txftp.listing import NodeType


class TestConnect:
    def test_connect(self):
        client, protocol, transport, clock = get_client(logged_in=False)
        host, port, _, timeout, _ = clock.tcpClients[0]
        assert (host, port, timeout) == ("ftp.example.com", 2121, 10.0)
        assert client.protocol is protocol
        assert client.state is SessionState.CONNECTED
        assert client.features["MDTM"] is True

    def test_defaults_from_settings(self):
        clock = MemoryReactorClock()
        client = FTPClient({"FTP_HOST": "example.org", "FTP_PORT": 21}, reactor=clock)
        client.connect()
        assert clock.tcpClients[0][:2] == ("example.org", 21)

    def test_timeout(self):
        clock = MemoryReactorClock()
        client = FTPClient({"FTP_CONNECT_TIMEOUT": 3}, reactor=clock)
        d = client.connect("ftp.example.com", 21)
        factory = clock.tcpClients[0][2]
        factory.clientConnectionFailed(None, Failure(TimeoutError()))
        with pytest.raises(ConnectTimeout, match="longer than 3.0 seconds"):
            result_of(d)
        assert client.state is SessionState.CLOSED

    def test_refused(self):
        clock = MemoryReactorClock()
        client = FTPClient(reactor=clock)
        d = client.connect("ftp.example.com", 21)
        factory = clock.tcpClients[0][2]
        with LogCapture("txftp.client") as log:
            factory.clientConnectionFailed(None, Failure(ConnectionRefusedError()))
        (record,) = log.records
        assert record.levelname == "ERROR"
        assert record.exc_info[0] is ConnectionRefusedError
        with pytest.raises(ConnectionFailed):
            result_of(d)

    def test_auth(self):
        client, protocol, transport, clock = get_client(logged_in=False)
        transport.clear()
        d = client.auth("alice", "pw")
        assert transport.value() == b"USER alice\r\n"
        reply(protocol, clock, b"331 Password required\r\n")
        reply(protocol, clock, b"230 Logged in\r\n")
        reply(protocol, clock, b"200 Type set to I\r\n")
        assert result_of(d) is None
        assert client.state is SessionState.AUTHORIZED

    def test_not_connected(self):
        client = FTPClient(reactor=MemoryReactorClock())
        assert client.auth() is False
        assert client.state is SessionState.CLOSED
        with pytest.raises(ConnectionSevered):
            result_of(client.send("NOOP"))

    def test_close(self):
        client, protocol, transport, clock = get_client()
        client.close()
        assert transport.disconnecting


class TestSingleShot:
    def test_requires_login(self):
        client, protocol, transport, clock = get_client(logged_in=False)
        transport.clear()
        with pytest.raises(NotAuthorized):
            result_of(client.pwd())
        assert transport.value() == b""

    @pytest.mark.parametrize(
        ("call", "line", "server_reply", "expected"),
        [
            (lambda c: c.pwd(), b"PWD", b'257 "/home" is cwd', "/home"),
            (lambda c: c.cwd("/pub"), b"CWD /pub", b"250 OK", None),
            (lambda c: c.system(), b"SYST", b"215 UNIX Type: L8", " UNIX Type: L8"),
            (lambda c: c.status(), b"STAT", b"211 All fine", " All fine"),
            (lambda c: c.noop(), b"NOOP", b"200 OK", None),
            (
                lambda c: c.chmod("file.txt", 755),
                b"SITE CHMOD 755 file.txt",
                b"200 Mode changed",
                None,
            ),
            (lambda c: c.size("file.txt"), b"SIZE file.txt", b"213 1234", 1234),
            (lambda c: c.restart(100), b"REST 100", b"350 Restarting", None),
        ],
    )
    def test_commands(self, call, line, server_reply, expected):
        client, protocol, transport, clock = get_client()
        d = call(client)
        assert transport.value() == line + b"\r\n"
        reply(protocol, clock, server_reply + b"\r\n")
        assert result_of(d) == expected

    def test_last_mod(self):
        client, protocol, transport, clock = get_client()
        d = client.last_mod("file.txt")
        assert transport.value() == b"MDTM file.txt\r\n"
        reply(protocol, clock, b"213 20240102030405.123\r\n")
        assert result_of(d) == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_last_mod_bad_timestamp(self):
        client, protocol, transport, clock = get_client()
        d = client.last_mod("file.txt")
        reply(protocol, clock, b"213 yesterday\r\n")
        with pytest.raises(BadTimestamp):
            result_of(d)

    def test_idle(self):
        client, protocol, transport, clock = get_client()
        d = client.idle(120)
        assert transport.value() == b"SITE IDLE 120\r\n"
        reply(protocol, clock, b"200 Idle timeout set\r\n")
        assert result_of(d) == 120
        assert protocol.idle_timeout == 120

    def test_mlst(self):
        client, protocol, transport, clock = get_client()
        d = client.mlst("file.txt")
        reply(
            protocol,
            clock,
            b"250-Listing file.txt\r\n type=file;size=10; file.txt\r\n250 End\r\n",
        )
        entry = result_of(d)
        assert entry.name == "file.txt"
        assert entry.type is NodeType.FILE
        assert entry.size == 10

    @pytest.mark.parametrize(
        ("call", "command"),
        [
            (lambda c: c.size("f"), "SIZE"),
            (lambda c: c.last_mod("f"), "MDTM"),
            (lambda c: c.restart(1), "REST STREAM"),
            (lambda c: c.idle(30), "IDLE"),
            (lambda c: c.mlst("f"), "MLST"),
        ],
    )
    def test_not_supported(self, call, command):
        client, protocol, transport, clock = get_client(
            features=b"211 No features\r\n"
        )
        with pytest.raises(NotSupported) as excinfo:
            result_of(call(client))
        assert str(excinfo.value) == (
            f"This server doesn't support the {command} command"
        )
        assert transport.value() == b""


class TestTransfers:
    def open_data(self, protocol, transport, clock):
        assert transport.value() == b"PASV\r\n"
        transport.clear()
        reply(protocol, clock, b"227 Entering Passive Mode (10,0,0,2,195,80)\r\n")
        assert clock.tcpClients[-1][:2] == ("10.0.0.2", 50000)
        data, data_transport = connect_data(clock)
        clock.advance(0)
        return data, data_transport

    def test_list(self):
        client, protocol, transport, clock = get_client()
        d = client.list("/pub")
        data, _ = self.open_data(protocol, transport, clock)
        assert transport.value() == b"LIST /pub\r\n"
        stream = result_of(d)
        reply(protocol, clock, b"150 Here comes the listing\r\n")
        data.dataReceived(
            b"drwxr-xr-x 2 ftp ftp 4096 Jan 01 2020 docs\r\n"
            b"-rw-r--r-- 1 ftp ftp 12 Jan 01 2020 notes.txt\r\n"
        )
        data.connectionLost(Failure(ConnectionDone()))
        done = stream.when_done()
        assert not done.called
        reply(protocol, clock, b"226 Transfer complete\r\n")
        items = result_of(done)
        assert [(item.name, item.type) for item in items] == [
            ("docs", NodeType.DIRECTORY),
            ("notes.txt", NodeType.FILE),
        ]

    def test_mlsd(self):
        client, protocol, transport, clock = get_client()
        d = client.mlsd()
        data, _ = self.open_data(protocol, transport, clock)
        assert transport.value() == b"MLSD\r\n"
        stream = result_of(d)
        data.dataReceived(b"type=dir; sub\r\ntype=file;size=3; a.txt\r\n")
        data.connectionLost(Failure(ConnectionDone()))
        reply(protocol, clock, b"226 Done\r\n")
        assert [entry.name for entry in result_of(stream.when_done())] == [
            "sub",
            "a.txt",
        ]

    def test_list_requires_login(self):
        client, protocol, transport, clock = get_client(logged_in=False)
        with pytest.raises(NotAuthorized):
            result_of(client.list())

    def test_retrieve(self):
        client, protocol, transport, clock = get_client()
        d = client.retrieve("file.txt")
        data, _ = self.open_data(protocol, transport, clock)
        assert transport.value() == b"RETR file.txt\r\n"
        reply(protocol, clock, b"150 Opening BINARY mode data connection\r\n")
        data.dataReceived(b"I have ")
        data.dataReceived(b"the power!")
        reply(protocol, clock, b"226 Transfer complete\r\n")
        results = []
        d.addBoth(results.append)
        assert results == []
        data.connectionLost(Failure(ConnectionDone()))
        assert results == [b"I have the power!"]

    def test_store(self):
        client, protocol, transport, clock = get_client()
        d = client.store("up.txt", "hello")
        data, data_transport = self.open_data(protocol, transport, clock)
        assert transport.value() == b"STOR up.txt\r\n"
        assert data_transport.value() == b"hello"
        assert data_transport.disconnecting
        data.connectionLost(Failure(ConnectionDone()))
        reply(protocol, clock, b"150 Ok to send data\r\n226 Transfer complete\r\n")
        assert result_of(d) is None

    def test_append(self):
        client, protocol, transport, clock = get_client()
        client.store("log.txt", b"more", append=True)
        self.open_data(protocol, transport, clock)
        assert transport.value() == b"APPE log.txt\r\n"


class TestParseMdtm:
    def test_parse(self):
        assert parse_mdtm("20231231235959") == datetime(
            2023, 12, 31, 23, 59, 59, tzinfo=timezone.utc
        )

    @pytest.mark.parametrize("text", ["2023123123595", "20231331000000", "now"])
    def test_invalid(self, text):
        with pytest.raises(BadTimestamp):
            parse_mdtm(text)
