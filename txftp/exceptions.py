"""
txftp exceptions

Every failure surfaced through a Deferred is an instance of :class:`FTPError`.
The three families below tell apart errors that break the protocol, errors
that sever a connection and errors the server reported for one command.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from txftp.core.replies import ReplyRecord


class FTPError(Exception):
    """Base class for all txftp errors"""


# Protocol errors


class ProtocolError(FTPError):
    """The server sent something the client cannot make sense of"""


class ServiceNotReady(ProtocolError):
    """The greeting was not a 220 reply"""

    def __init__(self, code: int, text: str = ""):
        super().__init__(code, text)
        self.code = code
        self.text = text

    def __str__(self) -> str:
        return f"Did not receive service ready response: {self.code}{self.text}"


class BadPassiveReply(ProtocolError):
    """A 227 reply without a ``h1,h2,h3,h4,p1,p2`` address"""

    def __init__(self, text: str):
        super().__init__(text)
        self.text = text

    def __str__(self) -> str:
        return f"Could not parse passive mode response: {self.text!r}"


class BadTimestamp(ProtocolError):
    """An MDTM reply that is not ``YYYYMMDDHHMMSS[.fraction]``"""

    def __init__(self, text: str):
        super().__init__(text)
        self.text = text

    def __str__(self) -> str:
        return f"Invalid date/time format from server: {self.text!r}"


class UnexpectedReply(ProtocolError):
    """A reply code outside the 1yz to 5yz range, it fails the waiting command"""

    def __init__(self, record: ReplyRecord):
        super().__init__(record)
        self.record = record

    def __str__(self) -> str:
        return f"Unexpected reply: {self.record.code}{self.record.text}"


# Transport errors


class TransportError(FTPError):
    """A control or data connection failed or went away"""


class ConnectionSevered(TransportError):
    """The control connection is gone; every queued command fails with this"""

    def __init__(self, reason: Any = None):
        super().__init__(reason)
        self.reason = reason

    def __str__(self) -> str:
        if self.reason is None:
            return "Connection severed"
        return f"Connection severed: {self.reason}"


class ConnectTimeout(TransportError):
    def __init__(self, host: str, port: int, timeout: float):
        super().__init__(host, port, timeout)
        self.host = host
        self.port = port
        self.timeout = timeout

    def __str__(self) -> str:
        return f"Connecting to {self.host}:{self.port} took longer than {self.timeout} seconds"


class ConnectionFailed(TransportError):
    def __init__(self, host: str, port: int, reason: Any = None):
        super().__init__(host, port, reason)
        self.host = host
        self.port = port
        self.reason = reason

    def __str__(self) -> str:
        return f"Connection to {self.host}:{self.port} failed: {self.reason}"


class DataConnectionFailed(ConnectionFailed):
    def __str__(self) -> str:
        return f"(PASV) Data connection to {self.host}:{self.port} failed: {self.reason}"


class PassiveTimeout(TransportError):
    def __init__(self, timeout: float):
        super().__init__(timeout)
        self.timeout = timeout

    def __str__(self) -> str:
        return "(PASV) Data connection timed out while connecting"


class IdleTimeout(TransportError):
    def __init__(self, seconds: float):
        super().__init__(seconds)
        self.seconds = seconds

    def __str__(self) -> str:
        return f"Keepalive failed after {self.seconds} idle seconds"


# Operational errors


class CommandFailed(FTPError):
    """The server rejected a single command. The session stays usable."""

    def __init__(self, code: int, text: str = ""):
        super().__init__(code, text)
        self.code = code
        self.text = text

    def __str__(self) -> str:
        text = self.text.strip()
        return f"Server Error: {self.code}" + (f" {text}" if text else "")


class NotAuthorized(FTPError):
    def __str__(self) -> str:
        return "Unauthorized"


class NotFound(FTPError):
    def __init__(self, path: str):
        super().__init__(path)
        self.path = path

    def __str__(self) -> str:
        return f"File at location {self.path} not found"


class NotSupported(FTPError):
    def __init__(self, command: str):
        super().__init__(command)
        self.command = command

    def __str__(self) -> str:
        return f"This server doesn't support the {self.command} command"
