"""
Directory listing parsing.

``LIST`` output is not standardized. Two dialects cover nearly every
server in the wild, the Unix ``ls -l`` long form::

    -rw-r--r--   1 root     other        531 Jan 29 03:26 README
    lrwxrwxrwx   1 root     other          7 Jan 25 00:17 bin -> usr/bin

and the DOS/IIS form::

    04-27-00  09:09PM       <DIR>          licensed
    07-18-00  10:16AM                 1435 readme.txt

Lines that match neither are handed back verbatim, it is up to the caller
to make sense of them. ``MLSD`` output (RFC 3659) is machine readable and
parsed into the same :class:`ListingEntry` type.
"""

from __future__ import annotations

import codecs
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, NamedTuple, Union

from twisted.internet.defer import Deferred

from txftp.core.passive import when_transfer_done

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from twisted.python.failure import Failure

    from txftp.interfaces import IDataStream


logger = logging.getLogger(__name__)


class NodeType(Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMBOLIC_LINK = "symlink"
    UNKNOWN = "unknown"


class Permissions(NamedTuple):
    read: bool = False
    write: bool = False
    exec: bool = False

    @classmethod
    def from_triplet(cls, triplet: str) -> Permissions:
        """``rwx`` style triplet, ``s`` and ``t`` imply execute, ``S`` and
        ``T`` do not"""
        read, write, execute = triplet
        return cls(
            read=read == "r",
            write=write == "w",
            exec=execute != "-" and execute.islower(),
        )

    @classmethod
    def from_bits(cls, bits: int) -> Permissions:
        return cls(read=bool(bits & 4), write=bool(bits & 2), exec=bool(bits & 1))


@dataclass
class ListingEntry:
    name: str
    type: NodeType = NodeType.UNKNOWN
    size: int | None = None
    owner: str | None = None
    group: str | None = None
    user_permissions: Permissions | None = None
    group_permissions: Permissions | None = None
    other_permissions: Permissions | None = None
    year: int | None = None
    month: int | None = None
    day: int | None = None
    hour: int | None = None
    minute: int | None = None
    second: int | None = None
    target: str | None = None
    facts: dict[str, str] = field(default_factory=dict)

    @property
    def is_directory(self) -> bool:
        return self.type is NodeType.DIRECTORY

    def last_modified(self, tz_hour_diff: int = 0) -> datetime | None:
        """The modification time as an aware datetime.

        LIST times are in the server's local time, ``tz_hour_diff`` is the
        number of hours the server is behind UTC. MLSD times are always UTC.
        """
        if self.year is None or self.month is None or self.day is None:
            return None
        if "modify" in self.facts:
            tz = timezone.utc
        else:
            tz = timezone(timedelta(hours=-tz_hour_diff))
        return datetime(
            self.year,
            self.month,
            self.day,
            self.hour or 0,
            self.minute or 0,
            self.second or 0,
            tzinfo=tz,
        )


ListingItem = Union[ListingEntry, str]


MONTHS = {
    name: number
    for number, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun",
         "jul", "aug", "sep", "oct", "nov", "dec"],
        start=1,
    )
}

_UNIX_TYPES = {
    "-": NodeType.FILE,
    "d": NodeType.DIRECTORY,
    "l": NodeType.SYMBOLIC_LINK,
}

_UNIX_RE = re.compile(
    r"^(?P<type>[bcdelfmpSs\-])"
    r"(?P<user>[r\-][w\-][xsStTL\-])"
    r"(?P<group>[r\-][w\-][xsStTL\-])"
    r"(?P<other>[r\-][w\-][xsStTL\-])[+@.]?\s+"
    r"\d+\s+"
    r"(?P<owner>\S+)\s+"
    r"(?P<owner_group>\S+)\s+"
    r"(?P<size>\d+)\s+"
    r"(?P<month>[A-Za-z]{3})\s+"
    r"(?P<day>\d{1,2})\s+"
    r"(?:(?P<hour>\d{1,2}):(?P<minute>\d{2})|(?P<year>\d{4}))\s+"
    r"(?P<name>.+)$"
)

_DOS_RE = re.compile(
    r"^(?P<month>\d{2})[-/](?P<day>\d{2})[-/](?P<year>\d{2}|\d{4})\s+"
    r"(?P<hour>\d{1,2}):(?P<minute>\d{2})\s*(?P<ampm>[AaPp][Mm]?)?\s+"
    r"(?:(?P<dir><DIR>)|(?P<size>\d+))\s+"
    r"(?P<name>.+)$"
)

_MLSD_FACT_RE = re.compile(r"([^=;\s]+)=([^;]*);")
_MLSD_TIME_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})(\d{2})(\d{2})(\d{2})(?:\.\d+)?$")


def _dos_year(year: str) -> int:
    value = int(year)
    if len(year) == 4:
        return value
    # POSIX strptime pivot for %y
    return value + (1900 if value >= 69 else 2000)


def _parse_unix(line: str, now: datetime | None) -> ListingEntry | None:
    match = _UNIX_RE.match(line)
    if match is None:
        return None
    month = MONTHS.get(match.group("month").lower())
    if month is None:
        return None
    node_type = _UNIX_TYPES.get(match.group("type"), NodeType.UNKNOWN)
    name, target = match.group("name"), None
    if node_type is NodeType.SYMBOLIC_LINK and " -> " in name:
        name, target = name.split(" -> ", 1)
    if match.group("year") is not None:
        year, hour, minute = int(match.group("year")), None, None
    else:
        # no year means "within the last six months", assume the current one
        year = (now or datetime.now()).year
        hour, minute = int(match.group("hour")), int(match.group("minute"))
    return ListingEntry(
        name=name,
        type=node_type,
        size=int(match.group("size")),
        owner=match.group("owner"),
        group=match.group("owner_group"),
        user_permissions=Permissions.from_triplet(match.group("user")),
        group_permissions=Permissions.from_triplet(match.group("group")),
        other_permissions=Permissions.from_triplet(match.group("other")),
        year=year,
        month=month,
        day=int(match.group("day")),
        hour=hour,
        minute=minute,
        target=target,
    )


def _parse_dos(line: str) -> ListingEntry | None:
    match = _DOS_RE.match(line)
    if match is None:
        return None
    hour = int(match.group("hour"))
    ampm = (match.group("ampm") or "").upper()
    if ampm.startswith("P") and hour < 12:
        hour += 12
    elif ampm.startswith("A") and hour == 12:
        hour = 0
    is_dir = match.group("dir") is not None
    return ListingEntry(
        name=match.group("name"),
        type=NodeType.DIRECTORY if is_dir else NodeType.FILE,
        size=0 if is_dir else int(match.group("size")),
        year=_dos_year(match.group("year")),
        month=int(match.group("month")),
        day=int(match.group("day")),
        hour=hour,
        minute=int(match.group("minute")),
    )


def parse_list_line(line: str, now: datetime | None = None) -> ListingItem:
    """Parse one line of ``LIST`` output.

    Returns a :class:`ListingEntry`, or ``line`` itself when no known
    dialect matches it.
    """
    entry = _parse_unix(line, now)
    if entry is None:
        entry = _parse_dos(line)
    if entry is None:
        logger.debug("Unrecognized listing line: %r", line)
        return line
    return entry


def _mlsd_type(value: str) -> tuple[NodeType, str | None]:
    lowered = value.lower()
    if lowered == "file":
        return NodeType.FILE, None
    if lowered in ("dir", "cdir", "pdir"):
        return NodeType.DIRECTORY, None
    if lowered.startswith(("os.unix=symlink", "os.unix=slink")):
        _, _, target = value.partition(":")
        return NodeType.SYMBOLIC_LINK, target or None
    return NodeType.UNKNOWN, None


def parse_mlsd_line(line: str) -> ListingEntry:
    """Parse one line of ``MLSD`` output::

        type=file;size=1024;modify=20230115083000;unix.mode=0644; notes.txt
    """
    line = line.strip()
    facts: dict[str, str] = {}
    rest = line
    while True:
        match = _MLSD_FACT_RE.match(rest)
        if match is None:
            break
        facts[match.group(1).lower()] = match.group(2)
        rest = rest[match.end():]
    if not facts:
        return ListingEntry(name=line)
    entry = ListingEntry(name=rest[1:] if rest.startswith(" ") else rest, facts=facts)

    if "type" in facts:
        entry.type, entry.target = _mlsd_type(facts["type"])
    size = facts.get("size", facts.get("sizd"))
    if size is not None and size.isdigit():
        entry.size = int(size)
    modify = _MLSD_TIME_RE.match(facts.get("modify", ""))
    if modify is not None:
        (entry.year, entry.month, entry.day,
         entry.hour, entry.minute, entry.second) = map(int, modify.groups())
    entry.owner = facts.get("unix.owner")
    entry.group = facts.get("unix.group")
    mode = facts.get("unix.mode")
    if mode is not None:
        try:
            bits = int(mode, 8)
        except ValueError:
            logger.debug("Ignoring invalid unix.mode fact %r", mode)
        else:
            entry.user_permissions = Permissions.from_bits(bits >> 6)
            entry.group_permissions = Permissions.from_bits(bits >> 3)
            entry.other_permissions = Permissions.from_bits(bits)
    return entry


def parse_line(line: str, command: str = "LIST", now: datetime | None = None) -> ListingItem:
    if command.upper() == "MLSD":
        return parse_mlsd_line(line)
    return parse_list_line(line, now)


def process_dir_lines(
    lines: Iterable[str], command: str = "LIST", now: datetime | None = None
) -> list[ListingItem]:
    return [parse_line(line, command, now) for line in lines if line.strip()]


_LINE_SPLIT_RE = re.compile(r"\r\n|\n")


class LineBuffer:
    """Split text read from a data connection into complete lines"""

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, text: str) -> list[str]:
        self._buffer += text
        head, sep, tail = self._buffer.rpartition("\n")
        if not sep:
            return []
        self._buffer = tail
        return _LINE_SPLIT_RE.split(head.rstrip("\r"))

    def flush(self) -> list[str]:
        """Return the unterminated remainder, if any"""
        remainder, self._buffer = self._buffer.rstrip("\r"), ""
        return [remainder] if remainder else []


class ListingStream:
    """The entries of one ``LIST`` or ``MLSD`` transfer, as they arrive.

    Observers added with :meth:`add_observer` are called with every item,
    including the ones received before they were added. Iterating yields
    the items received so far that were not iterated over yet.
    """

    def __init__(
        self,
        command: str = "LIST",
        encoding: str = "utf-8",
        now: datetime | None = None,
    ):
        self.command = command.upper()
        self.now = now
        self.items: list[ListingItem] = []
        self.finished: bool = False
        self._decoder = codecs.getincrementaldecoder(encoding)("replace")
        self._lines = LineBuffer()
        self._unread: deque[ListingItem] = deque()
        self._observers: list[Callable[[ListingItem], Any]] = []
        self._waiters: list[Deferred[list[ListingItem]]] = []
        self._failure: Failure | None = None

    def add_observer(self, observer: Callable[[ListingItem], Any]) -> None:
        self._observers.append(observer)
        for item in self.items:
            observer(item)

    def __iter__(self) -> Iterator[ListingItem]:
        while self._unread:
            yield self._unread.popleft()

    def when_done(self) -> Deferred[list[ListingItem]]:
        d: Deferred[list[ListingItem]] = Deferred()
        if self._failure is not None:
            d.errback(self._failure)
        elif self.finished:
            d.callback(list(self.items))
        else:
            self._waiters.append(d)
        return d

    def attach(self, stream: IDataStream, command_deferred: Deferred[Any]) -> None:
        """Read listing data from ``stream`` until it closes and the
        listing command completed"""
        stream.set_consumer(self.feed)
        when_transfer_done(command_deferred, stream).addCallbacks(
            self._finished, self._failed
        )

    def feed(self, data: bytes) -> None:
        self._emit_lines(self._lines.feed(self._decoder.decode(data)))

    def _emit_lines(self, lines: list[str]) -> None:
        for line in lines:
            if line.strip():
                self._emit(parse_line(line, self.command, self.now))

    def _emit(self, item: ListingItem) -> None:
        self.items.append(item)
        self._unread.append(item)
        for observer in self._observers:
            observer(item)

    def _finished(self, _: Any) -> None:
        self._emit_lines(self._lines.feed(self._decoder.decode(b"", final=True)))
        self._emit_lines(self._lines.flush())
        self.finished = True
        waiters, self._waiters = self._waiters, []
        for d in waiters:
            d.callback(list(self.items))

    def _failed(self, failure: Failure) -> None:
        self._failure = failure
        self.finished = True
        waiters, self._waiters = self._waiters, []
        for d in waiters:
            d.errback(failure)
