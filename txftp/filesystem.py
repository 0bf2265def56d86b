"""
Filesystem style convenience operations on top of :class:`FTPClient`.

Paths are absolute. Each operation changes to the parent directory of its
target first and then works on the bare name, the current directory is
remembered so that repeated operations in one directory do not send a
``CWD`` every time.
"""

from __future__ import annotations

import logging
import posixpath
from typing import TYPE_CHECKING

from twisted.internet import defer

from txftp.exceptions import NotFound
from txftp.listing import ListingEntry

if TYPE_CHECKING:
    from datetime import datetime

    from twisted.internet.defer import Deferred

    from txftp.client import FTPClient
    from txftp.listing import ListingItem


logger = logging.getLogger(__name__)


def split_path(path: str, split: bool = True) -> tuple[str, str]:
    """Return the ``(directory, name)`` an operation on ``path`` works in.

    >>> split_path("/pub/docs/readme.txt")
    ('/pub/docs', 'readme.txt')
    >>> split_path("/pub/docs", split=False)
    ('/pub/docs', '')
    """
    path = path[1:] if path.startswith("/") else path
    if not split:
        return "/" + path, ""
    parts = path.rstrip("/").split("/")
    name = parts.pop()
    return "/" + "/".join(parts), name


class FTPFileSystem:
    def __init__(self, client: FTPClient):
        self.client = client
        self.current_dir: str = "/"

    def change_to_path(self, path: str, split: bool = True) -> Deferred[tuple[str, str]]:
        directory, name = split_path(path, split)
        if directory == self.current_dir:
            return defer.succeed((directory, name))

        def changed(_) -> tuple[str, str]:
            self.current_dir = directory
            return directory, name

        logger.debug("Changing directory to %s", directory)
        return self.client.cwd(directory).addCallback(changed)

    def get(self, path: str) -> Deferred[bytes]:
        return self.change_to_path(path).addCallback(
            lambda dn: self.client.retrieve(dn[1])
        )

    def put(self, data: bytes | str, path: str) -> Deferred[None]:
        return self.change_to_path(path).addCallback(
            lambda dn: self.client.store(dn[1], data)
        )

    def append(self, data: bytes | str, path: str) -> Deferred[None]:
        return self.change_to_path(path).addCallback(
            lambda dn: self.client.store(dn[1], data, append=True)
        )

    def delete(self, path: str) -> Deferred[None]:
        return self.change_to_path(path).addCallback(
            lambda dn: self.client.send("DELE", dn[1])
        )

    def rename(self, source: str, destination: str) -> Deferred[None]:
        def rename(dn: tuple[str, str]) -> Deferred[None]:
            d = self.client.send("RNFR", dn[1])
            d.addCallback(
                lambda _: self.client.send("RNTO", posixpath.basename(destination))
            )
            return d

        return self.change_to_path(source).addCallback(rename)

    def mkdir(self, path: str) -> Deferred[str]:
        """Fires with the path of the new directory as reported by the server"""
        return self.change_to_path(path).addCallback(
            lambda dn: self.client.send("MKD", dn[1])
        )

    def rmdir(self, path: str) -> Deferred[None]:
        return self.change_to_path(path).addCallback(
            lambda dn: self.client.send("RMD", dn[1])
        )

    def readdir(self, path: str) -> Deferred[list[ListingItem]]:
        """List ``path``. Lines no dialect recognized are included as
        strings."""

        def listed(dn: tuple[str, str]) -> Deferred[list[ListingItem]]:
            return self.client.list().addCallback(lambda stream: stream.when_done())

        return self.change_to_path(path, split=False).addCallback(listed)

    def stat(self, path: str) -> Deferred[ListingEntry]:
        def find(items: list[ListingItem], name: str) -> ListingEntry:
            for item in items:
                if isinstance(item, ListingEntry) and item.name == name:
                    return item
            raise NotFound(path)

        def listed(dn: tuple[str, str]) -> Deferred[ListingEntry]:
            d = self.client.list()
            d.addCallback(lambda stream: stream.when_done())
            return d.addCallback(find, dn[1])

        return self.change_to_path(path).addCallback(listed)

    def last_modified(self, entry: ListingEntry) -> datetime | None:
        return entry.last_modified(self.client.settings.getint("FTP_TZ_HOUR_DIFF"))
