"""Sessions against the FTP server shipped with Twisted"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

import pytest
import pytest_twisted
from pytest_twisted import async_yield_fixture
from twisted.cred import checkers, credentials, portal

from txftp.client import FTPClient
from txftp.core.protocol import SessionState
from txftp.exceptions import CommandFailed, NotFound
from txftp.filesystem import FTPFileSystem
from txftp.listing import ListingEntry

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path


USERNAME = "txftp"
PASSWORD = "passwd"


@async_yield_fixture
async def server(tmp_path: Path) -> AsyncGenerator[tuple[int, Path]]:
    from twisted.internet import reactor
    from twisted.protocols.ftp import FTPFactory, FTPRealm

    public = tmp_path / "public"
    public.mkdir()
    (public / "file.txt").write_bytes(b"I have the power!")
    (public / "docs").mkdir()
    (tmp_path / USERNAME).mkdir()

    realm = FTPRealm(anonymousRoot=str(public), userHome=str(tmp_path))
    p = portal.Portal(realm)
    p.registerChecker(checkers.AllowAnonymousAccess(), credentials.IAnonymous)
    users_checker = checkers.InMemoryUsernamePasswordDatabaseDontUse()
    users_checker.addUser(USERNAME, PASSWORD)
    p.registerChecker(users_checker, credentials.IUsernamePassword)
    port = reactor.listenTCP(0, FTPFactory(portal=p), interface="127.0.0.1")

    yield port.getHost().port, tmp_path

    await port.stopListening()


@pytest.fixture
def client():
    client = FTPClient({"FTP_HOST": "127.0.0.1"})

    yield client

    client.close()


@pytest_twisted.ensureDeferred
async def test_anonymous_session(server, client):
    portno, _ = server
    await client.connect(port=portno)
    assert client.state is SessionState.CONNECTED
    assert client.features["SIZE"] is True
    await client.auth()
    assert client.state is SessionState.AUTHORIZED
    assert await client.pwd() == "/"
    assert await client.size("file.txt") == 17


@pytest_twisted.ensureDeferred
async def test_list(server, client):
    portno, _ = server
    await client.connect(port=portno)
    await client.auth()
    stream = await client.list()
    items = await stream.when_done()
    entries = {item.name: item for item in items if isinstance(item, ListingEntry)}
    assert set(entries) == {"file.txt", "docs"}
    assert entries["docs"].is_directory
    assert entries["file.txt"].size == 17


@pytest_twisted.ensureDeferred
async def test_retrieve(server, client):
    portno, _ = server
    await client.connect(port=portno)
    await client.auth()
    assert await client.retrieve("file.txt") == b"I have the power!"


@pytest_twisted.ensureDeferred
async def test_retrieve_nonexistent(server, client):
    portno, _ = server
    await client.connect(port=portno)
    await client.auth()
    with pytest.raises(CommandFailed) as excinfo:
        await client.retrieve("nonexistent.txt")
    assert excinfo.value.code == 550
    # the session survives a failed transfer
    assert await client.pwd() == "/"


@pytest_twisted.ensureDeferred
async def test_invalid_credentials(server, client, reactor_pytest):
    if reactor_pytest == "asyncio" and sys.platform == "win32":
        pytest.skip("Leaves a dirty reactor on Windows with asyncio")
    portno, _ = server
    await client.connect(port=portno)
    with pytest.raises(CommandFailed) as excinfo:
        await client.auth(USERNAME, "invalid")
    assert excinfo.value.code == 530
    assert client.state is SessionState.CONNECTED


@pytest_twisted.ensureDeferred
async def test_store(server, client):
    portno, root = server
    await client.connect(port=portno)
    await client.auth(USERNAME, PASSWORD)
    await client.store("upload.bin", b"\x00payload\xff")
    assert (root / USERNAME / "upload.bin").read_bytes() == b"\x00payload\xff"


@pytest_twisted.ensureDeferred
async def test_filesystem(server, client):
    portno, root = server
    await client.connect(port=portno)
    await client.auth(USERNAME, PASSWORD)
    fs = FTPFileSystem(client)

    await fs.mkdir("/reports")
    await fs.put(b"2024", "/reports/year.txt")
    assert await fs.get("/reports/year.txt") == b"2024"
    entry = await fs.stat("/reports/year.txt")
    assert entry.size == 4
    await fs.rename("/reports/year.txt", "/reports/renamed.txt")
    assert (root / USERNAME / "reports" / "renamed.txt").exists()
    with pytest.raises(NotFound):
        await fs.stat("/reports/year.txt")
    await fs.delete("/reports/renamed.txt")
    await fs.rmdir("/reports")
    assert not (root / USERNAME / "reports").exists()
