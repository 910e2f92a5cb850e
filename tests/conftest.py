"""Shared fixtures for FileShare tests."""

import os

import pytest
from fastapi.testclient import TestClient

from fileshare import FileServer
from fileshare.api import create_app


# Small chunks so even tiny test files take several steps
TEST_CHUNK_SIZE = 256


@pytest.fixture
def text_file(tmp_path):
    """A 1 KiB text file."""
    path = tmp_path / "send" / "hello.txt"
    path.parent.mkdir()
    path.write_bytes((b"0123456789abcdef" * 64)[:1024])
    return path


@pytest.fixture
def binary_file(tmp_path):
    path = tmp_path / "blob.bin"
    path.write_bytes(os.urandom(10_000))
    return path


@pytest.fixture
def send_dir(tmp_path):
    """A directory with one top-level file and one nested file."""
    root = tmp_path / "photos"
    (root / "sub").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"alpha content")
    (root / "sub" / "b.txt").write_bytes(b"bravo " * 200)
    return root


@pytest.fixture
def recv_dir(tmp_path):
    path = tmp_path / "inbox"
    path.mkdir()
    return path


@pytest.fixture
def send_server(text_file):
    return FileServer("send", text_file, chunk_size=TEST_CHUNK_SIZE)


@pytest.fixture
def dir_server(send_dir):
    return FileServer("send", send_dir, chunk_size=TEST_CHUNK_SIZE)


@pytest.fixture
def recv_server(recv_dir):
    return FileServer("recv", recv_dir, chunk_size=TEST_CHUNK_SIZE)


@pytest.fixture
def make_client():
    """Build a TestClient for a FileServer."""
    clients = []

    def _make(server):
        client = TestClient(create_app(server, heartbeat_interval=0.05))
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.close()


async def collect(body) -> bytes:
    """Drain an async byte stream."""
    data = b""
    async for chunk in body:
        data += chunk
    return data
