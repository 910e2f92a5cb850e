"""Tests for the streaming transfer engine (download and upload paths)."""

import io
import json
import os
import zipfile

import pytest

from conftest import collect
from fileshare import FileServer, Phase
from fileshare.errors import MissingFileError, TransferError, UploadConflictError
from fileshare.transfer import ArchiveSink, iter_tree, safe_filename

PEER = "10.0.0.1"


class FakeUpload:
    """Stand-in for a parsed multipart file part."""

    def __init__(self, filename, data: bytes, size=None, on_read=None):
        self.filename = filename
        self.size = len(data) if size is None else size
        self._buffer = io.BytesIO(data)
        self._on_read = on_read
        self.reads = 0

    async def read(self, size: int = -1) -> bytes:
        self.reads += 1
        if self._on_read is not None:
            self._on_read(self.reads)
        return self._buffer.read(size)


async def start_download(server, peer=PEER):
    server.admit(peer)
    return await server.sender.start(peer)


def snapshots(queue):
    items = []
    while not queue.empty():
        items.append(json.loads(queue.get_nowait()))
    return items


# === Download: single file ===

class TestFileDownload:

    @pytest.mark.asyncio
    async def test_streams_exact_bytes(self, send_server, text_file):
        download = await start_download(send_server)
        data = await collect(download.body)

        assert data == text_file.read_bytes()
        assert download.size == 1024
        assert download.headers['Content-Length'] == "1024"
        assert 'filename="hello.txt"' in download.headers['Content-Disposition']

        snap = send_server.snapshot()
        assert snap.status is Phase.COMPLETED
        assert snap.transferred == 1024
        assert snap.progress == 100
        assert snap.client_ip is None

    @pytest.mark.asyncio
    async def test_progress_is_monotonic(self, text_file):
        server = FileServer("send", text_file, chunk_size=100, subscriber_buffer=1000)
        queue = server.events.subscribe()
        assert server.snapshot().status is Phase.WAITING

        download = await start_download(server)
        await collect(download.body)

        updates = snapshots(queue)
        transferred = [u['transferred'] for u in updates]
        assert transferred == sorted(transferred)
        assert transferred[-1] == 1024

        phases = [u['status'] for u in updates]
        assert "transferring" in phases
        assert phases.index("transferring") < phases.index("completed")

    @pytest.mark.asyncio
    async def test_log_records_lifecycle(self, send_server):
        download = await start_download(send_server)
        await collect(download.body)

        log = "\n".join(send_server.log.entries())
        assert f"Client {PEER} connected" in log
        assert f"Started download from {PEER}" in log
        assert f"Download completed for {PEER}" in log
        assert f"Client {PEER} disconnected" in log

    @pytest.mark.asyncio
    async def test_read_failure_sets_error(self, send_server, text_file):
        download = await start_download(send_server)
        text_file.unlink()

        assert await collect(download.body) == b""
        snap = send_server.snapshot()
        assert snap.status is Phase.ERROR
        assert snap.error
        assert send_server.gate.holder is None

    @pytest.mark.asyncio
    async def test_disconnect_sets_error(self, send_server):
        download = await start_download(send_server)
        await download.body.__anext__()
        await download.body.aclose()

        snap = send_server.snapshot()
        assert snap.status is Phase.ERROR
        assert snap.error == "client disconnected"
        assert send_server.gate.holder is None

    @pytest.mark.asyncio
    async def test_cancel_stops_at_next_chunk(self, send_server):
        download = await start_download(send_server)
        first = await download.body.__anext__()

        assert send_server.cancel("10.0.0.9") is Phase.CANCELLED
        rest = await collect(download.body)

        assert len(first) == 256
        assert rest == b""
        assert send_server.snapshot().status is Phase.CANCELLED
        assert send_server.gate.holder is None
        assert any("Transfer cancelled by 10.0.0.9" in e for e in send_server.log.entries())

    @pytest.mark.asyncio
    async def test_empty_file_completes(self, tmp_path):
        empty = tmp_path / "empty.bin"
        empty.write_bytes(b"")
        server = FileServer("send", empty)

        download = await start_download(server)
        assert await collect(download.body) == b""
        assert server.snapshot().status is Phase.COMPLETED
        assert server.snapshot().progress == 100


# === Download: directory archive ===

class TestArchiveDownload:

    @pytest.mark.asyncio
    async def test_archive_contains_tree(self, dir_server, send_dir):
        download = await start_download(dir_server)
        assert download.filename == "photos.zip"
        assert download.media_type == "application/zip"
        assert 'Content-Length' not in download.headers

        data = await collect(download.body)

        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            assert archive.testzip() is None
            names = archive.namelist()
            assert "a.txt" in names
            assert "sub/" in names
            assert "sub/b.txt" in names
            assert archive.read("a.txt") == (send_dir / "a.txt").read_bytes()
            assert archive.read("sub/b.txt") == (send_dir / "sub" / "b.txt").read_bytes()

        snap = dir_server.snapshot()
        total = len(b"alpha content") + len(b"bravo " * 200)
        assert snap.status is Phase.COMPLETED
        assert snap.size == total
        assert snap.transferred == total
        assert snap.progress == 100

    @pytest.mark.asyncio
    async def test_empty_directories_are_kept(self, tmp_path):
        root = tmp_path / "tree"
        (root / "empty").mkdir(parents=True)
        server = FileServer("send", root)

        data = await collect((await start_download(server)).body)

        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            assert archive.namelist() == ["empty/"]

    @pytest.mark.asyncio
    async def test_unreadable_entry_truncates_archive(self, tmp_path):
        root = tmp_path / "tree"
        root.mkdir()
        (root / "a.txt").write_bytes(b"first")
        os.symlink(root / "missing", root / "z_broken")
        server = FileServer("send", root)

        data = await collect((await start_download(server)).body)

        snap = server.snapshot()
        assert snap.status is Phase.ERROR
        assert server.gate.holder is None
        assert any("aborted" in e for e in server.log.entries())
        with pytest.raises(zipfile.BadZipFile):
            zipfile.ZipFile(io.BytesIO(data))

    @pytest.mark.asyncio
    async def test_cancel_stops_archive(self, tmp_path):
        root = tmp_path / "tree"
        root.mkdir()
        (root / "big.bin").write_bytes(os.urandom(4096))
        server = FileServer("send", root, chunk_size=512)

        download = await start_download(server)
        await download.body.__anext__()
        server.cancel(PEER)
        await collect(download.body)

        assert server.snapshot().status is Phase.CANCELLED
        assert server.gate.holder is None

    def test_iter_tree_order(self, send_dir):
        names = [name for _path, name in iter_tree(send_dir)]
        assert names == ["a.txt", "sub", "sub/b.txt"]

    def test_archive_sink_is_unseekable(self):
        sink = ArchiveSink()
        sink.write(b"abc")
        sink.write(b"de")

        assert sink.tell() == 5
        assert sink.drain() == b"abcde"
        assert sink.drain() == b""
        assert sink.tell() == 5
        assert not hasattr(sink, "seek")


# === Upload ===

class TestUpload:

    @pytest.mark.asyncio
    async def test_writes_file(self, recv_server, recv_dir):
        recv_server.admit(PEER)
        result = await recv_server.receiver.receive(PEER, FakeUpload("hello.txt", b"hello"))

        assert result.path == recv_dir / "hello.txt"
        assert result.size == 5
        assert result.to_dict() == {'status': 'success', 'path': str(recv_dir / "hello.txt"), 'size': 5}
        assert (recv_dir / "hello.txt").read_bytes() == b"hello"

        snap = recv_server.snapshot()
        assert snap.status is Phase.COMPLETED
        assert snap.transferred == 5
        assert snap.progress == 100
        assert any("Upload completed from 10.0.0.1: hello.txt (5 B)" in e
                   for e in recv_server.log.entries())

    @pytest.mark.asyncio
    async def test_progress_uses_declared_size(self, recv_dir):
        server = FileServer("recv", recv_dir, chunk_size=250, subscriber_buffer=1000)
        queue = server.events.subscribe()
        server.admit(PEER)

        await server.receiver.receive(PEER, FakeUpload("data.bin", b"x" * 1000))

        progress = [u['progress'] for u in snapshots(queue) if u['status'] == "transferring"]
        assert progress[-4:] == [25.0, 50.0, 75.0, 100.0]

    @pytest.mark.asyncio
    async def test_conflict_leaves_existing_file(self, recv_server, recv_dir):
        existing = recv_dir / "dup.txt"
        existing.write_bytes(b"original")
        upload = FakeUpload("dup.txt", b"replacement")

        with pytest.raises(UploadConflictError) as exc_info:
            await recv_server.receiver.receive(PEER, upload)

        assert existing.read_bytes() == b"original"
        assert upload.reads == 0
        assert recv_server.snapshot().status is Phase.WAITING
        assert exc_info.value.to_dict() == {
            'error': 'file_exists',
            'message': "File 'dup.txt' already exists",
            'filename': 'dup.txt',
            'path': str(existing),
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("upload", [None, "plain form value", FakeUpload("", b"x")])
    async def test_missing_file(self, recv_server, upload):
        with pytest.raises(MissingFileError):
            await recv_server.receiver.receive(PEER, upload)

    @pytest.mark.asyncio
    async def test_directory_parts_are_stripped(self, recv_server, recv_dir):
        result = await recv_server.receiver.receive(PEER, FakeUpload("../../evil.txt", b"x"))

        assert result.path == recv_dir / "evil.txt"
        assert not (recv_dir.parent / "evil.txt").exists()

    @pytest.mark.asyncio
    async def test_read_failure_keeps_partial_file(self, recv_dir):
        server = FileServer("recv", recv_dir, chunk_size=4)

        def fail_second_read(n):
            if n == 2:
                raise OSError("connection reset")

        with pytest.raises(TransferError):
            await server.receiver.receive(PEER, FakeUpload("part.bin", b"abcdefgh", on_read=fail_second_read))

        assert (recv_dir / "part.bin").read_bytes() == b"abcd"
        snap = server.snapshot()
        assert snap.status is Phase.ERROR
        assert snap.error == "connection reset"

    @pytest.mark.asyncio
    async def test_cancel_stops_copy(self, recv_dir):
        server = FileServer("recv", recv_dir, chunk_size=4)

        def cancel_on_second_read(n):
            if n == 2:
                server.cancel("10.0.0.9")

        result = await server.receiver.receive(
            PEER, FakeUpload("slow.bin", b"abcdefgh", on_read=cancel_on_second_read))

        assert result.cancelled
        assert result.to_dict()['status'] == "cancelled"
        assert server.snapshot().status is Phase.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_after_last_chunk_is_not_success(self, recv_dir):
        server = FileServer("recv", recv_dir, chunk_size=4)

        # read 3 is the empty end-of-stream read
        def cancel_at_end(n):
            if n == 3:
                server.cancel("10.0.0.9")

        result = await server.receiver.receive(
            PEER, FakeUpload("late.bin", b"abcdefgh", on_read=cancel_at_end))

        assert result.cancelled
        assert result.size == 8
        assert server.receiver.uploads_completed == 0
        assert server.snapshot().status is Phase.CANCELLED
        assert not any("Upload completed" in e for e in server.log.entries())


@pytest.mark.parametrize("raw, expected", [
    ("report.pdf", "report.pdf"),
    ("../../etc/passwd", "passwd"),
    ("C:\\Users\\me\\photo.jpg", "photo.jpg"),
    ("..", ""),
    ("", ""),
])
def test_safe_filename(raw, expected):
    assert safe_filename(raw) == expected
