"""
File Sender

Design Decision: Directory Downloads
====================================

Options Considered:
1. Build a zip in a temp file, then serve it
   - Simple, correct Content-Length
   - Doubles disk usage, peer waits for the whole archive first
2. Build the zip in memory
   - Unbounded memory for large trees
3. Stream the zip while walking the tree
   - Constant memory, bytes flow immediately
   - No Content-Length; a failure mid-way leaves a truncated archive

Decision: Stream the zip
- zipfile writes into an unseekable sink, so it emits data descriptors
  instead of seeking back to patch local headers
- The sink is drained to the response after every chunk
- Progress advances once per file, by its uncompressed size

Single files are read in fixed-size chunks and progress is reported after
each chunk has been handed to the response.
"""

import asyncio
import logging
import os
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Iterator, Optional, Tuple

import aiofiles

from ..errors import TransferError
from ..utils import calculate_dir_size

logger = logging.getLogger(__name__)

# Read size for file and archive streaming: 64KB
CHUNK_SIZE = 64 * 1024

DISCONNECTED = "client disconnected"


@dataclass
class Download:
    """A prepared download: response metadata plus the body stream."""
    filename: str
    media_type: str
    body: AsyncIterator[bytes]
    size: Optional[int] = None

    @property
    def headers(self) -> dict:
        headers = {'Content-Disposition': f'attachment; filename="{self.filename}"'}
        if self.size is not None:
            headers['Content-Length'] = str(self.size)
        return headers


class ArchiveSink:
    """
    Write-only, unseekable buffer that zipfile writes into.

    Bytes accumulate until drained; tell() reports the total written so
    zipfile can record entry offsets.
    """

    def __init__(self):
        self._buffer = bytearray()
        self._offset = 0

    def write(self, data) -> int:
        self._buffer += data
        self._offset += len(data)
        return len(data)

    def tell(self) -> int:
        return self._offset

    def flush(self):
        pass

    def drain(self) -> bytes:
        data = bytes(self._buffer)
        self._buffer.clear()
        return data


def iter_tree(base: Path) -> Iterator[Tuple[Path, str]]:
    """
    Walk a directory yielding (path, archive name) pairs.

    Directories come before their contents and are included so empty
    directories survive the archive. Names use forward slashes.
    """
    def _raise(err: OSError):
        raise err

    for dirpath, dirnames, filenames in os.walk(base, onerror=_raise):
        dirnames.sort()
        current = Path(dirpath)
        relative = current.relative_to(base)
        if relative != Path('.'):
            yield current, relative.as_posix()
        for name in sorted(filenames):
            yield current / name, (relative / name).as_posix()


class FileSender:
    """
    Streams the session's target to an admitted peer.

    Usage:
        download = await sender.start(peer)
        async for chunk in download.body:
            ...
    The body releases the peer's slot when it finishes, fails or is closed.
    """

    def __init__(self, server, chunk_size: int = CHUNK_SIZE):
        self.server = server
        self.chunk_size = chunk_size

        # Statistics
        self.downloads_completed = 0
        self.bytes_sent = 0

    async def start(self, peer: str) -> Download:
        """
        Size the target and begin a transfer attempt for an admitted peer.

        Raises:
            TransferError: if the target can no longer be read
        """
        target = self.server.path
        try:
            if target.is_dir():
                size = await asyncio.to_thread(calculate_dir_size, target)
                is_dir = True
            else:
                size = target.stat().st_size
                is_dir = False
        except OSError as e:
            logger.error(f"Cannot read {target}: {e}")
            raise TransferError(str(e)) from e

        attempt = self.server.begin_transfer(peer, size)
        self.server.add_log(f"Started download from {peer}")

        if is_dir:
            return Download(
                filename=f"{target.name}.zip",
                media_type="application/zip",
                body=self._stream_archive(peer, attempt),
            )
        return Download(
            filename=target.name,
            media_type="application/octet-stream",
            body=self._stream_file(peer, attempt),
            size=size,
        )

    def _finish(self, peer: str, attempt: int):
        if self.server.complete_transfer(attempt, f"Download completed for {peer}"):
            self.downloads_completed += 1

    async def _stream_file(self, peer: str, attempt: int) -> AsyncIterator[bytes]:
        transferred = 0
        try:
            async with aiofiles.open(self.server.path, 'rb') as f:
                while True:
                    chunk = await f.read(self.chunk_size)
                    if not chunk:
                        break
                    yield chunk
                    transferred += len(chunk)
                    self.bytes_sent += len(chunk)
                    if not self.server.report_progress(attempt, transferred):
                        logger.info(f"Download to {peer} stopped after {transferred:,} bytes")
                        return
            self._finish(peer, attempt)
        except OSError as e:
            self.server.fail_transfer(attempt, str(e))
        except (GeneratorExit, asyncio.CancelledError):
            self.server.fail_transfer(attempt, DISCONNECTED)
            raise
        finally:
            self.server.release_peer(peer)

    async def _stream_archive(self, peer: str, attempt: int) -> AsyncIterator[bytes]:
        base = self.server.path
        sink = ArchiveSink()
        archive = zipfile.ZipFile(sink, 'w', compression=zipfile.ZIP_DEFLATED, allowZip64=True)
        transferred = 0
        try:
            for path, arcname in iter_tree(base):
                zinfo = zipfile.ZipInfo.from_file(path, arcname, strict_timestamps=False)
                if zinfo.is_dir():
                    archive.writestr(zinfo, b'')
                    continue

                zinfo.compress_type = zipfile.ZIP_DEFLATED
                written = 0
                with archive.open(zinfo, 'w') as entry:
                    async with aiofiles.open(path, 'rb') as f:
                        while True:
                            chunk = await f.read(self.chunk_size)
                            if not chunk:
                                break
                            entry.write(chunk)
                            written += len(chunk)
                            data = sink.drain()
                            if data:
                                yield data
                                self.bytes_sent += len(data)
                            if not self.server.is_live(attempt):
                                logger.info(f"Archive to {peer} stopped in {arcname}")
                                return

                transferred += written
                logger.debug(f"Archived {arcname} ({written:,} bytes)")
                if not self.server.report_progress(attempt, transferred):
                    return

            archive.close()
            data = sink.drain()
            if data:
                yield data
                self.bytes_sent += len(data)
            self._finish(peer, attempt)
        except OSError as e:
            # central directory is never written; the peer gets a truncated zip
            self.server.fail_transfer(attempt, str(e))
            self.server.add_log(f"Archive for {peer} aborted: {e}")
        except (GeneratorExit, asyncio.CancelledError):
            self.server.fail_transfer(attempt, DISCONNECTED)
            raise
        finally:
            self.server.release_peer(peer)
