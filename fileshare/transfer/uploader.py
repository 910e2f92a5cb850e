"""
Upload Receiver

Copies an uploaded file part into the receive directory, reporting
progress against the part's declared size.
"""

import logging
from dataclasses import dataclass
from pathlib import Path, PureWindowsPath

import aiofiles

from ..errors import MissingFileError, TransferError, UploadConflictError
from ..utils import format_size
from .downloader import CHUNK_SIZE

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    """Outcome of a finished (or cancelled) upload."""
    path: Path
    size: int
    cancelled: bool = False

    def to_dict(self) -> dict:
        return {
            'status': 'cancelled' if self.cancelled else 'success',
            'path': str(self.path),
            'size': self.size,
        }


def safe_filename(filename: str) -> str:
    """
    Strip any directory part a client put in the filename.

    Browsers on Windows may send "C:\\dir\\name.txt", so both separators
    are handled.
    """
    name = PureWindowsPath(filename).name
    name = Path(name).name
    if name in ('', '.', '..'):
        return ''
    return name


class UploadReceiver:
    """
    Writes uploads for an admitted peer into the session directory.

    Existing files are never overwritten.
    """

    def __init__(self, server, chunk_size: int = CHUNK_SIZE):
        self.server = server
        self.chunk_size = chunk_size

        # Statistics
        self.uploads_completed = 0
        self.bytes_received = 0

    def destination_for(self, filename: str) -> Path:
        return self.server.path / filename

    async def receive(self, peer: str, upload) -> UploadResult:
        """
        Copy an uploaded file part to disk.

        Args:
            peer: admitted peer identifier
            upload: the form's file part (anything with filename, size
                and an async read(n))

        Raises:
            MissingFileError: no file part, or no usable filename
            UploadConflictError: a file with that name already exists
            TransferError: reading the part or writing to disk failed
        """
        if upload is None or isinstance(upload, str) or not getattr(upload, 'filename', None):
            raise MissingFileError("Failed to get file")

        filename = safe_filename(upload.filename)
        if not filename:
            raise MissingFileError(f"Invalid filename: {upload.filename!r}")

        destination = self.destination_for(filename)
        if destination.exists():
            logger.warning(f"Rejected upload from {peer}: {destination} exists")
            raise UploadConflictError(filename, destination)

        declared = getattr(upload, 'size', None) or 0
        attempt = self.server.begin_transfer(peer, declared)
        self.server.add_log(f"Started upload from {peer}: {filename}")

        transferred = 0
        try:
            async with aiofiles.open(destination, 'xb') as out:
                while True:
                    chunk = await upload.read(self.chunk_size)
                    if not chunk:
                        break
                    await out.write(chunk)
                    transferred += len(chunk)
                    self.bytes_received += len(chunk)
                    if not self.server.report_progress(attempt, transferred):
                        logger.info(f"Upload from {peer} stopped after {transferred:,} bytes")
                        return UploadResult(destination, transferred, cancelled=True)
        except OSError as e:
            # partial content stays on disk
            self.server.fail_transfer(attempt, str(e))
            raise TransferError(str(e)) from e

        completed = self.server.complete_transfer(
            attempt,
            f"Upload completed from {peer}: {filename} ({format_size(transferred)})",
        )
        if not completed:
            # cancelled while the file was being closed
            return UploadResult(destination, transferred, cancelled=True)
        self.uploads_completed += 1
        return UploadResult(destination, transferred)
