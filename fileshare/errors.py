"""
FileShare Errors

Every failure a peer can observe maps to one of these. The REST layer
translates them into HTTP status codes; the CLI turns StartupError into
a non-zero exit before anything is bound.
"""

from pathlib import Path


class FileShareError(Exception):
    """Base class for all FileShare errors."""


class StartupError(FileShareError):
    """Target path is unusable for the requested mode."""


class ModeMismatchError(FileShareError):
    """Operation is not valid in the server's mode."""

    def __init__(self, expected: str):
        self.expected = expected
        verb = "send" if expected == "send" else "receive"
        super().__init__(f"Server is not in {verb} mode")


class PeerBusyError(FileShareError):
    """Another peer currently holds the transfer slot."""

    def __init__(self, peer: str, holder: str):
        self.peer = peer
        self.holder = holder
        super().__init__("Another client is already connected")


class MissingFileError(FileShareError):
    """Upload request carried no usable file field."""


class UploadConflictError(FileShareError):
    """Destination file already exists."""

    def __init__(self, filename: str, path: Path):
        self.filename = filename
        self.path = path
        super().__init__(f"File '{filename}' already exists")

    def to_dict(self) -> dict:
        return {
            "error": "file_exists",
            "message": str(self),
            "filename": self.filename,
            "path": str(self.path),
        }


class TransferError(FileShareError):
    """Read or write failure in the middle of a transfer."""
