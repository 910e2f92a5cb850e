"""
FileShare - single-session HTTP file transfer

Serve one file or directory for download, or one directory for uploads,
to whichever peer connects first, with live progress for every observer.
"""

from .server import FileServer, prepare_target
from .session import Mode, Phase

__version__ = "1.0.0"

__all__ = ['FileServer', 'prepare_target', 'Mode', 'Phase', '__version__']
