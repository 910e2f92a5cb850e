"""
Transfer Module - Streaming Download/Upload

Moves bytes between the session target and a peer in fixed-size chunks,
reporting progress to the session as it goes.
"""

from .downloader import FileSender, Download, ArchiveSink, iter_tree, CHUNK_SIZE
from .uploader import UploadReceiver, UploadResult, safe_filename

__all__ = [
    'FileSender',
    'Download',
    'ArchiveSink',
    'iter_tree',
    'CHUNK_SIZE',
    'UploadReceiver',
    'UploadResult',
    'safe_filename',
]
