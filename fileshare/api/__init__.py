"""
API Module - HTTP surface of a FileShare session

Provides the download/upload/cancel endpoints and the live event stream.
"""

from .rest import create_app, run_api_server, event_stream

__all__ = ['create_app', 'run_api_server', 'event_stream']
