"""
FileShare Utilities

Small, deterministic helpers used around the session core: sizing a
directory tree, enumerating the addresses a peer could reach us on,
and formatting byte counts for humans.
"""

import os
import socket
import logging
from pathlib import Path
from typing import List, Union

logger = logging.getLogger(__name__)

# Size units (binary)
KB = 1024
MB = 1024 * KB
GB = 1024 * MB

LOCALHOST = "127.0.0.1"


def calculate_dir_size(path: Union[str, Path]) -> int:
    """
    Total size of all regular files below a directory.

    Raises:
        OSError: if the tree cannot be walked
    """
    def _raise(err: OSError):
        raise err

    total = 0
    for dirpath, _dirnames, filenames in os.walk(path, onerror=_raise):
        for name in filenames:
            file_path = os.path.join(dirpath, name)
            if os.path.isfile(file_path):
                total += os.path.getsize(file_path)
    return total


def format_size(size: int) -> str:
    """Format bytes as a human-readable size."""
    if size >= GB:
        return f"{size / GB:.2f} GB"
    if size >= MB:
        return f"{size / MB:.2f} MB"
    if size >= KB:
        return f"{size / KB:.2f} KB"
    return f"{size} B"


def get_local_ips() -> List[str]:
    """
    List IPv4 addresses this host can be reached on.

    Localhost is always first. Uses netifaces when it is installed,
    otherwise falls back to the address of the default route.
    """
    ips = [LOCALHOST]

    try:
        import netifaces
        for iface in netifaces.interfaces():
            addrs = netifaces.ifaddresses(iface)
            for addr_info in addrs.get(netifaces.AF_INET, []):
                ip = addr_info.get('addr')
                if ip and not ip.startswith('127.') and ip not in ips:
                    ips.append(ip)
    except ImportError:
        # netifaces not available, ask the kernel which address it would
        # route external traffic from (no packets are sent for UDP connect)
        try:
            s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            try:
                s.connect(("8.8.8.8", 80))
                ip = s.getsockname()[0]
            finally:
                s.close()
            if ip not in ips:
                ips.append(ip)
        except OSError as e:
            logger.debug(f"Could not determine LAN address: {e}")

    return ips


def peer_address(addr: str) -> str:
    """
    Reduce a "host:port" style address to the host.

    IPv6 brackets are stripped, so "[::1]:8080" becomes "::1".
    A bare host is returned unchanged.
    """
    if addr.startswith('['):
        end = addr.find(']')
        if end != -1:
            return addr[1:end]
    if addr.count(':') == 1:
        addr = addr.rsplit(':', 1)[0]
    return addr.strip('[]')
