# utils/port_utils.py
"""Bind checks for the dashboard listen address"""

import socket
import psutil
import logging
from typing import Optional, Dict

logger = logging.getLogger(__name__)

# A listener on a wildcard address also holds the port for every specific host
WILDCARD_ADDRESSES = ('0.0.0.0', '::', '')


def _address_family(host: str) -> int:
    return socket.AF_INET6 if ':' in host else socket.AF_INET


def is_port_in_use(port: int, host: str = '127.0.0.1') -> bool:
    """Tries to bind host:port the way the dashboard server will"""
    with socket.socket(_address_family(host), socket.SOCK_STREAM) as s:
        try:
            s.bind((host, port))
        except OSError as e:
            logger.debug(f"Cannot bind {host}:{port}: {e}")
            return True
    return False


def _holds_address(laddr, port: int, host: Optional[str]) -> bool:
    if not laddr or laddr.port != port:
        return False
    if host is None or host in WILDCARD_ADDRESSES:
        return True
    return laddr.ip == host or laddr.ip in WILDCARD_ADDRESSES


def get_process_using_port(port: int, host: Optional[str] = None) -> Optional[Dict]:
    """
    Finds the process listening on port (on host, if given).

    Returns:
        dict with name/pid/username, or None when it cannot be determined
    """
    try:
        listeners = [
            conn for conn in psutil.net_connections(kind='inet')
            if conn.status == psutil.CONN_LISTEN and conn.pid and _holds_address(conn.laddr, port, host)
        ]
    except (psutil.AccessDenied, OSError) as e:
        logger.debug(f"Could not list connections for port {port}: {e}")
        return None

    for conn in listeners:
        try:
            process = psutil.Process(conn.pid)
            return {
                'name': process.name(),
                'pid': process.pid,
                'username': process.username(),
                'address': f"{conn.laddr.ip}:{conn.laddr.port}",
            }
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return None


def check_port_availability(port: int, host: str = '127.0.0.1') -> tuple[bool, str]:
    """
    Returns:
        (available, message): message names the holder when it is known
    """
    if not is_port_in_use(port, host):
        return True, f"{host}:{port} is free"

    process_info = get_process_using_port(port, host)
    if process_info is None:
        return False, f"Port {port} on {host} is busy"

    return False, (
        f"Port {port} on {host} is held by {process_info['name']} "
        f"(PID: {process_info['pid']}, user: {process_info['username']}, "
        f"listening on {process_info['address']})"
    )
