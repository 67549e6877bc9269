# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import re
import socket
import time
from typing import Optional

from httpd_rollout._exceptions import TransportError

_logger = logging.getLogger(__name__)

HEALTHY_STATUS_CODES = frozenset({200, 301, 302, 304})
_MAX_RESPONSE_BYTES = 64 * 1024
_status_line_re = re.compile(rb'HTTP/\d(?:\.\d)? (\d{3})(?: |\r?$)')


def parse_status_code(response: bytes) -> Optional[int]:
    """Status code from the first line of a raw HTTP response.

    Only the status line counts: digits elsewhere in headers or body are not looked at.

    >>> parse_status_code(b'HTTP/1.1 302 Found\\r\\nLocation: /x\\r\\n\\r\\n')
    302
    >>> parse_status_code(b'HTTP/1.1 500 Internal Server Error\\r\\nX-Id: 200\\r\\n\\r\\n')
    500
    >>> parse_status_code(b'SSH-2.0-OpenSSH_8.9\\r\\n') is None
    True
    """
    [status_line, *_] = response.split(b'\n', 1)
    match = _status_line_re.match(status_line.rstrip(b'\r'))
    if match is None:
        return None
    return int(match.group(1))


def _exchange(host: str, port: int, request: bytes, timeout_sec: float) -> bytes:
    deadline = time.monotonic() + timeout_sec
    try:
        with socket.create_connection((host, port), timeout=timeout_sec) as sock:
            sock.sendall(request)
            chunks = []
            received = 0
            while received < _MAX_RESPONSE_BYTES:
                left_sec = deadline - time.monotonic()
                if left_sec <= 0:
                    raise TransportError(f"No complete response from {host}:{port} in {timeout_sec} sec")
                sock.settimeout(left_sec)
                chunk = sock.recv(16 * 1024)
                if not chunk:
                    break
                chunks.append(chunk)
                received += len(chunk)
    except OSError as e:  # Includes socket.timeout and ConnectionRefusedError.
        raise TransportError(f"{host}:{port}: {e}") from e
    return b''.join(chunks)


def probe(host: str = 'localhost', port: int = 80, path: str = '/', timeout_sec: float = 5) -> bool:
    """Ask the server for a page head; any failure means unhealthy, never an exception."""
    request = (
        f'HEAD {path} HTTP/1.1\r\n'
        f'Host: {host}\r\n'
        f'Connection: close\r\n'
        f'\r\n'
        ).encode('ascii')
    try:
        response = _exchange(host, port, request, timeout_sec)
    except TransportError as e:
        _logger.warning("Health check failed: %s", e)
        return False
    status_code = parse_status_code(response)
    if status_code in HEALTHY_STATUS_CODES:
        _logger.info("Health check of %s:%d%s: %d", host, port, path, status_code)
        return True
    _logger.warning(
        "Health check of %s:%d%s failed: %s",
        host, port, path, response[:500].decode(errors='backslashreplace'))
    return False


class HealthProber:
    """Probe bound to one endpoint; usable as a reload pre- or post-check."""

    def __init__(self, host: str = 'localhost', port: int = 80, path: str = '/', timeout_sec: float = 5):
        self._host = host
        self._port = port
        self._path = path
        self._timeout_sec = timeout_sec

    def __repr__(self):
        return f'<HealthProber http://{self._host}:{self._port}{self._path}>'

    def __call__(self) -> bool:
        return probe(self._host, self._port, self._path, self._timeout_sec)
