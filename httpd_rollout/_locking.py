# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import os
import posixpath
import socket
from contextlib import contextmanager

from httpd_rollout._exceptions import LockBusy
from os_access import PosixFiles
from os_access import Shell

_logger = logging.getLogger(__name__)


@contextmanager
def service_lock(shell: Shell, service_name: str, lock_dir: str):
    """Hold an advisory lock on the service's configuration for the duration.

    The lock is a directory: mkdir(2) either creates it or fails,
    which is atomic on the target host however it is reached.
    """
    files = PosixFiles(shell)
    files.mkdir_p(lock_dir)
    lock_path = posixpath.join(lock_dir, f'httpd-rollout-{service_name}.lock')
    result = shell.run(['mkdir', lock_path], check=False)
    if result.returncode != 0:
        owner_file = posixpath.join(lock_path, 'owner')
        owner = files.read_bytes(owner_file).decode() if files.exists(owner_file) else 'unknown'
        raise LockBusy(f"Another rollout of {service_name} is in progress ({lock_path}, owner {owner})")
    _logger.info("Acquired %s", lock_path)
    try:
        files.write_bytes(
            posixpath.join(lock_path, 'owner'),
            f'{socket.gethostname()}:{os.getpid()}'.encode())
        yield lock_path
    finally:
        files.remove_tree(lock_path)
        _logger.info("Released %s", lock_path)
