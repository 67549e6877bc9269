# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import math
import re
from subprocess import CalledProcessError
from subprocess import TimeoutExpired
from typing import NamedTuple
from typing import Optional
from typing import Tuple

from os_access import Shell

_logger = logging.getLogger(__name__)

DEFAULT_MEMORY_MB = 2048
DEFAULT_CPU_CORES = 2
DEFAULT_SERVER_LIMIT = 16


class Sized(NamedTuple):
    """A computed value and whether it is a fallback rather than a measurement."""

    value: int
    used_default: bool


def system_memory_mb(mem_total_kb: Optional[int]) -> Sized:
    if not mem_total_kb or mem_total_kb <= 0:
        _logger.warning("Could not determine system memory, using %d MB", DEFAULT_MEMORY_MB)
        return Sized(DEFAULT_MEMORY_MB, True)
    return Sized(mem_total_kb // 1024, False)


def cpu_cores(count: Optional[int]) -> Sized:
    if not count or count <= 0:
        _logger.warning("Could not determine CPU count, using %d", DEFAULT_CPU_CORES)
        return Sized(DEFAULT_CPU_CORES, True)
    return Sized(count, False)


def max_request_workers(memory_mb: int) -> int:
    """Fewer workers on small machines; 150 is plenty for a busy server.

    >>> [max_request_workers(mb) for mb in (512, 2048, 8192, 65536)]
    [51, 136, 409, 1638]
    >>> max_request_workers(100)
    15
    """
    if memory_mb < 1024:
        return max(15, memory_mb // 10)
    if memory_mb < 4096:
        return max(40, memory_mb // 15)
    if memory_mb < 16384:
        return max(100, memory_mb // 20)
    return max(250, memory_mb // 40)


def threads_per_child(cpu_count: int) -> int:
    """
    >>> [threads_per_child(n) for n in (1, 2, 4, 8, 16, 64)]
    [4, 8, 16, 25, 50, 50]
    """
    if cpu_count <= 2:
        return min(8, cpu_count * 4)
    if cpu_count <= 4:
        return min(16, cpu_count * 4)
    if cpu_count <= 8:
        return 25
    return min(50, cpu_count * 6)


def server_limit(workers: int, threads: int) -> Sized:
    if threads <= 0:
        _logger.warning("ThreadsPerChild is %d, using default ServerLimit", threads)
        return Sized(DEFAULT_SERVER_LIMIT, True)
    return Sized(math.ceil(workers / threads * 1.1), False)


class MpmSettings(NamedTuple):

    max_request_workers: int
    threads_per_child: int
    server_limit: int
    used_default: bool


def mpm_settings(memory: Sized, cpu: Sized) -> MpmSettings:
    workers = max_request_workers(memory.value)
    threads = threads_per_child(cpu.value)
    limit = server_limit(workers, threads)
    return MpmSettings(
        workers, threads, limit.value,
        memory.used_default or cpu.used_default or limit.used_default)


def host_resources(shell: Shell) -> Tuple[Sized, Sized]:
    mem_total_kb = None
    try:
        meminfo = shell.run(['cat', '/proc/meminfo'], timeout_sec=30).stdout.decode()
    except (CalledProcessError, TimeoutExpired) as e:
        _logger.warning("Cannot read /proc/meminfo: %s", e)
    else:
        match = re.search(r'^MemTotal:\s+(\d+)\s+kB', meminfo, re.MULTILINE)
        if match:
            mem_total_kb = int(match.group(1))
    count = None
    try:
        nproc = shell.run(['nproc'], timeout_sec=30).stdout.decode().strip()
    except (CalledProcessError, TimeoutExpired) as e:
        _logger.warning("Cannot run nproc: %s", e)
    else:
        if nproc.isdigit():
            count = int(nproc)
    return system_memory_mb(mem_total_kb), cpu_cores(count)
