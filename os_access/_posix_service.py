# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import re
from abc import ABCMeta
from abc import abstractmethod
from subprocess import CalledProcessError
from subprocess import TimeoutExpired
from typing import NamedTuple
from typing import Optional

from os_access._command import Shell
from os_access._exceptions import ServiceNotFoundError
from os_access._exceptions import ServiceStartError
from os_access._exceptions import ServiceStatusError
from os_access._exceptions import ServiceStopError
from os_access._posix_shell import quote_arg

_logger = logging.getLogger(__name__)

_SYSTEMD_MARKERS = ('/run/systemd/system', '/sys/fs/cgroup/systemd')


class ServiceStatus(NamedTuple):

    is_running: bool
    is_stopped: bool
    pid: int  # 0 means no process.


class Service(metaclass=ABCMeta):
    """Start, stop and query one service on a host."""

    @abstractmethod
    def start(self, timeout_sec: Optional[float] = None):
        pass

    @abstractmethod
    def stop(self, timeout_sec: Optional[float] = None):
        pass

    @abstractmethod
    def status(self) -> ServiceStatus:
        pass

    @abstractmethod
    def is_active(self) -> bool:
        """Whether the service manager considers the service up."""

    def is_running(self):
        return self.status().is_running


def uses_systemd(shell: Shell) -> bool:
    for marker in _SYSTEMD_MARKERS:
        if shell.run(['test', '-d', marker], check=False).returncode == 0:
            return True
    return False


def service_manager(shell: Shell, name: str) -> Service:
    """Pick the service control style the host actually uses."""
    if uses_systemd(shell):
        return SystemdService(shell, name)
    _logger.info("No systemd on %r, control %s with SysV scripts", shell, name)
    return SysVService(shell, name)


class SystemdService(Service):
    """Control a Systemd service with `status`, `start` and `stop` shortcuts."""

    def __init__(self, shell: Shell, name: str):
        self._shell = shell
        self._name = name

    def __repr__(self):
        return '<SystemdService {} at {}>'.format(self._name, self._shell)

    def start(self, timeout_sec=None):
        if timeout_sec is None:
            timeout_sec = 30
        _logger.info("Start service %s.", self._name)
        try:
            self._shell.run(['systemctl', 'start', self._name], timeout_sec=timeout_sec)
        except CalledProcessError as e:
            raise ServiceStartError(
                f"Service {self._name} failed to start with error code {e.returncode}:\n"
                f"stdout: {e.stdout.decode(errors='backslashreplace')}\n"
                f"stderr: {e.stderr.decode(errors='backslashreplace')}")
        except TimeoutExpired:
            raise ServiceStartError(f"Service {self._name} is not starting for {timeout_sec} seconds")

    def stop(self, timeout_sec=None):
        if timeout_sec is None:
            timeout_sec = 30
        _logger.info("Stop service %s.", self._name)
        try:
            self._shell.run(['systemctl', 'stop', self._name], timeout_sec=timeout_sec)
        except CalledProcessError as e:
            raise ServiceStopError(
                f"Service {self._name} failed to stop with error code {e.returncode}: "
                f"{e.stderr.decode(errors='backslashreplace')}")
        except TimeoutExpired:
            raise ServiceStopError(f"Service {self._name} is not stopping for {timeout_sec} seconds")

    def status(self):
        result = self._shell.run([
            'systemctl', 'show', '-p', 'SubState,MainPID,LoadState', self._name])
        data = dict(line.split('=', 1) for line in result.stdout.decode('ascii').splitlines() if '=' in line)
        if 'LoadState' not in data:
            raise ServiceStatusError(f"Unexpected systemctl output for {self._name!r}: {data}")
        if data['LoadState'] == 'not-found':
            raise ServiceNotFoundError(f"Service {self._name!r} not found")
        return ServiceStatus(
            data['SubState'] == 'running',
            data['SubState'] in ['dead', 'failed'],
            int(data['MainPID']))

    def is_active(self):
        # The unit may be unknown to systemd while the init script still serves it.
        result = self._shell.run(
            f'systemctl is-active {quote_arg(self._name)} || service {quote_arg(self._name)} status',
            check=False)
        return result.returncode == 0


class SysVService(Service):
    """Control a service with the `service` wrapper around init scripts."""

    def __init__(self, shell: Shell, name: str):
        self._shell = shell
        self._name = name

    def __repr__(self):
        return '<SysVService {} at {}>'.format(self._name, self._shell)

    def _run(self, action, timeout_sec):
        return self._shell.run(
            ['service', self._name, action], timeout_sec=timeout_sec, check=False)

    def start(self, timeout_sec=None):
        timeout_sec = timeout_sec or 30
        try:
            result = self._run('start', timeout_sec)
        except TimeoutExpired:
            raise ServiceStartError(f"Service {self._name} is not starting for {timeout_sec} seconds")
        if result.returncode != 0:
            raise ServiceStartError(
                f"Service {self._name} failed to start with error code {result.returncode}: "
                f"{result.stderr.decode(errors='backslashreplace')}")

    def stop(self, timeout_sec=None):
        timeout_sec = timeout_sec or 30
        try:
            result = self._run('stop', timeout_sec)
        except TimeoutExpired:
            raise ServiceStopError(f"Service {self._name} is not stopping for {timeout_sec} seconds")
        if result.returncode != 0:
            raise ServiceStopError(
                f"Service {self._name} failed to stop with error code {result.returncode}: "
                f"{result.stderr.decode(errors='backslashreplace')}")

    def status(self):
        result = self._run('status', 30)
        # LSB: 0 running, 1-3 not running, 4 unknown service.
        if result.returncode == 4:
            raise ServiceNotFoundError(f"Service {self._name!r} not found")
        output = result.stdout.decode(errors='backslashreplace')
        match = re.search(r'\bpid\s+(\d+)', output, re.IGNORECASE)
        pid = int(match.group(1)) if match else 0
        return ServiceStatus(result.returncode == 0, result.returncode in (1, 2, 3), pid)

    def is_active(self):
        return self._run('status', 30).returncode == 0
