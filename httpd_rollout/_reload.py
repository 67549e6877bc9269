# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import time
from subprocess import TimeoutExpired
from typing import Callable
from typing import FrozenSet
from typing import NamedTuple
from typing import Optional

from httpd_rollout._exceptions import ReloadError
from httpd_rollout._platform import ServiceTarget
from os_access import Shell

_logger = logging.getLogger(__name__)

Check = Callable[[], bool]


class WorkerSnapshot(NamedTuple):
    """PIDs of server processes at one moment."""

    pids: FrozenSet[int]

    def replaced(self, later: 'WorkerSnapshot') -> bool:
        return bool(self.pids ^ later.pids)


def take_worker_snapshot(shell: Shell, process_pattern: str, timeout_sec: float = 30) -> WorkerSnapshot:
    try:
        result = shell.run(['pgrep', '-f', process_pattern], check=False, timeout_sec=timeout_sec)
    except TimeoutExpired:
        _logger.warning("Timed out listing %s processes", process_pattern)
        return WorkerSnapshot(frozenset())
    except OSError as e:
        _logger.warning("Cannot list %s processes: %s", process_pattern, e)
        return WorkerSnapshot(frozenset())
    if result.returncode != 0:
        # pgrep exits with 1 when nothing matches.
        return WorkerSnapshot(frozenset())
    pids = frozenset(int(line) for line in result.stdout.decode().split() if line.isdigit())
    return WorkerSnapshot(pids)


class ReloadSupervisor:
    """Graceful reload: retry the reload command, then see what happened to workers."""

    def __init__(
            self,
            shell: Shell,
            target: ServiceTarget,
            command_timeout_sec: float = 60,
            sleep: Callable[[float], None] = time.sleep,
            ):
        self._shell = shell
        self._target = target
        self._command_timeout_sec = command_timeout_sec
        self._sleep = sleep

    def _issue_reload(self) -> bool:
        command = list(self._target.reload_command)
        try:
            result = self._shell.run(command, check=False, timeout_sec=self._command_timeout_sec)
        except TimeoutExpired:
            _logger.warning("Reload command timed out: %s", command)
            return False
        except OSError as e:
            _logger.warning("Cannot run reload command %s: %s", command, e)
            return False
        if result.returncode != 0:
            _logger.warning(
                "Reload command %s exited with %d: %s",
                command, result.returncode, result.stderr.decode(errors='backslashreplace').strip())
            return False
        return True

    def _reload_with_retries(self, max_attempts: int, wait_sec: float):
        name = self._target.service_name
        for attempt in range(1, max_attempts + 1):
            _logger.info("Attempting graceful reload of %s (attempt %d/%d)", name, attempt, max_attempts)
            if self._issue_reload():
                return
            _logger.warning("Reload attempt %d failed, waiting %gs before retry", attempt, wait_sec)
            self._sleep(wait_sec)
        raise ReloadError(f"Failed to reload {name} after {max_attempts} attempts")

    def graceful_reload(
            self,
            pre_check: Optional[Check] = None,
            post_check: Optional[Check] = None,
            max_attempts: int = 3,
            wait_sec: float = 5,
            ) -> bool:
        name = self._target.service_name
        if pre_check is not None and not pre_check():
            _logger.warning("Pre-reload check failed for %s", name)
            return False
        before = take_worker_snapshot(self._shell, self._target.process_pattern)
        try:
            self._reload_with_retries(max_attempts, wait_sec)
        except ReloadError as e:
            _logger.error("%s", e)
            return False
        # Let the server spawn new workers.
        self._sleep(wait_sec)
        after = take_worker_snapshot(self._shell, self._target.process_pattern)
        if not before.replaced(after):
            _logger.warning("No worker processes were replaced during reload of %s", name)
        if post_check is not None and not post_check():
            _logger.warning("Post-reload check failed for %s", name)
            return False
        _logger.info("Successfully performed zero-downtime reload of %s", name)
        return True
