# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import posixpath
import re
import time
from enum import Enum
from subprocess import CalledProcessError
from subprocess import TimeoutExpired
from typing import Callable
from typing import Optional

from httpd_rollout._backups import ConfigBackups
from httpd_rollout._exceptions import LivenessError
from httpd_rollout._validator import Validator
from os_access import PosixFiles
from os_access import Service
from os_access import ServiceStartError
from os_access import ServiceStopError

_logger = logging.getLogger(__name__)


class Environment(Enum):
    BLUE = 'blue'
    GREEN = 'green'

    def other(self) -> 'Environment':
        return Environment.GREEN if self is Environment.BLUE else Environment.BLUE

    def __str__(self):
        return self.value


PrepareInactive = Callable[[Environment, str], None]


class BlueGreenSwitch:
    """Two configuration copies behind one symlink; switch only to a copy that works.

    The canonical configuration path is a symlink to either the blue or
    the green directory. Changes are staged into the inactive copy,
    which is validated, swapped in and watched. If the server doesn't
    come up, the symlink goes back to the previous copy.
    """

    def __init__(
            self,
            files: PosixFiles,
            validator: Validator,
            service: Service,
            backups: ConfigBackups,
            liveness_attempts: int = 3,
            liveness_interval_sec: float = 2,
            keep_original_dirs: int = 3,
            sleep: Callable[[float], None] = time.sleep,
            clock: Callable[[], float] = time.time,
            ):
        self._files = files
        self._validator = validator
        self._service = service
        self._backups = backups
        self._liveness_attempts = liveness_attempts
        self._liveness_interval_sec = liveness_interval_sec
        self._keep_original_dirs = keep_original_dirs
        self._sleep = sleep
        self._clock = clock

    def current(self, config_dir: str, blue_dir: Optional[str] = None) -> Environment:
        """Active environment as the symlink says; a plain directory counts as blue."""
        blue_dir = blue_dir or f'{config_dir}-blue'
        if self._files.is_symlink(config_dir):
            target = posixpath.normpath(self._files.readlink(config_dir))
            return Environment.BLUE if target == posixpath.normpath(blue_dir) else Environment.GREEN
        return Environment.BLUE

    def _active(self, config_dir: str, blue_dir: str) -> Environment:
        if self._files.is_symlink(config_dir):
            return self.current(config_dir, blue_dir)
        if not self._files.is_dir(blue_dir) or self._files.is_empty_dir(blue_dir):
            _logger.info("Initialize blue environment %s from %s", blue_dir, config_dir)
            self._files.mkdir_p(blue_dir)
            self._files.copy_tree_contents(config_dir, blue_dir)
        return Environment.BLUE

    def _wait_active(self):
        for attempt in range(1, self._liveness_attempts + 1):
            self._sleep(self._liveness_interval_sec)
            if self._service.is_active():
                _logger.info("%s is active (check %d/%d)", self._service, attempt, self._liveness_attempts)
                return
            _logger.warning("%s is not active (check %d/%d)", self._service, attempt, self._liveness_attempts)
        raise LivenessError(
            f"{self._service} not active after {self._liveness_attempts} checks "
            f"{self._liveness_interval_sec} sec apart")

    def _start_and_watch(self):
        try:
            self._service.start()
        except ServiceStartError as e:
            raise LivenessError(f"{self._service} did not start: {e}")
        self._wait_active()

    def _start(self):
        try:
            self._service.start()
        except ServiceStartError as e:
            _logger.error("%s", e)

    def _stop(self):
        try:
            self._service.stop()
        except ServiceStopError as e:
            _logger.error("%s", e)

    def _point(self, config_dir: str, target_dir: str, sidecar: str) -> bool:
        """Point config_dir to target_dir; True if the plain directory went to sidecar."""
        if self._files.is_symlink(config_dir):
            self._files.replace_symlink(target_dir, config_dir)
            return False
        # First switch ever: the original directory is kept aside, never deleted here.
        self._files.rename(config_dir, sidecar)
        self._files.symlink(target_dir, config_dir)
        return True

    def _point_back(self, config_dir: str, active_dir: str, sidecar: str):
        try:
            if self._files.is_symlink(config_dir):
                self._files.replace_symlink(active_dir, config_dir)
            elif not self._files.exists(config_dir) and self._files.is_dir(sidecar):
                self._files.rename(sidecar, config_dir)
        except (CalledProcessError, TimeoutExpired) as e:
            _logger.error("Cannot point %s back to %s: %s", config_dir, active_dir, e)

    def _prune_original_dirs(self, config_dir: str, keep: str):
        parent, name = posixpath.split(posixpath.normpath(config_dir))
        pattern = re.compile(re.escape(name) + r'-original-(\d+)$')
        try:
            entries = self._files.list_dir(parent or '/')
        except (CalledProcessError, TimeoutExpired) as e:
            _logger.warning("Cannot list old configuration copies in %s: %s", parent, e)
            return
        found = []
        for entry in entries:
            match = pattern.match(entry)
            if match:
                found.append((int(match.group(1)), posixpath.join(parent, entry)))
        found.sort(reverse=True)
        for _, path in found[self._keep_original_dirs:]:
            if path == keep:
                continue
            try:
                self._files.remove_tree(path)
            except (CalledProcessError, TimeoutExpired) as e:
                _logger.warning("Cannot remove old configuration copy %s: %s", path, e)

    def deploy(
            self,
            config_dir: str,
            blue_dir: Optional[str] = None,
            green_dir: Optional[str] = None,
            prepare_inactive: Optional[PrepareInactive] = None,
            ) -> Environment:
        """Switch to the other environment if it validates and comes up.

        Return the environment active after the call.
        """
        blue_dir = blue_dir or f'{config_dir}-blue'
        green_dir = green_dir or f'{config_dir}-green'
        dirs = {Environment.BLUE: blue_dir, Environment.GREEN: green_dir}
        active = self._active(config_dir, blue_dir)
        inactive = active.other()
        active_dir = dirs[active]
        inactive_dir = dirs[inactive]
        _logger.info("Active environment: %s (%s); inactive: %s (%s)", active, active_dir, inactive, inactive_dir)
        self._files.mkdir_p(inactive_dir)
        if self._files.is_empty_dir(inactive_dir):
            self._files.copy_tree_contents(active_dir, inactive_dir)
        if prepare_inactive is not None:
            try:
                prepare_inactive(inactive, inactive_dir)
            except Exception as e:
                _logger.error("Failed to prepare %s environment: %s", inactive, e)
                return active
        [valid, diagnostics] = self._validator.validate(inactive_dir)
        if not valid:
            _logger.error("Inactive environment configuration has syntax errors: %s", diagnostics)
            return active
        if self._backups.backup(f'before-{inactive}-switch', config_dir=config_dir) is None:
            _logger.warning("Switching to %s without a backup of %s", inactive, active)
        try:
            self._service.stop()
        except ServiceStopError as e:
            _logger.error("Switch to %s skipped: %s", inactive, e)
            self._start()
            return active
        sidecar = f'{config_dir}-original-{int(self._clock())}'
        try:
            first_switch = self._point(config_dir, inactive_dir, sidecar)
        except (CalledProcessError, TimeoutExpired) as e:
            _logger.error("Cannot point %s to %s environment: %s", config_dir, inactive, e)
            self._point_back(config_dir, active_dir, sidecar)
            self._start()
            return active
        try:
            self._start_and_watch()
        except LivenessError as e:
            _logger.error("Failed to start Apache with the %s configuration: %s", inactive, e)
            self._stop()
            self._point_back(config_dir, active_dir, sidecar)
            self._start()
            result = active
        else:
            _logger.info("Switched %s to %s environment", config_dir, inactive)
            result = inactive
        if first_switch:
            self._prune_original_dirs(config_dir, keep=sidecar)
        return result
