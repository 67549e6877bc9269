# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import posixpath
from subprocess import CalledProcessError
from subprocess import TimeoutExpired
from typing import Callable
from typing import Optional

from httpd_rollout._exceptions import ReloadError
from httpd_rollout._exceptions import ValidationError
from httpd_rollout._reload import Check
from httpd_rollout._reload import ReloadSupervisor
from httpd_rollout._validator import Validator
from os_access import PosixFiles

_logger = logging.getLogger(__name__)


class RolloutAttempt:
    """One apply-validate-reload transaction and what came of it."""

    def __init__(
            self,
            mutation: Callable[[], None],
            config_path: Optional[str] = None,
            backup_path: Optional[str] = None,
            rollback_on_failure: bool = True,
            ):
        self.mutation = mutation
        self.config_path = config_path
        self.backup_path = backup_path
        self.rollback_on_failure = rollback_on_failure
        self.backup_taken = False
        self.rolled_back = False
        self.succeeded: Optional[bool] = None
        self.error: Optional[Exception] = None

    def __repr__(self):
        return (
            f'<RolloutAttempt {self.config_path or "(no file)"} '
            f'succeeded={self.succeeded} rolled_back={self.rolled_back}>')

    def can_roll_back(self) -> bool:
        return self.rollback_on_failure and self.config_path is not None and self.backup_path is not None


class StagedRollout:

    def __init__(
            self,
            files: PosixFiles,
            validator: Validator,
            supervisor: ReloadSupervisor,
            health_check: Check,
            reload_attempts: int = 3,
            reload_wait_sec: float = 5,
            ):
        self._files = files
        self._validator = validator
        self._supervisor = supervisor
        self._health_check = health_check
        self._reload_attempts = reload_attempts
        self._reload_wait_sec = reload_wait_sec

    def _take_backup(self, attempt: RolloutAttempt):
        if attempt.config_path is None or attempt.backup_path is None:
            return
        if not self._files.exists(attempt.config_path):
            _logger.info("Nothing to back up: %s does not exist", attempt.config_path)
            return
        self._files.mkdir_p(posixpath.dirname(attempt.backup_path) or '.')
        self._files.copy_file(attempt.config_path, attempt.backup_path)
        attempt.backup_taken = True

    def _restore(self, attempt: RolloutAttempt) -> bool:
        if not attempt.can_roll_back() or not self._files.exists(attempt.backup_path):
            return False
        _logger.warning("Rolling back %s from %s", attempt.config_path, attempt.backup_path)
        try:
            self._files.copy_file(attempt.backup_path, attempt.config_path)
        except (CalledProcessError, TimeoutExpired) as e:
            _logger.error("Cannot restore %s: %s", attempt.config_path, e)
            return False
        attempt.rolled_back = True
        return True

    def execute(self, attempt: RolloutAttempt) -> bool:
        try:
            self._take_backup(attempt)
        except (CalledProcessError, TimeoutExpired) as e:
            _logger.error("Cannot back up %s, nothing changed: %s", attempt.config_path, e)
            attempt.error = e
            attempt.succeeded = False
            return False
        try:
            attempt.mutation()
        except Exception as e:
            _logger.error("Failed to apply configuration changes: %s", e)
            attempt.error = e
            attempt.succeeded = False
            return False
        [valid, diagnostics] = self._validator.validate()
        if not valid:
            attempt.error = ValidationError(diagnostics)
            self._restore(attempt)
            attempt.succeeded = False
            return False
        success = self._supervisor.graceful_reload(
            pre_check=self._health_check,
            post_check=self._health_check,
            max_attempts=self._reload_attempts,
            wait_sec=self._reload_wait_sec,
            )
        if not success:
            attempt.error = ReloadError(f"Reload failed after changing {attempt.config_path or 'the configuration'}")
            if self._restore(attempt):
                _logger.warning("Reload failed, reloading previous configuration")
                self._supervisor.graceful_reload(
                    max_attempts=self._reload_attempts,
                    wait_sec=self._reload_wait_sec,
                    )
        attempt.succeeded = success
        return success

    def run(
            self,
            mutation: Callable[[], None],
            config_path: Optional[str] = None,
            backup_path: Optional[str] = None,
            rollback_on_failure: bool = True,
            ) -> bool:
        attempt = RolloutAttempt(mutation, config_path, backup_path, rollback_on_failure)
        result = self.execute(attempt)
        _logger.info("Staged rollout finished: %r", attempt)
        return result
