# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import time
from typing import Callable
from typing import Optional

from httpd_rollout._backups import ConfigBackups
from httpd_rollout._blue_green import BlueGreenSwitch
from httpd_rollout._blue_green import Environment
from httpd_rollout._blue_green import PrepareInactive
from httpd_rollout._config import RolloutSettings
from httpd_rollout._health import HealthProber
from httpd_rollout._locking import service_lock
from httpd_rollout._platform import HostPlatform
from httpd_rollout._platform import ServiceTarget
from httpd_rollout._platform import detect_platform
from httpd_rollout._platform import profile_for_family
from httpd_rollout._reload import ReloadSupervisor
from httpd_rollout._sizing import MpmSettings
from httpd_rollout._sizing import host_resources
from httpd_rollout._sizing import mpm_settings
from httpd_rollout._staged import StagedRollout
from httpd_rollout._validator import ValidationResult
from httpd_rollout._validator import Validator
from os_access import PosixFiles
from os_access import Shell
from os_access import service_manager
from os_access import uses_systemd

_logger = logging.getLogger(__name__)


class RolloutController:
    """Zero-downtime configuration changes for the Apache server on one host."""

    def __init__(
            self,
            shell: Shell,
            settings: RolloutSettings,
            host_platform: Optional[HostPlatform] = None,
            sleep: Callable[[float], None] = time.sleep,
            ):
        self._shell = shell
        self._settings = settings
        if host_platform is None:
            host_platform = detect_platform(shell)
        self.host_platform = host_platform
        profile = profile_for_family(settings.platform_family or host_platform.family)
        if settings.config_dir:
            profile = profile._replace(config_dir=settings.config_dir)
        self.profile = profile
        self.target = ServiceTarget.from_profile(self.profile, systemd=uses_systemd(shell))
        _logger.info("Manage %s on %r: %s", self.profile.service_name, shell, self.target)
        timeout_sec = settings.command_timeout_sec
        self.files = PosixFiles(shell, timeout_sec=timeout_sec)
        self.service = service_manager(shell, self.profile.service_name)
        self.validator = Validator(shell, self.target, timeout_sec=timeout_sec)
        self.health_check = HealthProber(
            settings.health_host, settings.health_port,
            settings.health_path, settings.health_timeout_sec)
        self.supervisor = ReloadSupervisor(shell, self.target, command_timeout_sec=timeout_sec, sleep=sleep)
        self.backups = ConfigBackups(
            shell, self.profile, host_platform, settings.backup_dir,
            self.validator, self.service)
        self._staged = StagedRollout(
            self.files, self.validator, self.supervisor, self.health_check,
            reload_attempts=settings.reload_attempts,
            reload_wait_sec=settings.reload_wait_sec,
            )
        self._blue_green = BlueGreenSwitch(
            self.files, self.validator, self.service, self.backups,
            liveness_attempts=settings.liveness_attempts,
            liveness_interval_sec=settings.liveness_interval_sec,
            keep_original_dirs=settings.keep_original_dirs,
            sleep=sleep,
            )

    def __repr__(self):
        return f'<RolloutController {self.profile.service_name} at {self._shell!r}>'

    def validate(self, config_root: Optional[str] = None) -> ValidationResult:
        return self.validator.validate(config_root)

    def probe(self) -> bool:
        return self.health_check()

    def graceful_reload(self, with_health_checks: bool = True) -> bool:
        check = self.health_check if with_health_checks else None
        return self.supervisor.graceful_reload(
            pre_check=check,
            post_check=check,
            max_attempts=self._settings.reload_attempts,
            wait_sec=self._settings.reload_wait_sec,
            )

    def staged_rollout(
            self,
            mutation: Callable[[], None],
            config_path: Optional[str] = None,
            backup_path: Optional[str] = None,
            rollback_on_failure: bool = True,
            ) -> bool:
        with service_lock(self._shell, self.profile.service_name, self._settings.lock_dir):
            return self._staged.run(mutation, config_path, backup_path, rollback_on_failure)

    def active_environment(self, config_dir: Optional[str] = None) -> Environment:
        return self._blue_green.current(config_dir or self.profile.config_dir)

    def blue_green_deploy(
            self,
            config_dir: Optional[str] = None,
            blue_dir: Optional[str] = None,
            green_dir: Optional[str] = None,
            prepare_inactive: Optional[PrepareInactive] = None,
            ) -> Environment:
        with service_lock(self._shell, self.profile.service_name, self._settings.lock_dir):
            return self._blue_green.deploy(
                config_dir or self.profile.config_dir, blue_dir, green_dir, prepare_inactive)

    def mpm_settings(self) -> MpmSettings:
        return mpm_settings(*host_resources(self._shell))
