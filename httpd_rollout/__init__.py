# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from httpd_rollout._backups import BackupRecord
from httpd_rollout._backups import ConfigBackups
from httpd_rollout._blue_green import BlueGreenSwitch
from httpd_rollout._blue_green import Environment
from httpd_rollout._config import RolloutSettings
from httpd_rollout._config import load_settings
from httpd_rollout._config import read_config
from httpd_rollout._controller import RolloutController
from httpd_rollout._exceptions import LivenessError
from httpd_rollout._exceptions import LockBusy
from httpd_rollout._exceptions import PlatformMismatchError
from httpd_rollout._exceptions import ReloadError
from httpd_rollout._exceptions import TransportError
from httpd_rollout._exceptions import ValidationError
from httpd_rollout._health import HealthProber
from httpd_rollout._health import parse_status_code
from httpd_rollout._health import probe
from httpd_rollout._locking import service_lock
from httpd_rollout._platform import HostPlatform
from httpd_rollout._platform import PlatformProfile
from httpd_rollout._platform import ServiceTarget
from httpd_rollout._platform import detect_platform
from httpd_rollout._platform import profile_for_family
from httpd_rollout._reload import ReloadSupervisor
from httpd_rollout._reload import WorkerSnapshot
from httpd_rollout._reload import take_worker_snapshot
from httpd_rollout._sizing import MpmSettings
from httpd_rollout._sizing import Sized
from httpd_rollout._sizing import mpm_settings
from httpd_rollout._staged import RolloutAttempt
from httpd_rollout._staged import StagedRollout
from httpd_rollout._validator import ValidationResult
from httpd_rollout._validator import Validator

__all__ = [
    'BackupRecord',
    'BlueGreenSwitch',
    'ConfigBackups',
    'Environment',
    'HealthProber',
    'HostPlatform',
    'LivenessError',
    'LockBusy',
    'MpmSettings',
    'PlatformMismatchError',
    'PlatformProfile',
    'ReloadError',
    'ReloadSupervisor',
    'RolloutAttempt',
    'RolloutController',
    'RolloutSettings',
    'ServiceTarget',
    'Sized',
    'StagedRollout',
    'TransportError',
    'ValidationError',
    'ValidationResult',
    'Validator',
    'WorkerSnapshot',
    'detect_platform',
    'load_settings',
    'mpm_settings',
    'parse_status_code',
    'probe',
    'profile_for_family',
    'read_config',
    'service_lock',
    'take_worker_snapshot',
    ]
