# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from os_access._command import DEFAULT_RUN_TIMEOUT_SEC
from os_access._command import CommandFailed
from os_access._command import Run
from os_access._command import Shell
from os_access._exceptions import ServiceNotFoundError
from os_access._exceptions import ServiceStartError
from os_access._exceptions import ServiceStatusError
from os_access._exceptions import ServiceStopError
from os_access._posix_files import PosixFiles
from os_access._posix_service import Service
from os_access._posix_service import ServiceStatus
from os_access._posix_service import SystemdService
from os_access._posix_service import SysVService
from os_access._posix_service import service_manager
from os_access._posix_service import uses_systemd
from os_access._posix_shell import PosixShell
from os_access._posix_shell import command_to_script
from os_access._posix_shell import quote_arg
from os_access._ssh_shell import Ssh
from os_access._ssh_shell import SshNotConnected

__all__ = [
    'CommandFailed',
    'DEFAULT_RUN_TIMEOUT_SEC',
    'PosixFiles',
    'PosixShell',
    'Run',
    'Service',
    'ServiceNotFoundError',
    'ServiceStartError',
    'ServiceStatus',
    'ServiceStatusError',
    'ServiceStopError',
    'Shell',
    'Ssh',
    'SshNotConnected',
    'SysVService',
    'SystemdService',
    'command_to_script',
    'quote_arg',
    'service_manager',
    'uses_systemd',
    ]
