# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import re
from subprocess import TimeoutExpired
from typing import NamedTuple
from typing import Optional
from typing import Sequence

from os_access import PosixFiles
from os_access import Shell

_logger = logging.getLogger(__name__)


class PlatformProfile(NamedTuple):
    """Where Apache lives and how it is driven on one OS family."""

    family: str
    service_name: str
    config_dir: str
    config_file: str
    control_binary: str
    server_binary: str
    process_pattern: str
    validate_command: Sequence[str]
    # Debian-style apache2ctl takes an alternate root from the environment;
    # httpd takes it from a -c directive.
    config_root_env: Optional[str]

    def graceful_command(self) -> Sequence[str]:
        return self.control_binary, 'graceful'

    def version_command(self) -> Sequence[str]:
        return self.server_binary, '-v'


_DEBIAN = PlatformProfile(
    family='debian',
    service_name='apache2',
    config_dir='/etc/apache2',
    config_file='/etc/apache2/apache2.conf',
    control_binary='apache2ctl',
    server_binary='apache2',
    process_pattern='apache2',
    validate_command=('apache2ctl', '-t'),
    config_root_env='APACHE_CONFDIR',
    )

_RHEL = PlatformProfile(
    family='rhel',
    service_name='httpd',
    config_dir='/etc/httpd',
    config_file='/etc/httpd/conf/httpd.conf',
    control_binary='apachectl',
    server_binary='httpd',
    process_pattern='httpd',
    validate_command=('httpd', '-t'),
    config_root_env=None,
    )

_SUSE = _RHEL._replace(
    family='suse',
    service_name='apache2',
    config_dir='/etc/apache2',
    config_file='/etc/apache2/httpd.conf',
    )

_profiles = {
    'debian': _DEBIAN,
    'rhel': _RHEL,
    'fedora': _RHEL._replace(family='fedora'),
    'amazon': _RHEL._replace(family='amazon'),
    'arch': _RHEL._replace(family='arch'),
    'suse': _SUSE,
    }

# os-release ID or ID_LIKE token to family.
_family_by_id = {
    'debian': 'debian',
    'ubuntu': 'debian',
    'rhel': 'rhel',
    'centos': 'rhel',
    'rocky': 'rhel',
    'almalinux': 'rhel',
    'ol': 'rhel',
    'fedora': 'fedora',
    'amzn': 'amazon',
    'arch': 'arch',
    'suse': 'suse',
    'opensuse': 'suse',
    'opensuse-leap': 'suse',
    'sles': 'suse',
    }


def profile_for_family(family: str) -> PlatformProfile:
    try:
        return _profiles[family]
    except KeyError:
        _logger.warning("Unknown platform family %r, assume httpd layout", family)
        return _RHEL._replace(family=family)


class HostPlatform(NamedTuple):

    platform: str
    platform_version: str
    family: str


def parse_os_release(text: str) -> HostPlatform:
    """Interpret /etc/os-release.

    >>> parse_os_release('ID=ubuntu\\nVERSION_ID="22.04"\\nID_LIKE=debian\\n')
    HostPlatform(platform='ubuntu', platform_version='22.04', family='debian')
    >>> parse_os_release('ID="rocky"\\nVERSION_ID="9.3"\\nID_LIKE="rhel centos fedora"\\n').family
    'rhel'
    """
    fields = {}
    for line in text.splitlines():
        name, sep, value = line.partition('=')
        if not sep or name.startswith('#'):
            continue
        fields[name.strip()] = value.strip().strip('"\'')
    platform = fields.get('ID', 'unknown')
    candidates = [platform, *fields.get('ID_LIKE', '').split()]
    family = next((_family_by_id[c] for c in candidates if c in _family_by_id), platform)
    return HostPlatform(platform, fields.get('VERSION_ID', ''), family)


def detect_platform(shell: Shell) -> HostPlatform:
    files = PosixFiles(shell)
    host_platform = parse_os_release(files.read_bytes('/etc/os-release').decode())
    _logger.info("Detected platform on %r: %s", shell, host_platform)
    return host_platform


def server_version(shell: Shell, profile: PlatformProfile) -> str:
    try:
        result = shell.run(profile.version_command(), check=False, timeout_sec=30)
    except (OSError, TimeoutExpired) as e:
        _logger.warning("Cannot get Apache version: %s", e)
        return 'unknown'
    if result.returncode != 0:
        return 'unknown'
    match = re.search(r'version: Apache/(\d+\.\d+\.\d+)', result.stdout.decode(), re.IGNORECASE)
    return match.group(1) if match else 'unknown'


class ServiceTarget(NamedTuple):
    """The managed server process, fixed for the controller's lifetime."""

    service_name: str
    validate_command: Sequence[str]
    reload_command: Sequence[str]
    process_pattern: str
    config_root_env: Optional[str]

    @classmethod
    def from_profile(cls, profile: PlatformProfile, systemd: bool) -> 'ServiceTarget':
        if systemd:
            reload_command = ('systemctl', 'reload', profile.service_name)
        else:
            reload_command = tuple(profile.graceful_command())
        return cls(
            service_name=profile.service_name,
            validate_command=tuple(profile.validate_command),
            reload_command=reload_command,
            process_pattern=profile.process_pattern,
            config_root_env=profile.config_root_env,
            )
