# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import fnmatch
import itertools
import json
import logging
import posixpath
from datetime import datetime
from subprocess import CalledProcessError
from subprocess import TimeoutExpired
from typing import Callable
from typing import Mapping
from typing import NamedTuple
from typing import Optional
from typing import Sequence

from httpd_rollout._exceptions import PlatformMismatchError
from httpd_rollout._platform import HostPlatform
from httpd_rollout._platform import PlatformProfile
from httpd_rollout._platform import server_version
from httpd_rollout._validator import Validator
from os_access import PosixFiles
from os_access import Service
from os_access import ServiceStartError
from os_access import ServiceStopError
from os_access import Shell

_logger = logging.getLogger(__name__)

_ARCHIVE_SUFFIX = '.tar.gz'


class BackupRecord(NamedTuple):

    path: str
    metadata: Mapping[str, str]


def metadata_path(archive_path: str) -> str:
    """Sibling JSON file describing an archive.

    >>> metadata_path('/var/backups/httpd/apache-config-20250516-120000-x.tar.gz')
    '/var/backups/httpd/apache-config-20250516-120000-x.json'
    """
    if not archive_path.endswith(_ARCHIVE_SUFFIX):
        raise ValueError(f"Not a configuration archive: {archive_path}")
    return archive_path[:-len(_ARCHIVE_SUFFIX)] + '.json'


def _major(version: str) -> int:
    head = version.split('.', 1)[0]
    return int(head) if head.isdigit() else 0


class ConfigBackups:
    """Archives of the whole configuration directory with host metadata.

    The archive holds the contents of the configuration directory,
    so it restores into the same place whether that place
    is a plain directory or the blue-green symlink.
    """

    def __init__(
            self,
            shell: Shell,
            profile: PlatformProfile,
            host_platform: HostPlatform,
            backup_dir: str,
            validator: Validator,
            service: Service,
            now: Callable[[], datetime] = datetime.now,
            timeout_sec: float = 300,
            ):
        self._shell = shell
        self._files = PosixFiles(shell, timeout_sec=timeout_sec)
        self._profile = profile
        self._host_platform = host_platform
        self.backup_dir = backup_dir
        self._validator = validator
        self._service = service
        self._now = now
        self._timeout_sec = timeout_sec

    def __repr__(self):
        return f'<ConfigBackups {self._profile.config_dir} in {self.backup_dir}>'

    def backup(self, label: Optional[str] = None, config_dir: Optional[str] = None) -> Optional[str]:
        self._files.mkdir_p(self.backup_dir)
        timestamp = self._now().strftime('%Y%m%d-%H%M%S')
        label_suffix = f'-{label}' if label else ''
        name = f'apache-config-{timestamp}{label_suffix}'
        archive = posixpath.join(self.backup_dir, name + _ARCHIVE_SUFFIX)
        # Several archives can fall into one second.
        for counter in itertools.count(2):
            if not self._files.exists(archive):
                break
            archive = posixpath.join(self.backup_dir, f'{name}-{counter}{_ARCHIVE_SUFFIX}')
        config_dir = config_dir or self._profile.config_dir
        result = self._shell.run(
            ['tar', '-czf', archive, '-C', config_dir + '/', '.'],
            check=False, timeout_sec=self._timeout_sec)
        if result.returncode != 0:
            _logger.error(
                "Failed to create backup archive: %s",
                result.stderr.decode(errors='backslashreplace').strip())
            self._files.remove_file(archive)
            return None
        metadata = {
            'timestamp': timestamp,
            'hostname': self._files.hostname(),
            'platform': self._host_platform.platform,
            'platform_version': self._host_platform.platform_version,
            'server_version': server_version(self._shell, self._profile),
            'config_dir': config_dir,
            }
        self._files.write_bytes(metadata_path(archive), json.dumps(metadata, indent=2).encode())
        _logger.info("Apache configuration backed up to %s", archive)
        return archive

    def _read_metadata(self, archive: str) -> Optional[Mapping[str, str]]:
        path = metadata_path(archive)
        if not self._files.exists(path):
            return None
        try:
            return json.loads(self._files.read_bytes(path))
        except ValueError as e:
            _logger.warning("Unreadable backup metadata %s: %s", path, e)
            return None

    def _check_platform(self, metadata: Mapping[str, str]):
        backup_platform = (metadata.get('platform'), metadata.get('platform_version', ''))
        current = (self._host_platform.platform, self._host_platform.platform_version)
        if backup_platform[0] != current[0] or _major(backup_platform[1] or '') != _major(current[1]):
            raise PlatformMismatchError(backup_platform, current)

    def _replace_config_dir(self, extracted_dir: str):
        config_dir = self._profile.config_dir
        # Through the blue-green symlink, the active environment is replaced, not the link.
        real_dir = self._files.resolve(config_dir)
        self._files.remove_tree(real_dir)
        self._files.mkdir_p(real_dir)
        self._files.copy_tree_contents(extracted_dir, real_dir)

    def restore(self, archive: str, force: bool = False) -> bool:
        """Put an archived configuration back in place and restart the server.

        Raises PlatformMismatchError if the archive was made on another
        platform or major version, unless forced.
        """
        if not self._files.exists(archive):
            _logger.error("Backup file not found: %s", archive)
            return False
        temp_dir = self._files.make_temp_dir('apache-restore')
        try:
            result = self._shell.run(
                ['tar', '-xzf', archive, '-C', temp_dir],
                check=False, timeout_sec=self._timeout_sec)
            if result.returncode != 0:
                _logger.error(
                    "Failed to extract backup archive: %s",
                    result.stderr.decode(errors='backslashreplace').strip())
                return False
            metadata = self._read_metadata(archive)
            if metadata is not None and not force:
                self._check_platform(metadata)
            try:
                self._service.stop()
            except ServiceStopError as e:
                _logger.error("Cannot stop %s before restore: %s", self._service, e)
                return False
            pre_restore = self.backup('pre-restore')
            try:
                self._replace_config_dir(temp_dir)
            except (CalledProcessError, TimeoutExpired) as e:
                _logger.error("Cannot put restored files in place: %s", e)
                if pre_restore is not None:
                    self.restore(pre_restore, force=True)
                return False
            [valid, diagnostics] = self._validator.validate()
            if not valid:
                _logger.error("Restored configuration has syntax errors: %s", diagnostics)
                if pre_restore is not None:
                    _logger.info("Rolling back to previous configuration")
                    self.restore(pre_restore, force=True)
                return False
            try:
                self._service.start()
            except ServiceStartError as e:
                _logger.error("Restored configuration, but %s did not start: %s", self._service, e)
                return False
            _logger.info("Apache configuration restored successfully from %s", archive)
            return True
        finally:
            self._files.remove_tree(temp_dir)

    def list_backups(self) -> Sequence[BackupRecord]:
        """Archives in the backup directory, newest first."""
        if not self._files.is_dir(self.backup_dir):
            return []
        names = fnmatch.filter(self._files.list_dir(self.backup_dir), 'apache-config-*' + _ARCHIVE_SUFFIX)
        records = []
        for name in sorted(names, reverse=True):
            path = posixpath.join(self.backup_dir, name)
            records.append(BackupRecord(path, self._read_metadata(path) or {}))
        return records
