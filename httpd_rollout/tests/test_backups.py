# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import json
import logging
import tarfile
import tempfile
import unittest
from datetime import datetime
from datetime import timedelta
from pathlib import Path

from httpd_rollout import ConfigBackups
from httpd_rollout import HostPlatform
from httpd_rollout import PlatformMismatchError
from httpd_rollout import ServiceTarget
from httpd_rollout import Validator
from httpd_rollout import profile_for_family
from httpd_rollout._backups import metadata_path
from httpd_rollout.tests._fake_apache import FakeApacheHost
from os_access import SystemdService


class _Clock:

    def __init__(self):
        self._now = datetime(2025, 5, 16, 12, 0, 0)

    def __call__(self):
        self._now += timedelta(seconds=1)
        return self._now


class TestConfigBackups(unittest.TestCase):

    def setUp(self):
        self._temp_dir = tempfile.TemporaryDirectory()
        root = Path(self._temp_dir.name)
        self.config_dir = root / 'apache2'
        (self.config_dir / 'sites-enabled').mkdir(parents=True)
        (self.config_dir / 'apache2.conf').write_text('ServerName original\n')
        (self.config_dir / 'sites-enabled' / 'default.conf').write_text('<VirtualHost *:80>\n')
        self.backup_dir = root / 'backups'
        self.host = FakeApacheHost(str(self.config_dir))
        profile = profile_for_family('debian')._replace(config_dir=str(self.config_dir))
        target = ServiceTarget.from_profile(profile, systemd=True)
        self.backups = ConfigBackups(
            self.host, profile, HostPlatform('ubuntu', '22.04', 'debian'), str(self.backup_dir),
            Validator(self.host, target), SystemdService(self.host, 'apache2'),
            now=_Clock())

    def tearDown(self):
        self._temp_dir.cleanup()

    def _backups_at_fixed_time(self):
        profile = profile_for_family('debian')._replace(config_dir=str(self.config_dir))
        target = ServiceTarget.from_profile(profile, systemd=True)
        return ConfigBackups(
            self.host, profile, HostPlatform('ubuntu', '22.04', 'debian'), str(self.backup_dir),
            Validator(self.host, target), SystemdService(self.host, 'apache2'),
            now=lambda: datetime(2025, 5, 16, 12, 0, 0))

    def test_backup_names_and_metadata(self):
        archive = self.backups.backup('nightly')
        self.assertEqual(archive, str(self.backup_dir / 'apache-config-20250516-120001-nightly.tar.gz'))
        self.assertTrue(Path(archive).exists())
        metadata = json.loads(Path(metadata_path(archive)).read_text())
        self.assertEqual(metadata['timestamp'], '20250516-120001')
        self.assertEqual(metadata['platform'], 'ubuntu')
        self.assertEqual(metadata['platform_version'], '22.04')
        self.assertEqual(metadata['server_version'], '2.4.58')
        self.assertEqual(metadata['config_dir'], str(self.config_dir))
        self.assertTrue(metadata['hostname'])

    def test_backup_of_missing_dir(self):
        missing = self.backups.backup(config_dir=str(Path(self._temp_dir.name) / 'nonexistent'))
        self.assertIsNone(missing)

    def test_restore(self):
        archive = self.backups.backup()
        (self.config_dir / 'apache2.conf').write_text('ServerName changed\n')
        (self.config_dir / 'sites-enabled' / 'default.conf').unlink()
        (self.config_dir / 'extra.conf').write_text('Listen 8080\n')
        self.assertTrue(self.backups.restore(archive))
        self.assertEqual((self.config_dir / 'apache2.conf').read_text(), 'ServerName original\n')
        self.assertTrue((self.config_dir / 'sites-enabled' / 'default.conf').exists())
        self.assertFalse((self.config_dir / 'extra.conf').exists())
        self.assertTrue(self.host.running)
        self.assertEqual(self.host.count_calls('systemctl', 'stop', 'apache2'), 1)
        self.assertEqual(self.host.count_calls('systemctl', 'start', 'apache2'), 1)
        labels = [record.path for record in self.backups.list_backups()]
        self.assertTrue(any(path.endswith('-pre-restore.tar.gz') for path in labels))

    def test_restore_invalid_rolls_back(self):
        (self.config_dir / 'apache2.conf').write_text('INVALID\n')
        broken = self.backups.backup('broken')
        (self.config_dir / 'apache2.conf').write_text('ServerName good\n')
        self.assertFalse(self.backups.restore(broken))
        self.assertEqual((self.config_dir / 'apache2.conf').read_text(), 'ServerName good\n')

    def test_same_second_backups_kept_apart(self):
        backups = self._backups_at_fixed_time()
        first = backups.backup('nightly')
        second = backups.backup('nightly')
        self.assertEqual(first, str(self.backup_dir / 'apache-config-20250516-120000-nightly.tar.gz'))
        self.assertEqual(second, str(self.backup_dir / 'apache-config-20250516-120000-nightly-2.tar.gz'))
        self.assertTrue(Path(metadata_path(second)).exists())

    def test_rollback_keeps_pre_restore_archive(self):
        backups = self._backups_at_fixed_time()
        (self.config_dir / 'apache2.conf').write_text('INVALID\n')
        broken = backups.backup('broken')
        (self.config_dir / 'apache2.conf').write_text('ServerName good\n')
        self.assertFalse(backups.restore(broken))
        pre_restore = self.backup_dir / 'apache-config-20250516-120000-pre-restore.tar.gz'
        with tarfile.open(pre_restore) as archive:
            self.assertEqual(archive.extractfile('./apache2.conf').read(), b'ServerName good\n')

    def test_restore_from_other_platform(self):
        archive = self.backups.backup()
        metadata_file = Path(metadata_path(archive))
        metadata = json.loads(metadata_file.read_text())
        metadata['platform'] = 'rocky'
        metadata['platform_version'] = '9.3'
        metadata_file.write_text(json.dumps(metadata))
        (self.config_dir / 'apache2.conf').write_text('ServerName changed\n')
        with self.assertRaises(PlatformMismatchError):
            self.backups.restore(archive)
        self.assertEqual((self.config_dir / 'apache2.conf').read_text(), 'ServerName changed\n')
        self.assertTrue(self.backups.restore(archive, force=True))
        self.assertEqual((self.config_dir / 'apache2.conf').read_text(), 'ServerName original\n')

    def test_restore_from_other_major_version(self):
        archive = self.backups.backup()
        metadata_file = Path(metadata_path(archive))
        metadata = json.loads(metadata_file.read_text())
        metadata['platform_version'] = '20.04'
        metadata_file.write_text(json.dumps(metadata))
        with self.assertRaises(PlatformMismatchError):
            self.backups.restore(archive)

    def test_restore_missing_archive(self):
        missing = str(self.backup_dir / 'apache-config-20000101-000000.tar.gz')
        self.assertFalse(self.backups.restore(missing))
        self.assertEqual(self.host.count_calls('systemctl', 'stop', 'apache2'), 0)

    def test_list_newest_first(self):
        self.assertEqual(self.backups.list_backups(), [])
        first = self.backups.backup('a')
        second = self.backups.backup('b')
        records = self.backups.list_backups()
        self.assertEqual([record.path for record in records], [second, first])
        self.assertEqual(records[0].metadata['platform'], 'ubuntu')


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)7s %(name)s %(message).5000s",
        )
    unittest.main()
