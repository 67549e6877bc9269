# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import os
import tempfile
import unittest
from pathlib import Path

from httpd_rollout import LockBusy
from httpd_rollout import service_lock
from os_access.local_shell import local_shell


class TestServiceLock(unittest.TestCase):

    def setUp(self):
        self._temp_dir = tempfile.TemporaryDirectory()
        self.lock_dir = Path(self._temp_dir.name) / 'lock'

    def tearDown(self):
        self._temp_dir.cleanup()

    def test_exclusive(self):
        with service_lock(local_shell, 'apache2', str(self.lock_dir)) as lock_path:
            owner = Path(lock_path, 'owner').read_text()
            self.assertTrue(owner.endswith(f':{os.getpid()}'))
            with self.assertRaises(LockBusy) as raised:
                with service_lock(local_shell, 'apache2', str(self.lock_dir)):
                    self.fail("Acquired a held lock")
            self.assertIn(owner, str(raised.exception))
        self.assertFalse(Path(lock_path).exists())

    def test_per_service(self):
        with service_lock(local_shell, 'apache2', str(self.lock_dir)):
            with service_lock(local_shell, 'httpd', str(self.lock_dir)) as other:
                self.assertTrue(other.endswith('httpd-rollout-httpd.lock'))

    def test_released_on_exception(self):
        with self.assertRaises(RuntimeError):
            with service_lock(local_shell, 'apache2', str(self.lock_dir)):
                raise RuntimeError("Rollout crashed")
        with service_lock(local_shell, 'apache2', str(self.lock_dir)):
            pass


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)7s %(name)s %(message).5000s",
        )
    unittest.main()
