# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import tempfile
import unittest

from httpd_rollout import Sized
from httpd_rollout import mpm_settings
from httpd_rollout._sizing import cpu_cores
from httpd_rollout._sizing import host_resources
from httpd_rollout._sizing import server_limit
from httpd_rollout._sizing import system_memory_mb
from httpd_rollout.tests._fake_apache import FakeApacheHost


class TestSizing(unittest.TestCase):

    def test_measured(self):
        self.assertEqual(system_memory_mb(8 * 1024 * 1024), Sized(8192, False))
        self.assertEqual(cpu_cores(8), Sized(8, False))

    def test_defaults(self):
        self.assertEqual(system_memory_mb(None), Sized(2048, True))
        self.assertEqual(system_memory_mb(0), Sized(2048, True))
        self.assertEqual(cpu_cores(None), Sized(2, True))
        self.assertEqual(server_limit(100, 0), Sized(16, True))

    def test_server_limit_rounds_up(self):
        self.assertEqual(server_limit(204, 16), Sized(15, False))
        self.assertEqual(server_limit(400, 25), Sized(18, False))

    def test_mpm_settings(self):
        settings = mpm_settings(Sized(4096, False), Sized(4, False))
        self.assertEqual(settings.max_request_workers, 204)
        self.assertEqual(settings.threads_per_child, 16)
        self.assertEqual(settings.server_limit, 15)
        self.assertFalse(settings.used_default)

    def test_default_propagates(self):
        settings = mpm_settings(Sized(2048, True), Sized(4, False))
        self.assertTrue(settings.used_default)


class TestHostResources(unittest.TestCase):

    def setUp(self):
        self._temp_dir = tempfile.TemporaryDirectory()
        self.host = FakeApacheHost(self._temp_dir.name)

    def tearDown(self):
        self._temp_dir.cleanup()

    def test_read(self):
        [memory, cpu] = host_resources(self.host)
        self.assertEqual(memory, Sized(4096, False))
        self.assertEqual(cpu, Sized(4, False))

    def test_unavailable(self):
        self.host.mem_total_kb = None
        self.host.nproc = None
        [memory, cpu] = host_resources(self.host)
        self.assertEqual(memory, Sized(2048, True))
        self.assertEqual(cpu, Sized(2, True))


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)7s %(name)s %(message).5000s",
        )
    unittest.main()
