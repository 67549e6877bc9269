# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import unittest

from httpd_rollout import HealthProber
from httpd_rollout import parse_status_code
from httpd_rollout import probe
from httpd_rollout.tests._canned_http import CannedHttpServer
from httpd_rollout.tests._canned_http import closed_port


class TestStatusLine(unittest.TestCase):

    def test_http_1_0(self):
        self.assertEqual(parse_status_code(b'HTTP/1.0 304 Not Modified\r\n\r\n'), 304)

    def test_no_reason_phrase(self):
        self.assertEqual(parse_status_code(b'HTTP/1.1 200\r\n\r\n'), 200)

    def test_digits_in_headers_ignored(self):
        response = b'HTTP/1.1 503 Service Unavailable\r\nX-Note: 200 OK\r\n\r\n'
        self.assertEqual(parse_status_code(response), 503)

    def test_garbage(self):
        self.assertIsNone(parse_status_code(b''))
        self.assertIsNone(parse_status_code(b'200 OK\r\n'))


class TestProbe(unittest.TestCase):

    def _probe_with(self, response: bytes) -> bool:
        with CannedHttpServer(response) as server:
            return probe('127.0.0.1', server.port, '/', timeout_sec=5)

    def test_healthy_codes(self):
        for status in (b'200 OK', b'301 Moved Permanently', b'302 Found', b'304 Not Modified'):
            with self.subTest(status=status):
                self.assertTrue(self._probe_with(b'HTTP/1.1 ' + status + b'\r\nContent-Length: 0\r\n\r\n'))

    def test_server_error(self):
        self.assertFalse(self._probe_with(b'HTTP/1.1 500 Internal Server Error\r\nContent-Length: 0\r\n\r\n'))

    def test_not_found(self):
        self.assertFalse(self._probe_with(b'HTTP/1.1 404 Not Found\r\nContent-Length: 0\r\n\r\n'))

    def test_healthy_code_only_in_header(self):
        response = b'HTTP/1.1 500 Internal Server Error\r\nX-Upstream-Status: 200\r\n\r\n'
        self.assertFalse(self._probe_with(response))

    def test_not_http(self):
        self.assertFalse(self._probe_with(b'SSH-2.0-OpenSSH_8.9\r\n'))

    def test_connection_refused(self):
        self.assertFalse(probe('127.0.0.1', closed_port(), '/', timeout_sec=2))

    def test_prober_sends_request(self):
        with CannedHttpServer() as server:
            prober = HealthProber('127.0.0.1', server.port, '/server-status', timeout_sec=5)
            self.assertTrue(prober())
            self.assertTrue(prober())
            self.assertEqual(server.requests, 2)


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)7s %(name)s %(message).5000s",
        )
    unittest.main()
