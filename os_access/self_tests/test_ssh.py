# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import socket
import threading
import unittest
from socketserver import BaseRequestHandler
from socketserver import TCPServer

from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.hazmat.primitives.serialization import NoEncryption
from cryptography.hazmat.primitives.serialization import PrivateFormat

from os_access import Ssh
from os_access import SshNotConnected


def _closed_port():
    with socket.socket() as sock:
        sock.bind(('127.0.0.1', 0))
        return sock.getsockname()[1]


class _NotSshHandler(BaseRequestHandler):

    def handle(self):
        self.request.sendall(b'HTTP/1.1 400 Bad Request\r\n\r\n')


class TestSsh(unittest.TestCase):

    def test_keys_accepted(self):
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        for private_format in (PrivateFormat.TraditionalOpenSSL, PrivateFormat.OpenSSH):
            with self.subTest(private_format=private_format):
                key = private_key.private_bytes(Encoding.PEM, private_format, NoEncryption()).decode()
                ssh = Ssh('127.0.0.1', 22, 'root', key)
                self.assertEqual(ssh.netloc(), '127.0.0.1:22')
                self.assertIn('root@127.0.0.1', repr(ssh))

    def test_refused(self):
        ssh = Ssh('127.0.0.1', _closed_port(), 'root')
        self.assertFalse(ssh.is_working())
        with self.assertRaises(SshNotConnected):
            ssh.run(['true'])
        ssh.close()

    def test_not_ssh(self):
        server = TCPServer(('127.0.0.1', 0), _NotSshHandler)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        try:
            ssh = Ssh('127.0.0.1', server.server_address[1], 'root', banner_timeout=5)
            self.assertFalse(ssh.is_working())
        finally:
            server.shutdown()
            thread.join(timeout=10)
            server.server_close()


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)7s %(name)s %(message).5000s",
        )
    unittest.main()
