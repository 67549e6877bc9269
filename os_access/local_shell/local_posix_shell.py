# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import os
import signal
import subprocess
from selectors import DefaultSelector
from selectors import EVENT_READ

from os_access._command import Run
from os_access._posix_shell import PosixShell
from os_access._posix_shell import augment_script
from os_access._posix_shell import command_to_script
from os_access._posix_shell import env_values_to_str

_logger = logging.getLogger(__name__)


class _LocalPosixRun(Run):

    def __init__(self, args, **popen_kwargs):
        self._process = subprocess.Popen(
            args,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            bufsize=0,
            close_fds=True,
            **popen_kwargs,
            )
        super().__init__(self._process.args)
        self._selector = DefaultSelector()
        self._selector.register(self._process.stdout, EVENT_READ, data=0)
        self._selector.register(self._process.stderr, EVENT_READ, data=1)

    @property
    def pid(self):
        return self._process.pid

    @property
    def returncode(self):
        return self._process.poll()

    def send(self, bytes_buffer, is_last=False):
        stdin = self._process.stdin
        try:
            written = stdin.write(bytes_buffer)
        except BrokenPipeError:
            # The command doesn't read its input: nothing more to send.
            _logger.debug("Input not read by %s", self.args)
            stdin.close()
            return len(bytes_buffer)
        if is_last and written == len(bytes_buffer):
            stdin.close()
        return written

    def receive(self, timeout_sec):
        if not self._selector.get_map():
            try:
                self._process.wait(timeout_sec)
            except subprocess.TimeoutExpired:
                pass
            return None, None
        chunks = [b'', b'']
        for key, _events in self._selector.select(timeout_sec):
            chunk = os.read(key.fd, 16 * 1024)
            if chunk:
                chunks[key.data] = chunk
            else:
                self._selector.unregister(key.fileobj)
                key.fileobj.close()
                chunks[key.data] = None
        for index, stream in enumerate((self._process.stdout, self._process.stderr)):
            if stream.closed:
                chunks[index] = None
        return tuple(chunks)

    def wait(self, timeout=None):
        return self._process.wait(timeout=timeout)

    def terminate(self):
        self._process.send_signal(signal.SIGTERM)

    def kill(self):
        self._process.send_signal(signal.SIGKILL)

    def close(self):
        for stream in (self._process.stdin, self._process.stdout, self._process.stderr):
            if not stream.closed:
                stream.close()
        self._selector.close()


class LocalPosixShell(PosixShell):

    def __repr__(self):
        return '<LocalShell>'

    def is_working(self):
        return True

    def Popen(self, command, cwd=None, env=None):  # noqa PyPep8Naming
        kwargs = {}
        if cwd is not None:
            kwargs['cwd'] = str(cwd)
        if env is not None:
            # Given variables are added to the inherited ones.
            kwargs['env'] = {**os.environ, **env_values_to_str(env)}
        if isinstance(command, str):
            set_eux = '\n' in command
            _logger.info('Run local script:\n%s', augment_script(command, cwd=cwd, env=env, set_eux=set_eux))
            return _LocalPosixRun(augment_script(command, set_eux=set_eux), shell=True, **kwargs)
        command = [str(arg) for arg in command]
        _logger.info('Run: %s', command_to_script(command))
        return _LocalPosixRun(command, **kwargs)

    def close(self):
        pass


local_posix_shell = LocalPosixShell()
