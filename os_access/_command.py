# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import time
from abc import ABCMeta
from abc import abstractmethod
from subprocess import CalledProcessError
from subprocess import CompletedProcess
from subprocess import SubprocessError
from subprocess import TimeoutExpired
from typing import Optional
from typing import Tuple
from typing import Union

_logger = logging.getLogger(__name__)

DEFAULT_RUN_TIMEOUT_SEC = 60

_Bytes = Union[bytes, bytearray, memoryview]


class CommandFailed(CalledProcessError):

    def __str__(self):
        stderr = (self.stderr or b'').decode(errors='backslashreplace').strip()[:5000]
        return f"Command {self.cmd} exited with {self.returncode}: {stderr}"


class _Output:
    """Chunks of one stream; None from the stream means it is closed."""

    def __init__(self, name):
        self._name = name
        self._chunks = []
        self.closed = False

    def add(self, chunk: Optional[bytes]):
        if chunk is None:
            self.closed = True
        elif chunk:
            _logger.debug("%s: %s", self._name, chunk.decode(errors='backslashreplace'))
            self._chunks.append(bytes(chunk))

    def data(self) -> bytes:
        return b''.join(self._chunks)


class Run(metaclass=ABCMeta):
    """One started command: local process or remote SSH channel."""

    _kill_wait_sec = 30

    def __init__(self, args):
        self.args = args

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.returncode is None:
            self._stop_unfinished(exc_type is None)
        self.close()

    def _stop_unfinished(self, raise_error: bool):
        try:
            self.kill()
            self.wait(self._kill_wait_sec)
        except (NotImplementedError, TimeoutExpired) as e:
            outcome = f"could not stop it: {e}"
        else:
            outcome = "killed"
        if raise_error:
            self.close()
            raise SubprocessError(f"Command {self.args} still running on exit, {outcome}")
        _logger.warning("Command %s still running on exit, %s", self.args, outcome)

    @abstractmethod
    def wait(self, timeout=None) -> int:
        pass

    @abstractmethod
    def send(self, bytes_buffer: _Bytes, is_last=False) -> int:
        """Send some of the input; return how many bytes went out."""
        return 0

    @abstractmethod
    def receive(self, timeout_sec: float):
        """Receive stdout chunk and stderr chunk; None if closed."""
        return b'', b''

    @property
    @abstractmethod
    def returncode(self) -> Optional[int]:
        return None

    def communicate(
            self,
            input: Optional[_Bytes] = None,  # noqa PyShadowingBuiltins
            timeout_sec: float = DEFAULT_RUN_TIMEOUT_SEC,
            ) -> Tuple[bytes, bytes]:
        pending = None if input is None else memoryview(input)
        stdout = _Output('stdout')
        stderr = _Output('stderr')
        deadline = time.monotonic() + timeout_sec
        while True:
            # With SSH, exit status comes from another thread: read it first
            # so that output sent before the exit is still received below.
            returncode = self.returncode
            stdout_chunk, stderr_chunk = self.receive(timeout_sec=min(1., timeout_sec / 2))
            stdout.add(stdout_chunk)
            stderr.add(stderr_chunk)
            if returncode is not None and stdout.closed and stderr.closed:
                return stdout.data(), stderr.data()
            if time.monotonic() > deadline:
                if returncode is not None:
                    _logger.debug("Exited, output streams still open: %s", self.args)
                    return stdout.data(), stderr.data()
                raise TimeoutExpired(self.args, timeout_sec, stdout.data(), stderr.data())
            if pending is not None and returncode is None:
                pending = pending[self.send(pending, is_last=True):]
                if not pending:
                    pending = None

    @abstractmethod
    def terminate(self):
        pass

    @abstractmethod
    def kill(self):
        pass

    @abstractmethod
    def close(self):
        pass


class Shell(metaclass=ABCMeta):
    """Something that runs commands on a host.

    A list of arguments is an executable with its arguments.
    A string is a shell script.
    Every run is bounded by a timeout; nothing waits forever.
    """

    @abstractmethod
    def Popen(self, args, cwd=None, env=None) -> Run:  # noqa PyPep8Naming
        pass

    def run(
            self,
            args,
            input: Optional[_Bytes] = None,  # noqa PyShadowingBuiltins
            timeout_sec: float = DEFAULT_RUN_TIMEOUT_SEC,
            check=True,
            cwd=None,
            env=None,
            ) -> CompletedProcess:
        started_at = time.monotonic()
        with self.Popen(args, cwd=cwd, env=env) as run:
            try:
                stdout, stderr = run.communicate(input=input, timeout_sec=timeout_sec)
            except TimeoutExpired:
                _logger.error("Timed out after %.0f sec: %s", timeout_sec, args)
                raise
            returncode = run.returncode
        _logger.debug(
            "Exit status %s after %.1f sec: %s",
            returncode, time.monotonic() - started_at, args)
        if check and returncode != 0:
            raise CommandFailed(returncode, args, stdout, stderr)
        return CompletedProcess(args, returncode, stdout, stderr)
