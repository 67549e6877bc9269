# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from typing import Mapping
from typing import Tuple
from typing import Union

from os_access import Run
from os_access import Shell


class CannedRun(Run):
    """A finished command with known output."""

    def __init__(self, args, returncode, stdout=b'', stderr=b''):
        super().__init__(args)
        self._returncode = returncode
        self._chunks = (stdout, stderr)

    def wait(self, timeout=None):
        return self._returncode

    def send(self, bytes_buffer, is_last=False):
        return len(bytes_buffer)

    def receive(self, timeout_sec):
        chunks = self._chunks
        self._chunks = (None, None)
        return chunks

    @property
    def returncode(self):
        return self._returncode

    def terminate(self):
        pass

    def kill(self):
        pass

    def close(self):
        pass


class ScriptedShell(Shell):
    """Answer commands from a table; unknown commands exit with 127.

    An exception in place of an answer is raised, as a hung command would.
    """

    def __init__(self, answers: Mapping[str, Union[Tuple[int, bytes], Exception]]):
        self._answers = answers
        self.calls = []

    def Popen(self, args, cwd=None, env=None):  # noqa PyPep8Naming
        key = args if isinstance(args, str) else ' '.join(args)
        self.calls.append(key)
        try:
            answer = self._answers[key]
        except KeyError:
            return CannedRun(args, 127, stderr=f'{key}: not found'.encode())
        if isinstance(answer, Exception):
            raise answer
        returncode, stdout = answer
        return CannedRun(args, returncode, stdout=stdout, stderr=b'failed' if returncode else b'')
