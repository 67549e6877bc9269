# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import os
import re
import shlex
from abc import ABCMeta
from abc import abstractmethod
from textwrap import dedent
from typing import Mapping
from typing import Sequence

from os_access._command import Shell

_env_name_re = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')
# Overriding these would break the login shell the command runs in.
_RESERVED_ENV_NAMES = frozenset({'PATH', 'HOME', 'USER', 'SHELL', 'PWD', 'TERM'})


def _to_str(value) -> str:
    if isinstance(value, bool):
        raise TypeError(f"Ambiguous boolean {value!r}: pass a string")
    if isinstance(value, (str, int)):
        return str(value)
    if isinstance(value, os.PathLike):
        return os.fspath(value)
    raise TypeError(f"Unsupported {type(value).__name__} value {value!r}")


def quote_arg(arg) -> str:
    return shlex.quote(_to_str(arg))


def command_to_script(command: Sequence) -> str:
    """
    >>> command_to_script(['apache2ctl', '-c', 'ServerRoot /etc/apache2 green'])
    "apache2ctl -c 'ServerRoot /etc/apache2 green'"
    """
    return ' '.join(quote_arg(arg) for arg in command)


def env_values_to_str(env: Mapping) -> Mapping[str, str]:
    return {name: '' if value is None else _to_str(value) for name, value in env.items()}


def env_assignments(env: Mapping) -> Sequence[str]:
    """
    >>> env_assignments({'APACHE_CONFDIR': '/etc/apache2-green'})
    ['APACHE_CONFDIR=/etc/apache2-green']
    """
    assignments = []
    for name, value in env_values_to_str(env).items():
        if not _env_name_re.fullmatch(name):
            raise ValueError(f"Invalid environment variable name {name!r}")
        if name in _RESERVED_ENV_NAMES:
            raise ValueError(f"Refuse to override {name}")
        assignments.append(f'{name}={quote_arg(value)}')
    return assignments


def augment_script(script: str, cwd=None, env=None, set_eux=True) -> str:
    lines = []
    if set_eux:
        lines.append('set -eux')  # Plain sh: no pipefail.
    if cwd is not None:
        lines.append(command_to_script(['cd', cwd]))
    if env is not None:
        lines.extend('export ' + assignment for assignment in env_assignments(env))
    lines.append(dedent(script).strip())
    return '\n'.join(lines)


class PosixShell(Shell, metaclass=ABCMeta):

    @abstractmethod
    def is_working(self) -> bool:
        pass

    @abstractmethod
    def close(self):
        pass
