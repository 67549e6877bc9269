# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import posixpath
from typing import Sequence

from os_access._command import Shell

_logger = logging.getLogger(__name__)


class PosixFiles:
    """File operations on the host behind a shell.

    Everything goes through coreutils so that the same code works
    on the local machine and over SSH. Paths are POSIX strings.
    """

    def __init__(self, shell: Shell, timeout_sec: float = 60):
        self._shell = shell
        self._timeout_sec = timeout_sec

    def __repr__(self):
        return f'<PosixFiles at {self._shell!r}>'

    def _test(self, *args) -> bool:
        result = self._shell.run(['test', *args], check=False, timeout_sec=self._timeout_sec)
        return result.returncode == 0

    def _run(self, args, **kwargs):
        return self._shell.run(args, timeout_sec=self._timeout_sec, **kwargs)

    def exists(self, path) -> bool:
        # A dangling symlink exists as far as renaming and removal are concerned.
        return self._test('-e', path) or self._test('-L', path)

    def is_dir(self, path) -> bool:
        return self._test('-d', path)

    def is_file(self, path) -> bool:
        return self._test('-f', path)

    def is_symlink(self, path) -> bool:
        return self._test('-L', path)

    def readlink(self, path) -> str:
        return self._run(['readlink', path]).stdout.decode().rstrip('\n')

    def resolve(self, path) -> str:
        return self._run(['readlink', '-f', path]).stdout.decode().rstrip('\n')

    def mkdir_p(self, path):
        self._run(['mkdir', '-p', path])

    def list_dir(self, path) -> Sequence[str]:
        output = self._run(['ls', '-A1', path]).stdout.decode()
        return sorted(name for name in output.splitlines() if name)

    def is_empty_dir(self, path) -> bool:
        return not self.list_dir(path)

    def copy_file(self, source, destination):
        _logger.info("Copy %s to %s", source, destination)
        self._run(['cp', '-f', source, destination])

    def copy_tree_contents(self, source_dir, destination_dir):
        """Copy everything inside source_dir, hidden files included, into destination_dir."""
        _logger.info("Copy contents of %s to %s", source_dir, destination_dir)
        self._run(['cp', '-a', posixpath.join(source_dir, '.'), destination_dir])

    def rename(self, source, destination):
        _logger.info("Rename %s to %s", source, destination)
        self._run(['mv', '-T', source, destination])

    def symlink(self, target, link):
        _logger.info("Symlink %s -> %s", link, target)
        self._run(['ln', '-s', target, link])

    def replace_symlink(self, target, link):
        """Repoint an existing symlink in one rename(2), never leaving it absent."""
        temporary_link = link + '.swap'
        _logger.info("Repoint %s -> %s", link, target)
        self._run(['ln', '-sfn', target, temporary_link])
        self._run(['mv', '-T', temporary_link, link])

    def remove_symlink(self, link):
        if not self.is_symlink(link):
            raise RuntimeError(f"Refuse to remove {link}: not a symlink")
        self._run(['rm', '-f', link])

    def remove_tree(self, path):
        _logger.info("Remove %s", path)
        self._run(['rm', '-rf', path])

    def remove_file(self, path):
        self._run(['rm', '-f', path])

    def read_bytes(self, path) -> bytes:
        return self._run(['cat', path]).stdout

    def write_bytes(self, path, data: bytes):
        self._run(['sh', '-c', 'cat > "$1"', 'sh', path], input=data)

    def make_temp_dir(self, prefix: str) -> str:
        return self._run(['mktemp', '-d', '-t', prefix + '.XXXXXX']).stdout.decode().strip()

    def hostname(self) -> str:
        return self._run(['uname', '-n']).stdout.decode().strip()
