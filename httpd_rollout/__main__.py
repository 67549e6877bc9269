# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import argparse
import json
import logging
import posixpath
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import Optional
from typing import Sequence

from httpd_rollout._config import load_settings
from httpd_rollout._controller import RolloutController
from httpd_rollout._exceptions import LockBusy
from httpd_rollout._exceptions import PlatformMismatchError
from httpd_rollout._logging import init_logging
from os_access import PosixFiles
from os_access import Shell
from os_access import Ssh
from os_access import SshNotConnected
from os_access.local_shell import local_shell

_logger = logging.getLogger(__name__)


def main(args: Sequence[str]) -> int:
    parser = argparse.ArgumentParser(
        prog='python -m httpd_rollout',
        description="Change Apache configuration without dropping connections.")
    parser.add_argument('--ssh', metavar='USER@HOST[:PORT]', help="manage a remote host; default: this host")
    parser.add_argument('--key-file', type=Path, help="private key for --ssh; default: agent and ~/.ssh")
    parser.add_argument('--known-hosts', help="refuse SSH hosts not listed in this file; default: accept any")
    parser.add_argument('--config', type=Path, action='append', default=[], help="extra INI file")
    parser.add_argument('--log-file', type=Path, help="also log everything to this file")
    parser.add_argument('--verbose', '-v', action='store_true')
    commands = parser.add_subparsers(dest='command', required=True)
    validate = commands.add_parser('validate', help="run the server's syntax check")
    validate.add_argument('--root', help="validate a configuration copy instead of the live one")
    commands.add_parser('probe', help="send one health-check request")
    commands.add_parser('reload', help="graceful reload gated by health checks")
    staged = commands.add_parser('staged', help="install a file, validate, reload, roll back on failure")
    staged.add_argument('--config-path', required=True, help="file on the host to replace")
    staged.add_argument('--backup-path', required=True, help="where to keep the previous version")
    staged.add_argument('--new-file', type=Path, required=True, help="local file with new contents")
    staged.add_argument('--no-rollback', action='store_true')
    blue_green = commands.add_parser('blue-green', help="stage files into the inactive copy and switch")
    blue_green.add_argument('--config-dir', help="canonical configuration path; default: platform's")
    blue_green.add_argument(
        '--stage-file', action='append', default=[], metavar='REL=SRC',
        help="put local file SRC at REL inside the inactive environment")
    backup = commands.add_parser('backup', help="archive the configuration directory")
    backup.add_argument('--label')
    restore = commands.add_parser('restore', help="restore an archive made by backup")
    restore.add_argument('archive')
    restore.add_argument('--force', action='store_true', help="restore even if made on another platform")
    commands.add_parser('list-backups')
    commands.add_parser('mpm', help="suggest MPM worker settings for the host")
    parsed = parser.parse_args(args)
    if parsed.command == 'blue-green':
        try:
            parsed.stage_file = [_parse_stage_file(spec) for spec in parsed.stage_file]
        except ValueError as e:
            parser.error(str(e))
    init_logging(parsed.log_file, parsed.verbose)
    settings = load_settings(*parsed.config)
    with ExitStack() as exit_stack:
        try:
            shell = _make_shell(parsed.ssh, parsed.key_file, parsed.known_hosts)
        except ValueError as e:
            parser.error(str(e))
        exit_stack.callback(shell.close)
        try:
            controller = RolloutController(shell, settings)
            return _dispatch(controller, parsed)
        except (SshNotConnected, LockBusy, PlatformMismatchError) as e:
            _logger.error("%s", e)
            return 1


def _make_shell(ssh: str, key_file: Path, known_hosts: Optional[str] = None) -> Shell:
    if ssh is None:
        return local_shell
    username, at, netloc = ssh.rpartition('@')
    if not at or not username:
        raise ValueError(f"Expected USER@HOST[:PORT], got {ssh!r}")
    host, _colon, port = netloc.partition(':')
    key = key_file.read_text() if key_file is not None else None
    return Ssh(host, int(port) if port else 22, username, key, known_hosts=known_hosts)


def _dispatch(controller: RolloutController, parsed) -> int:
    if parsed.command == 'validate':
        [ok, diagnostics] = controller.validate(parsed.root)
        print(diagnostics or ('Syntax OK' if ok else 'Syntax error'))
        return 0 if ok else 1
    if parsed.command == 'probe':
        return 0 if controller.probe() else 1
    if parsed.command == 'reload':
        return 0 if controller.graceful_reload() else 1
    if parsed.command == 'staged':
        new_contents = parsed.new_file.read_bytes()

        def install():
            controller.files.write_bytes(parsed.config_path, new_contents)

        succeeded = controller.staged_rollout(
            install, parsed.config_path, parsed.backup_path,
            rollback_on_failure=not parsed.no_rollback)
        return 0 if succeeded else 1
    if parsed.command == 'blue-green':
        def stage(environment, inactive_dir):
            files: PosixFiles = controller.files
            for relative_path, source in parsed.stage_file:
                destination = posixpath.join(inactive_dir, relative_path)
                files.mkdir_p(posixpath.dirname(destination))
                files.write_bytes(destination, source.read_bytes())
                _logger.info("Staged %s into %s environment as %s", source, environment, destination)

        config_dir = parsed.config_dir or controller.profile.config_dir
        before = controller.active_environment(config_dir)
        after = controller.blue_green_deploy(config_dir, prepare_inactive=stage)
        print(after)
        return 0 if after != before else 1
    if parsed.command == 'backup':
        archive = controller.backups.backup(parsed.label)
        if archive is None:
            return 1
        print(archive)
        return 0
    if parsed.command == 'restore':
        return 0 if controller.backups.restore(parsed.archive, force=parsed.force) else 1
    if parsed.command == 'list-backups':
        for record in controller.backups.list_backups():
            print(record.path, json.dumps(dict(record.metadata), sort_keys=True))
        return 0
    if parsed.command == 'mpm':
        settings = controller.mpm_settings()
        print(json.dumps(settings._asdict(), indent=2))
        return 0
    raise RuntimeError(f"Unknown command {parsed.command}")


def _parse_stage_file(spec: str):
    relative_path, sep, source = spec.partition('=')
    if not sep or not relative_path or posixpath.isabs(relative_path):
        raise ValueError(f"Expected REL=SRC with a relative REL, got {spec!r}")
    return relative_path, Path(source)


def cli():
    return main(sys.argv[1:])


if __name__ == '__main__':
    exit(main(sys.argv[1:]))
