# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import fnmatch
import logging
import socket
from configparser import ConfigParser
from pathlib import Path
from typing import Mapping
from typing import NamedTuple
from typing import Optional

_logger = logging.getLogger(__name__)


def read_config(*paths: Path, host: Optional[str] = None) -> Mapping[str, str]:
    """Read and resolve overrides according to versions.

    Sections are host masks: "[defaults]", "[web-*]", "[web-01;v2]".
    If no version is specified, "v0" is assumed.
    Higher versions override lower versions; among equal versions,
    later files and later sections win.
    """
    if host is None:
        host = socket.gethostname()
    config_parts = []
    for path_i, path in enumerate(paths):
        config_parser = ConfigParser(interpolation=None)
        config_parser.read(path)
        for section_i, section in enumerate(config_parser.sections()):
            mask, version = _parse_section_header(section)
            if fnmatch.fnmatch(host, mask):
                _logger.info("Config %s: section %s: read", path, section)
                config_parts.append((version, path_i, section_i, config_parser.items(section)))
            else:
                _logger.debug("Config %s: section %s: skip", path, section)
    config_parts.sort(key=lambda part: part[:3])
    config = {}
    for _version, _path_i, _section_i, items in config_parts:
        config.update(items)
    return config


def _parse_section_header(section):
    if section == 'defaults':
        return '*', 0
    mask, _semicolon, extra = section.partition(';')
    if not extra:
        return mask, 0
    elif extra.startswith('v'):
        try:
            return mask, int(extra[1:])
        except ValueError:
            raise ValueError(f"Cannot parse {extra} in {section}")
    else:
        raise ValueError(f"Unknown {extra} in {section}")


class RolloutSettings(NamedTuple):
    """Everything the controller needs to know about the host, fixed at start."""

    platform_family: str = ''  # Empty means detect from /etc/os-release.
    config_dir: str = ''  # Empty means the platform's usual place.
    backup_dir: str = '/var/backups/httpd'
    lock_dir: str = '/run/lock'
    health_host: str = 'localhost'
    health_port: int = 80
    health_path: str = '/'
    health_timeout_sec: float = 5.0
    reload_attempts: int = 3
    reload_wait_sec: float = 5.0
    liveness_attempts: int = 3
    liveness_interval_sec: float = 2.0
    command_timeout_sec: float = 60.0
    keep_original_dirs: int = 3

    @classmethod
    def from_mapping(cls, raw: Mapping[str, str]) -> 'RolloutSettings':
        values = {}
        for name, raw_value in raw.items():
            if name not in cls._field_defaults:
                _logger.debug("Ignore unknown setting %s=%s", name, raw_value)
                continue
            value_type = type(cls._field_defaults[name])
            try:
                values[name] = value_type(raw_value)
            except ValueError:
                raise ValueError(f"Setting {name}: expected {value_type.__name__}, got {raw_value!r}")
        return cls(**values)


def default_config_paths():
    return (
        Path(__file__).with_name('httpd_rollout.ini'),
        Path('~/.config/httpd_rollout.ini').expanduser(),
        )


def load_settings(*extra_paths: Path) -> RolloutSettings:
    return RolloutSettings.from_mapping(read_config(*default_config_paths(), *extra_paths))
