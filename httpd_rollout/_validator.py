# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from subprocess import TimeoutExpired
from typing import NamedTuple
from typing import Optional

from httpd_rollout._platform import ServiceTarget
from os_access import Shell

_logger = logging.getLogger(__name__)


class ValidationResult(NamedTuple):

    ok: bool
    diagnostics: str


class Validator:
    """Run the server's own syntax check. Never changes anything."""

    def __init__(self, shell: Shell, target: ServiceTarget, timeout_sec: float = 60):
        self._shell = shell
        self._target = target
        self._timeout_sec = timeout_sec

    def _command(self, config_root):
        if config_root is None:
            return list(self._target.validate_command), None
        if self._target.config_root_env is not None:
            return list(self._target.validate_command), {self._target.config_root_env: config_root}
        return [*self._target.validate_command, '-c', f'ServerRoot {config_root}'], None

    def validate(self, config_root: Optional[str] = None) -> ValidationResult:
        """Check the live configuration or, if given, the one rooted at config_root."""
        command, env = self._command(config_root)
        try:
            result = self._shell.run(command, env=env, check=False, timeout_sec=self._timeout_sec)
        except TimeoutExpired as e:
            _logger.error("Syntax check timed out: %s", command)
            return ValidationResult(False, f"Syntax check timed out after {e.timeout} sec")
        except OSError as e:
            _logger.error("Cannot run syntax check %s: %s", command, e)
            return ValidationResult(False, str(e))
        diagnostics = result.stderr.decode(errors='backslashreplace').strip()
        if result.returncode != 0:
            _logger.error(
                "Configuration validation failed (%s): %s",
                config_root or 'live configuration', diagnostics)
            return ValidationResult(False, diagnostics)
        _logger.info("Configuration is valid: %s", config_root or 'live configuration')
        return ValidationResult(True, diagnostics)
