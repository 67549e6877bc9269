# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/


class ValidationError(Exception):
    """Server syntax check rejected the configuration."""

    def __init__(self, diagnostics: str):
        super().__init__(f"Configuration validation failed: {diagnostics}")
        self.diagnostics = diagnostics


class ReloadError(Exception):
    pass


class LivenessError(Exception):
    pass


class TransportError(Exception):
    pass


class PlatformMismatchError(Exception):

    def __init__(self, backup_platform, current_platform):
        super().__init__(
            f"Platform mismatch: backup from {backup_platform[0]} {backup_platform[1]}, "
            f"current platform is {current_platform[0]} {current_platform[1]}; "
            f"use force to override")
        self.backup_platform = backup_platform
        self.current_platform = current_platform


class LockBusy(Exception):
    pass
