# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from .local_posix_shell import local_posix_shell

local_shell = local_posix_shell

__all__ = [
    'local_posix_shell',
    'local_shell',
    ]
