# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import logging.handlers
from pathlib import Path
from typing import Optional


def init_logging(log_file: Optional[Path] = None, verbose: bool = False):
    logging.getLogger().setLevel(logging.DEBUG)
    if log_file is not None:
        _init_file_logging(log_file)
    _init_stream_logging(logging.DEBUG if verbose else logging.INFO)
    # Paramiko logs every channel event on DEBUG.
    logging.getLogger('paramiko').setLevel(logging.WARNING)


def _init_file_logging(log_file: Path):
    log_file.parent.mkdir(exist_ok=True, parents=True)
    file_handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=50 * 1024**2, backupCount=6)
    file_handler.setFormatter(logging.Formatter('%(asctime)s %(name)s %(levelname)s %(message)s'))
    file_handler.setLevel(logging.DEBUG)
    logging.getLogger().addHandler(file_handler)


def _init_stream_logging(level):
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)7s %(message)s'))
    stream_handler.setLevel(level)
    logging.getLogger().addHandler(stream_handler)
