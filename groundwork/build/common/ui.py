# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
"""
Terminal output and log handler setup.
"""
from __future__ import annotations

import logging
import os
import sys
from typing import IO, Optional

from groundwork.common import PathLike

log = logging.getLogger(__name__)


# ANSI color codes for terminal output
GREEN = "\033[0;32m"
YELLOW = "\033[1;33m"
RED = "\033[0;31m"
END = "\033[0m"

LEVEL_COLORS = {
    logging.WARNING: YELLOW,
    logging.ERROR: RED,
    logging.CRITICAL: RED,
}

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def use_color(stream: Optional[IO[str]] = None) -> bool:
    """
    True when color escape codes should be written to the stream.
    """
    if os.environ.get("NO_COLOR"):
        return False
    if stream is None:
        stream = sys.stderr
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


class ColorFormatter(logging.Formatter):
    """
    Prefix records with a color matching their level.
    """

    def __init__(self, fmt: Optional[str] = None, color: bool = True) -> None:
        super().__init__(fmt or "%(message)s")
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if not self.color:
            return message
        color = LEVEL_COLORS.get(record.levelno)
        if color is None and getattr(record, "success", False):
            color = GREEN
        if color is None:
            return message
        return f"{color}{message}{END}"


def stream_handler(level: str = "INFO", stream: Optional[IO[str]] = None) -> logging.Handler:
    """
    A handler writing colored records to stderr.
    """
    if stream is None:
        stream = sys.stderr
    handler = logging.StreamHandler(stream)
    handler.setLevel(logging.getLevelName(level.upper()))
    handler.setFormatter(ColorFormatter(color=use_color(stream)))
    return handler


def file_handler(path: PathLike, level: int = logging.DEBUG) -> logging.Handler:
    """
    A handler writing every record to a log file.
    """
    handler = logging.FileHandler(path)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def success(message: str, *args: object) -> None:
    """
    Log a confirmation line, shown in green on a terminal.
    """
    log.info(message, *args, extra={"success": True})


def error(message: str, stream: Optional[IO[str]] = None) -> None:
    """
    Write a diagnostic line to stderr.
    """
    if stream is None:
        stream = sys.stderr
    if use_color(stream):
        message = f"{RED}{message}{END}"
    stream.write(message + "\n")
    stream.flush()
