# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
"""
Entry points for the ``groundwork install`` CLI command.
"""
from __future__ import annotations

import argparse
import signal
import sys
from types import FrameType

from .catalog import registry
from .common import Builder
from ..common import WorkDirs, work_dir
from ..toolchain import PROFILES, discover


def positive_int(value: str) -> int:
    """
    Parse a strictly positive integer argument.
    """
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {value!r}")
    return number


def setup_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """
    Setup the subparser for the ``install`` command.

    :param subparsers: The subparsers object returned from ``add_subparsers``
    :type subparsers: argparse._SubParsersAction
    """
    install_subparser = subparsers.add_parser(
        "install", description="Build and install tools from source"
    )
    install_subparser.set_defaults(func=main)
    install_subparser.add_argument(
        "names",
        nargs="+",
        metavar="NAME",
        help="The packages to install, see ls-available",
    )
    install_subparser.add_argument(
        "--prefix",
        default=work_dir("root"),
        type=str,
        help="The install root [default: %(default)s]",
    )
    install_subparser.add_argument(
        "--download-dir",
        default=work_dir("download"),
        type=str,
        help="Where source archives are cached [default: %(default)s]",
    )
    install_subparser.add_argument(
        "--session-dir",
        default=None,
        type=str,
        help=(
            "Directory holding sources, private prefixes and logs of this run. "
            "A temporary directory is used when not given."
        ),
    )
    install_subparser.add_argument(
        "--keep-session",
        default=False,
        action="store_true",
        help="Leave the session directory in place after the run",
    )
    install_subparser.add_argument(
        "--profile",
        default="release",
        choices=PROFILES,
        help="Compiler flag profile [default: %(default)s]",
    )
    install_subparser.add_argument(
        "--jobs",
        default=None,
        type=positive_int,
        help="Parallel make jobs [default: number of cpus]",
    )
    install_subparser.add_argument(
        "--no-strip",
        default=False,
        action="store_true",
        help="Do not strip installed binaries in release builds",
    )
    install_subparser.add_argument(
        "--lto",
        default=False,
        action="store_true",
        help="Enable link time optimization",
    )
    install_subparser.add_argument(
        "--download-only",
        default=False,
        action="store_true",
        help="Stop after downloading source archives",
    )
    install_subparser.add_argument(
        "--log-level",
        default="info",
        choices=(
            "error",
            "warning",
            "info",
            "debug",
        ),
        help="Log level determines how verbose the logs will be.",
    )


def main(args: argparse.Namespace) -> None:
    """
    The entrypoint to the ``install`` command.

    :param args: The arguments to the command
    :type args: ``argparse.Namespace``
    """
    toolchain = discover(
        profile=args.profile,
        jobs=args.jobs,
        strip=not args.no_strip,
        lto=args.lto,
    )
    dirs = WorkDirs(
        prefix=args.prefix,
        download=args.download_dir,
        session=args.session_dir,
    )
    builder = Builder(registry, toolchain, dirs, keep_session=args.keep_session)

    def signal_handler(_signal: int, frame: FrameType | None) -> None:
        sys.exit(1)

    signal.signal(signal.SIGINT, signal_handler)

    builder(
        args.names,
        download_only=args.download_only,
        log_level=args.log_level,
    )
