# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
"""
The entrypoint into groundwork.
"""
from __future__ import annotations

import sys
from argparse import ArgumentParser
from typing import Optional, Sequence

from . import available, build, buildenv
from .build.common import ui
from .common import GroundworkException, __version__


def setup_cli() -> ArgumentParser:
    """
    Build the argparser with its subparsers.

    The modules with commands to add must specify a setup_parser function
    that takes in the subparsers object from `argparse.add_subparsers()`

    :return: The fully setup argument parser
    :rtype: ``argparse.ArgumentParser``
    """
    argparser = ArgumentParser(
        prog="groundwork",
        description="Bootstrap foundational build tools from source",
    )
    argparser.add_argument("--version", action="version", version=__version__)
    subparsers = argparser.add_subparsers()

    modules_to_setup = [
        build,
        available,
        buildenv,
    ]
    for mod in modules_to_setup:
        mod.setup_parser(subparsers)

    return argparser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """
    Run the groundwork cli and disbatch to subcommands.
    """
    parser = setup_cli()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        parser.exit(1, "\nNo subcommand given...\n\n")
    try:
        args.func(args)
    except GroundworkException as exc:
        ui.error(f"Error: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
