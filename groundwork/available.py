# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
"""
The ``groundwork ls-available`` command.
"""
from __future__ import annotations

import argparse
import sys
from typing import IO, List, Optional

from .build.catalog import registry
from .build.common.recipes import RecipeRegistry


def setup_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """
    Setup the subparser for the ``ls-available`` command.

    :param subparsers: The subparsers object returned from ``add_subparsers``
    :type subparsers: argparse._SubParsersAction
    """
    subparser = subparsers.add_parser(
        "ls-available", description="List the packages that can be installed"
    )
    subparser.set_defaults(func=main)
    subparser.add_argument(
        "-v",
        "--verbose",
        default=False,
        action="store_true",
        help="Show versions, dependencies and source urls",
    )


def listing(recipes: RecipeRegistry, verbose: bool = False) -> List[str]:
    """
    The lines describing every known package.
    """
    lines = []
    for recipe in recipes:
        if not verbose:
            lines.append(recipe.name)
            continue
        deps = ", ".join(recipe.dependencies) or "-"
        lines.append(f"{recipe.name} {recipe.version}")
        if recipe.description:
            lines.append(f"    {recipe.description}")
        lines.append(f"    depends: {deps}")
        lines.append(f"    url: {recipe.url}")
        if recipe.mirror:
            lines.append(f"    mirror: {recipe.mirror}")
    return lines


def main(args: argparse.Namespace, stream: Optional[IO[str]] = None) -> None:
    """
    The entrypoint into the ``ls-available`` command.

    :param args: The args passed to the command
    :type args: argparse.Namespace
    """
    if stream is None:
        stream = sys.stdout
    for line in listing(registry, args.verbose):
        print(line, file=stream)
