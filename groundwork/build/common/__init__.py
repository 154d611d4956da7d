# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
"""
Build process common methods.

The pieces live in focused submodules; the public API is re-exported here.
"""
from __future__ import annotations

from .builder import (
    Builder,
    Dirs,
)

from .download import (
    Fetcher,
    file_checksum,
    verify_checksum,
)

from .ledger import InstallLedger

from .recipes import (
    Recipe,
    RecipeRegistry,
)

from .steps import (
    CommandRunner,
    Patch,
    Replace,
    Run,
    StepContext,
    Symlink,
    WriteFile,
    configure_make,
    patch_file,
)


__all__ = [
    # Orchestration
    "Builder",
    "Dirs",
    # Retrieval
    "Fetcher",
    "file_checksum",
    "verify_checksum",
    # Ledger
    "InstallLedger",
    # Recipes
    "Recipe",
    "RecipeRegistry",
    # Build steps
    "CommandRunner",
    "Patch",
    "Replace",
    "Run",
    "StepContext",
    "Symlink",
    "WriteFile",
    "configure_make",
    "patch_file",
]
