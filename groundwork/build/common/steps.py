# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
"""
Typed build steps and the runners that execute their commands.
"""
from __future__ import annotations

import logging
import os
import pathlib
import re
from typing import TYPE_CHECKING, Mapping, Optional, Protocol, Sequence

from groundwork.common import PathLike, runcmd

if TYPE_CHECKING:
    from groundwork.toolchain import ToolchainContext

log = logging.getLogger(__name__)


class Runner(Protocol):
    """Something able to run an external command."""

    def run(
        self, argv: Sequence[str], env: Mapping[str, str], cwd: PathLike
    ) -> None: ...


class CommandRunner:
    """
    Run commands as blocking subprocesses, output goes to the log.
    """

    def run(self, argv: Sequence[str], env: Mapping[str, str], cwd: PathLike) -> None:
        runcmd(list(argv), env=dict(env), cwd=os.fspath(cwd))


class StepContext:
    """
    Everything a step may refer to while it runs.

    :param env: The package's build environment
    :type env: dict
    :param cwd: The directory the step runs in
    :type cwd: str
    :param prefix: The install root
    :type prefix: str
    :param source: The extracted source tree
    :type source: str
    :param toolchain: The toolchain context of the run
    :type toolchain: ``groundwork.toolchain.ToolchainContext``
    :param workspace: Scratch directory of the package, defaults to the
        parent of the source tree
    :type workspace: str
    """

    def __init__(
        self,
        env: Mapping[str, str],
        cwd: PathLike,
        prefix: PathLike,
        source: PathLike,
        toolchain: "ToolchainContext",
        workspace: Optional[PathLike] = None,
    ) -> None:
        self.env = dict(env)
        self.cwd = pathlib.Path(cwd)
        self.prefix = pathlib.Path(prefix)
        self.source = pathlib.Path(source)
        self.toolchain = toolchain
        if workspace is None:
            workspace = self.source.parent
        self.workspace = pathlib.Path(workspace)

    def at(self, cwd: PathLike) -> "StepContext":
        """A copy of this context running in another directory."""
        return StepContext(
            self.env, cwd, self.prefix, self.source, self.toolchain, self.workspace
        )

    @property
    def values(self) -> dict[str, str]:
        """Placeholder values available to step arguments."""
        return {
            "prefix": str(self.prefix),
            "src": str(self.source),
            "jobs": str(self.toolchain.jobs),
            "triplet": self.toolchain.triplet,
            "cc": self.toolchain.cc,
            "make": self.toolchain.make,
        }

    def format(self, value: str) -> str:
        """Substitute ``{prefix}`` style placeholders."""
        return value.format(**self.values)

    def path(self, value: str) -> pathlib.Path:
        """Resolve a formatted path relative to the working directory."""
        return self.cwd / self.format(value)


class Step:
    """
    A single operation of a recipe.
    """

    def describe(self) -> str:
        raise NotImplementedError

    def __call__(self, runner: Runner, ctx: StepContext) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.describe()}>"


class Run(Step):
    """
    Run an external command.

    The program ``make`` is replaced with the toolchain's make.
    """

    def __init__(self, *argv: str) -> None:
        if not argv:
            raise ValueError("Run needs a command")
        self.argv = tuple(argv)

    def describe(self) -> str:
        return " ".join(self.argv)

    def __call__(self, runner: Runner, ctx: StepContext) -> None:
        argv = [ctx.format(_) for _ in self.argv]
        if argv[0] == "make":
            argv[0] = ctx.toolchain.make
        log.debug("Step: %s", " ".join(argv))
        runner.run(argv, ctx.env, ctx.cwd)


class Patch(Step):
    """
    Apply a unified diff with ``patch``.
    """

    def __init__(self, text: str, strip: int = 1, name: str = "fix.patch") -> None:
        self.text = text
        self.strip = strip
        self.name = name

    def describe(self) -> str:
        return f"patch -p{self.strip} < {self.name}"

    def __call__(self, runner: Runner, ctx: StepContext) -> None:
        patch_file = ctx.workspace / self.name
        patch_file.write_text(self.text)
        runner.run(
            ["patch", "-N", f"-p{self.strip}", "-i", str(patch_file)],
            ctx.env,
            ctx.cwd,
        )


class Replace(Step):
    """
    Search a file line by line for a pattern to replace.
    """

    def __init__(self, path: str, old: str, new: str) -> None:
        self.path = path
        self.old = old
        self.new = new

    def describe(self) -> str:
        return f"replace {self.old!r} with {self.new!r} in {self.path}"

    def __call__(self, runner: Runner, ctx: StepContext) -> None:
        patch_file(ctx.path(self.path), self.old, ctx.format(self.new))


class Symlink(Step):
    """
    Create a symbolic link, replacing an existing one.
    """

    def __init__(self, target: str, link: str) -> None:
        self.target = target
        self.link = link

    def describe(self) -> str:
        return f"ln -sf {self.target} {self.link}"

    def __call__(self, runner: Runner, ctx: StepContext) -> None:
        link = ctx.path(self.link)
        link.parent.mkdir(parents=True, exist_ok=True)
        if link.is_symlink() or link.exists():
            link.unlink()
        os.symlink(ctx.format(self.target), link)


class WriteFile(Step):
    """
    Write a file with the given content.
    """

    def __init__(self, path: str, content: str, mode: int = 0o644) -> None:
        self.path = path
        self.content = content
        self.mode = mode

    def describe(self) -> str:
        return f"write {self.path} ({oct(self.mode)})"

    def __call__(self, runner: Runner, ctx: StepContext) -> None:
        path = ctx.path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.content)
        os.chmod(path, self.mode)


def patch_file(path: PathLike, old: str, new: str) -> None:
    """
    Search a file line by line for a string to replace.

    :param path: Location of the file to search
    :type path: str
    :param old: The regular expression that will be replaced
    :type old: str
    :param new: The value that will replace the 'old' value.
    :type new: str
    """
    log.debug("Patching file: %s", path)
    with open(path, "r") as fp:
        content = fp.read()
    new_content = ""
    for line in content.splitlines():
        line = re.sub(old, new, line)
        new_content += line + "\n"
    with open(path, "w") as fp:
        fp.write(new_content)


def configure_make(*args: str, configure: str = "./configure") -> tuple[Step, ...]:
    """
    The usual configure, make, make install sequence.

    :param args: Extra arguments to configure
    :type args: str
    """
    return (
        Run(configure, "--prefix={prefix}", *args),
        Run("make", "-j{jobs}"),
        Run("make", "install"),
    )


def run_steps(
    steps: Sequence[Step], runner: Runner, ctx: StepContext, cwd: Optional[PathLike] = None
) -> None:
    """
    Run steps in order, stopping at the first failure.
    """
    if cwd is not None:
        ctx = ctx.at(cwd)
    for step in steps:
        step(runner, ctx)
