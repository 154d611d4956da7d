# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
import os
import stat

import pytest

from groundwork.build.common.steps import (
    CommandRunner,
    Patch,
    Replace,
    Run,
    StepContext,
    Symlink,
    WriteFile,
    configure_make,
    patch_file,
    run_steps,
)
from groundwork.common import BuildStepError
from tests.helpers import FakeRunner


@pytest.fixture
def ctx(tmp_path, toolchain):
    source = tmp_path / "pkg" / "src"
    source.mkdir(parents=True)
    return StepContext(
        {"PATH": "/usr/bin"}, source, tmp_path / "prefix", source, toolchain
    )


def test_run_formats_placeholders(ctx):
    runner = FakeRunner()
    Run("./configure", "--prefix={prefix}", "--host={triplet}")(runner, ctx)
    argv, env, cwd = runner.calls[0]
    assert argv == [
        "./configure",
        f"--prefix={ctx.prefix}",
        "--host=x86_64-linux-gnu",
    ]
    assert env == {"PATH": "/usr/bin"}
    assert cwd == ctx.source


def test_run_uses_toolchain_make(ctx):
    runner = FakeRunner()
    Run("make", "-j{jobs}")(runner, ctx)
    assert runner.commands == [["/usr/bin/make", "-j4"]]


def test_run_needs_command():
    with pytest.raises(ValueError):
        Run()


def test_configure_make(ctx):
    runner = FakeRunner()
    run_steps(configure_make("--disable-nls"), runner, ctx)
    assert runner.commands == [
        ["./configure", f"--prefix={ctx.prefix}", "--disable-nls"],
        ["/usr/bin/make", "-j4"],
        ["/usr/bin/make", "install"],
    ]


def test_run_steps_stops_at_failure(ctx):
    runner = FakeRunner(fail_on="install")
    with pytest.raises(BuildStepError):
        run_steps(
            (Run("make"), Run("make", "install"), Run("make", "check")), runner, ctx
        )
    assert len(runner.calls) == 2


def test_run_steps_cwd(ctx, tmp_path):
    runner = FakeRunner()
    run_steps((Run("true"),), runner, ctx, cwd=tmp_path)
    assert runner.calls[0][2] == tmp_path


def test_patch(ctx):
    runner = FakeRunner()
    Patch("--- a/x\n+++ b/x\n", strip=1, name="fix-x.patch")(runner, ctx)
    patch = ctx.source.parent / "fix-x.patch"
    assert patch.read_text() == "--- a/x\n+++ b/x\n"
    assert runner.commands == [["patch", "-N", "-p1", "-i", str(patch)]]


def test_patch_in_prefix_writes_to_workspace(ctx, tmp_path):
    prefix = tmp_path / "prefix"
    prefix.mkdir()
    runner = FakeRunner()
    run_steps((Patch("--- a/x\n+++ b/x\n"),), runner, ctx, cwd=prefix)
    patch = ctx.workspace / "fix.patch"
    assert patch.is_file()
    assert not (tmp_path / "fix.patch").exists()
    assert runner.calls[0][0][-1] == str(patch)
    assert runner.calls[0][2] == prefix


def test_context_workspace(ctx, tmp_path):
    assert ctx.workspace == tmp_path / "pkg"
    other = StepContext({}, tmp_path, tmp_path, ctx.source, ctx.toolchain, tmp_path / "ws")
    assert other.at(ctx.source).workspace == tmp_path / "ws"


def test_replace(ctx):
    (ctx.source / "Makefile").write_text("PREFIX = /usr\nCC = gcc\n")
    Replace("Makefile", r"^PREFIX = .*", "PREFIX = {prefix}")(FakeRunner(), ctx)
    assert (ctx.source / "Makefile").read_text() == (
        f"PREFIX = {ctx.prefix}\nCC = gcc\n"
    )


def test_patch_file(tmp_path):
    path = tmp_path / "file"
    path.write_text("one\ntwo\n")
    patch_file(path, "t.o", "2")
    assert path.read_text() == "one\n2\n"


def test_symlink(ctx):
    ctx = ctx.at(ctx.prefix)
    (ctx.prefix / "bin").mkdir(parents=True)
    (ctx.prefix / "bin" / "m4").write_text("")
    Symlink("m4", "bin/gm4")(FakeRunner(), ctx)
    link = ctx.prefix / "bin" / "gm4"
    assert link.is_symlink()
    assert os.readlink(link) == "m4"
    Symlink("m4", "bin/gm4")(FakeRunner(), ctx)
    assert os.readlink(link) == "m4"


def test_write_file(ctx):
    WriteFile("bin/tool", "#!/bin/sh\necho ${HOME}\n", mode=0o755)(FakeRunner(), ctx)
    path = ctx.source / "bin" / "tool"
    assert path.read_text() == "#!/bin/sh\necho ${HOME}\n"
    assert stat.S_IMODE(path.stat().st_mode) == 0o755


def test_describe():
    assert Run("make", "install").describe() == "make install"
    assert repr(Symlink("make", "bin/gmake")) == "<Symlink ln -sf make bin/gmake>"


def test_command_runner(tmp_path):
    CommandRunner().run(["sh", "-c", "echo hi > out"], os.environ, tmp_path)
    assert (tmp_path / "out").read_text() == "hi\n"


def test_command_runner_failure(tmp_path):
    with pytest.raises(BuildStepError) as exc:
        CommandRunner().run(["sh", "-c", "exit 4"], os.environ, tmp_path)
    assert exc.value.returncode == 4
