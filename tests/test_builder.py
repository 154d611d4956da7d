# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
import os
from unittest.mock import patch

import pytest

from groundwork.build.common.builder import Builder, Dirs
from groundwork.build.common.download import Fetcher
from groundwork.build.common.ledger import InstallLedger
from groundwork.build.common.recipes import Recipe, RecipeRegistry
from groundwork.build.common.steps import Patch, Symlink, configure_make
from groundwork.common import (
    BuildStepError,
    ChecksumMismatchError,
    GroundworkException,
    MissingInstallStepError,
    ToolingMissingError,
    UnknownPackageError,
    WorkDirs,
)
from groundwork.toolchain import ToolchainContext
from tests.helpers import FakeRunner, FakeStrategy, make_tarball, sha256


class Env:
    """
    A set of recipes served by a fake strategy from local tarballs.
    """

    def __init__(self, tmp_path, toolchain):
        self.tmp_path = tmp_path
        self.toolchain = toolchain
        self.strategy = FakeStrategy()
        self.runner = FakeRunner()
        self.ledger = InstallLedger()
        self.registry = RecipeRegistry()
        self.prefix = tmp_path / "prefix"
        self.download = tmp_path / "download"
        (tmp_path / "archives").mkdir()

    def add(self, name, deps=(), build=None, checksum=None, **kwargs):
        url = f"https://example.com/{name}-{{version}}.tar.gz"
        archive = make_tarball(
            self.tmp_path / "archives" / f"{name}.tar.gz", topdir=f"{name}-1.0"
        )
        data = archive.read_bytes()
        self.strategy.files[url.format(version="1.0")] = data
        if build is None:
            build = configure_make()
        return self.registry.add(
            name,
            version="1.0",
            url=url,
            checksum=checksum or sha256(data),
            dependencies=deps,
            build=build,
            **kwargs,
        )

    def builder(self, session=None, keep_session=False):
        dirs = WorkDirs(prefix=self.prefix, download=self.download, session=session)
        return Builder(
            self.registry,
            self.toolchain,
            dirs,
            fetcher=Fetcher(strategies=[self.strategy]),
            runner=self.runner,
            ledger=self.ledger,
            keep_session=keep_session,
        )

    @property
    def fetched(self):
        return [os.path.basename(_[0]) for _ in self.strategy.calls]


@pytest.fixture
def tmp_path(tmp_path):
    return tmp_path.resolve()


@pytest.fixture
def env(tmp_path, toolchain):
    return Env(tmp_path, toolchain)


@pytest.fixture
def autotools(env):
    env.add("perl")
    env.add("gm4")
    env.add("autoconf", deps=["gm4", "perl"])
    env.add("automake", deps=["perl", "gm4", "autoconf"])
    return env


def test_install_dependencies_first(autotools):
    builder = autotools.builder()
    assert builder(["automake"]) == ["perl", "gm4", "autoconf", "automake"]
    assert autotools.ledger.installed(autotools.prefix) == [
        "autoconf",
        "automake",
        "gm4",
        "perl",
    ]
    assert autotools.fetched == [
        "perl-1.0.tar.gz",
        "gm4-1.0.tar.gz",
        "autoconf-1.0.tar.gz",
        "automake-1.0.tar.gz",
    ]
    entry = autotools.ledger.read(autotools.prefix, "automake")
    assert entry["dependencies"] == ["perl", "gm4", "autoconf"]
    assert entry["checksum"] == autotools.registry.lookup("automake").checksum


def test_install_caches_archives(autotools):
    autotools.builder()(["gm4"])
    recipe = autotools.registry.lookup("gm4")
    assert (autotools.download / recipe.archive_name).is_file()


def test_install_already_installed(autotools):
    autotools.ledger.record(autotools.prefix, "perl", {})
    builder = autotools.builder()
    assert builder(["perl"]) == []
    assert autotools.strategy.calls == []
    assert autotools.runner.calls == []


def test_install_skips_installed_dependencies(autotools):
    autotools.ledger.record(autotools.prefix, "perl", {})
    autotools.ledger.record(autotools.prefix, "gm4", {})
    assert autotools.builder()(["autoconf"]) == ["autoconf"]
    assert autotools.fetched == ["autoconf-1.0.tar.gz"]


def test_install_without_retrieval_tool(autotools, tmp_path):
    autotools.strategy._available = False
    session = tmp_path / "session"
    builder = autotools.builder(session=session)
    with pytest.raises(ToolingMissingError):
        builder(["perl"])
    assert not session.exists()


def test_install_without_retrieval_tool_no_tempdir(autotools):
    autotools.strategy._available = False
    builder = autotools.builder()
    with patch("tempfile.mkdtemp") as mkdtemp:
        with pytest.raises(ToolingMissingError):
            builder(["perl"])
    mkdtemp.assert_not_called()


def test_install_missing_build_step(env):
    env.add("perl")
    env.registry.recipes["foo"] = Recipe(
        "foo",
        version="1.0",
        url="https://example.com/foo-{version}.tar.gz",
        checksum="f" * 64,
        dependencies=["perl"],
    )
    with pytest.raises(MissingInstallStepError):
        env.builder()(["foo"])
    assert env.ledger.has(env.prefix, "perl")
    assert not env.ledger.has(env.prefix, "foo")


def test_install_unknown_package(autotools):
    with pytest.raises(UnknownPackageError):
        autotools.builder()(["bison"])
    assert autotools.strategy.calls == []


def test_install_checksum_mismatch(env):
    env.add("perl", checksum="0" * 64)
    with pytest.raises(ChecksumMismatchError):
        env.builder()(["perl"])
    assert not env.ledger.has(env.prefix, "perl")
    assert not env.download.exists() or list(env.download.iterdir()) == []


def test_install_fails_fast(env):
    env.add("a")
    env.add("b", deps=["a"])
    env.runner.fail_on = "install"
    with pytest.raises(BuildStepError):
        env.builder()(["b"])
    assert env.ledger.installed(env.prefix) == []
    assert env.fetched == ["a-1.0.tar.gz"]
    assert env.runner.commands[-1] == ["/usr/bin/make", "install"]


def test_install_steps(env, tmp_path):
    env.add(
        "gm4",
        patch=(Patch("--- a/x\n+++ b/x\n"),),
        post_install=(Symlink("m4", "bin/gm4"),),
    )
    session = tmp_path / "session"
    env.builder(session=session)(["gm4"])
    src = session / "gm4" / "src"
    assert (src / "configure").is_file()
    assert (src / "README").is_file()
    assert env.runner.commands == [
        ["patch", "-N", "-p1", "-i", str(session / "gm4" / "fix.patch")],
        ["./configure", f"--prefix={env.prefix}"],
        ["/usr/bin/make", "-j4"],
        ["/usr/bin/make", "install"],
    ]
    assert all(_[2] == src for _ in env.runner.calls)
    assert os.readlink(env.prefix / "bin" / "gm4") == "m4"


def test_install_environment(env, tmp_path):
    env.add("perl")
    session = tmp_path / "session"
    env.builder(session=session)(["perl"])
    build_env = env.runner.calls[0][1]
    private = session / "perl" / "root"
    assert build_env["PATH"].split(os.pathsep)[:2] == [
        str(private / "bin"),
        str(env.prefix / "bin"),
    ]
    assert build_env["GROUNDWORK_PREFIX"] == str(env.prefix)
    assert private.is_dir()


def test_session_removed(autotools, tmp_path):
    owned = tmp_path / "owned"
    with patch("tempfile.mkdtemp", return_value=str(owned)):
        builder = autotools.builder()
        builder(["perl"])
    assert not owned.exists()
    assert builder.dirs.session is None


def test_session_removed_on_failure(env, tmp_path):
    env.add("perl")
    env.runner.fail_on = "install"
    owned = tmp_path / "owned"
    with patch("tempfile.mkdtemp", return_value=str(owned)):
        with pytest.raises(BuildStepError):
            env.builder()(["perl"])
    assert not owned.exists()


def test_session_kept(autotools, tmp_path):
    owned = tmp_path / "owned"
    with patch("tempfile.mkdtemp", return_value=str(owned)):
        autotools.builder(keep_session=True)(["gm4"])
    assert (owned / "toolchain.json").is_file()
    assert (owned / "logs" / "build.log").is_file()
    assert (owned / "logs" / "gm4.log").is_file()
    assert ToolchainContext.load(owned / "toolchain.json") == autotools.toolchain


def test_user_session_kept(autotools, tmp_path):
    session = tmp_path / "session"
    autotools.builder(session=session)(["gm4"])
    assert (session / "gm4" / "src").is_dir()


def test_download_only(autotools):
    with patch("tempfile.mkdtemp") as mkdtemp:
        assert autotools.builder()(["automake"], download_only=True) == []
    mkdtemp.assert_not_called()
    assert len(autotools.fetched) == 4
    assert len(list(autotools.download.iterdir())) == 4
    assert autotools.runner.calls == []
    assert autotools.ledger.installed(autotools.prefix) == []


def test_install_method(autotools, tmp_path):
    builder = autotools.builder(session=tmp_path / "session")
    assert builder.install("autoconf") is True
    assert builder.install("autoconf") is False
    assert builder.installed == ["perl", "gm4", "autoconf"]


def test_install_method_without_retrieval_tool(autotools, tmp_path):
    autotools.strategy._available = False
    session = tmp_path / "session"
    builder = autotools.builder(session=session)
    with pytest.raises(ToolingMissingError):
        builder.install("perl")
    assert not session.exists()
    assert autotools.strategy.calls == []


def test_install_method_removes_its_session(autotools, tmp_path):
    owned = tmp_path / "owned"
    with patch("tempfile.mkdtemp", return_value=str(owned)):
        builder = autotools.builder()
        assert builder.install("gm4") is True
    assert not owned.exists()
    assert builder.dirs.session is None


def test_install_method_removes_its_session_on_failure(env, tmp_path):
    env.add("perl")
    env.runner.fail_on = "install"
    owned = tmp_path / "owned"
    with patch("tempfile.mkdtemp", return_value=str(owned)):
        with pytest.raises(BuildStepError):
            env.builder().install("perl")
    assert not owned.exists()


def test_install_method_writes_package_log(autotools, tmp_path):
    session = tmp_path / "session"
    autotools.builder(session=session).install("gm4")
    text = (session / "logs" / "gm4.log").read_text()
    assert "Installing gm4 1.0" in text
    assert "Building gm4" in text


def test_dirs(autotools, tmp_path):
    dirs = WorkDirs(prefix=tmp_path / "p", session=tmp_path / "s")
    pkg = Dirs(dirs, "gm4")
    assert pkg.sources == dirs.session / "gm4" / "src"
    assert pkg.private == dirs.session / "gm4" / "root"
    assert pkg.logs == dirs.session / "logs"
    assert set(pkg.to_dict()) == {
        "prefix",
        "downloads",
        "logs",
        "workspace",
        "sources",
        "private",
    }


def test_dirs_need_session(tmp_path):
    with pytest.raises(GroundworkException):
        Dirs(WorkDirs(prefix=tmp_path), "gm4")
