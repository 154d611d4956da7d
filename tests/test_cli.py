# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
import argparse
import pathlib
from unittest.mock import patch

import pytest

from groundwork.__main__ import main, setup_cli
from groundwork.build import catalog
from groundwork.common import __version__


def test_setup_cli():
    parser = setup_cli()
    assert isinstance(parser, argparse.ArgumentParser)
    args = parser.parse_args(["install", "automake"])
    assert args.names == ["automake"]
    assert args.profile == "release"
    assert args.log_level == "info"
    assert args.download_only is False


def test_version(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--version"])
    assert exc.value.code == 0
    assert capsys.readouterr().out.strip() == __version__


def test_no_subcommand(capsys):
    with pytest.raises(SystemExit) as exc:
        main([])
    assert exc.value.code == 1
    assert "No subcommand given" in capsys.readouterr().err


def test_ls_available(capsys):
    main(["ls-available"])
    out = capsys.readouterr().out.split()
    assert out == catalog.registry.names()
    assert "automake" in out


def test_ls_available_verbose(capsys):
    main(["ls-available", "-v"])
    out = capsys.readouterr().out
    assert "automake 1.16.5" in out
    assert "depends: perl, gm4, autoconf" in out
    assert "url: https://ftp.gnu.org/gnu/automake/automake-1.16.5.tar.xz" in out


def test_install(tmp_path, toolchain):
    with patch("groundwork.build.discover", return_value=toolchain) as discover:
        with patch("groundwork.build.Builder") as builder_cls:
            with patch("groundwork.build.signal.signal"):
                main(
                    [
                        "install",
                        "autoconf",
                        "libtool",
                        f"--prefix={tmp_path / 'root'}",
                        f"--download-dir={tmp_path / 'dl'}",
                        "--jobs=2",
                        "--profile=debug",
                        "--no-strip",
                        "--lto",
                        "--keep-session",
                        "--log-level=debug",
                    ]
                )
    discover.assert_called_once_with(profile="debug", jobs=2, strip=False, lto=True)
    registry, ctx, dirs = builder_cls.call_args.args
    assert registry is catalog.registry
    assert ctx is toolchain
    assert dirs.prefix == pathlib.Path(tmp_path / "root").resolve()
    assert dirs.download == pathlib.Path(tmp_path / "dl").resolve()
    assert dirs.session is None
    assert builder_cls.call_args.kwargs == {"keep_session": True}
    builder_cls.return_value.assert_called_once_with(
        ["autoconf", "libtool"], download_only=False, log_level="debug"
    )


def test_install_unknown_package(tmp_path, toolchain, capsys):
    with patch("groundwork.build.discover", return_value=toolchain):
        with patch("groundwork.build.signal.signal"):
            with pytest.raises(SystemExit) as exc:
                main(["install", "bison", f"--prefix={tmp_path}"])
    assert exc.value.code == 1
    assert "Unknown package bison" in capsys.readouterr().err


def test_install_bad_jobs(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["install", "perl", "--jobs=0"])
    assert exc.value.code == 2


def test_install_requires_name():
    with pytest.raises(SystemExit) as exc:
        main(["install"])
    assert exc.value.code == 2
