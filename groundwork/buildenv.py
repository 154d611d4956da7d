# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
"""
Build environment overlays and the ``groundwork exec`` command.
"""
from __future__ import annotations

import argparse
import logging
import os
import pathlib
import subprocess
import sys
from typing import Mapping, Optional

from .common import ArgumentError, PathLike, work_dir
from .toolchain import ToolchainContext, discover

log = logging.getLogger(__name__)

# Host variables passed through to build steps unchanged.
PASSTHROUGH = ("HOME", "TERM", "TMPDIR", "USER", "LOGNAME")


def _join(*parts: object) -> str:
    return os.pathsep.join(str(_) for _ in parts)


def buildenv(
    toolchain: ToolchainContext,
    prefix: PathLike,
    private: Optional[PathLike] = None,
    base: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """
    Build environment variable mapping for one package.

    Package private directories come first, then the install root. Only these
    locations are searched for libraries, headers, macros and pkg-config
    files; the host's own defaults are left out.

    :param toolchain: The toolchain context of the run
    :type toolchain: ``groundwork.toolchain.ToolchainContext``
    :param prefix: The install root
    :type prefix: str
    :param private: The package private prefix inside the workspace
    :type private: str
    :param base: The host environment, defaults to ``os.environ``
    :type base: dict

    :return: A new environment mapping
    :rtype: dict
    """
    if base is None:
        base = os.environ
    prefix = pathlib.Path(prefix)
    roots = [prefix]
    if private is not None:
        roots.insert(0, pathlib.Path(private))

    libdirs = [_ / "lib" for _ in roots]
    incdirs = [_ / "include" for _ in roots]

    bindirs = [pathlib.Path(private) / "bin"] if private is not None else []
    bindirs += [prefix / "bin", prefix / "sbin"]
    host_path = base.get("PATH", os.defpath)

    includes = [f"-I{_}" for _ in incdirs]
    libs = [f"-L{_}" for _ in libdirs]

    env: dict[str, str] = {}
    env["PATH"] = _join(*bindirs, host_path)
    env["CC"] = toolchain.cc
    if toolchain.cxx:
        env["CXX"] = toolchain.cxx
    if toolchain.ar:
        env["AR"] = toolchain.ar
    if toolchain.ld:
        env["LD"] = toolchain.ld
    env["MAKE"] = toolchain.make
    env["CFLAGS"] = " ".join([*toolchain.cflags, *includes])
    env["CXXFLAGS"] = " ".join([*toolchain.cxxflags, *includes])
    env["CPPFLAGS"] = " ".join(includes)
    env["LDFLAGS"] = " ".join(
        [*toolchain.ldflags, *libs, f"-Wl,-rpath,{prefix / 'lib'}"]
    )
    env["LIBRARY_PATH"] = _join(*libdirs)
    if toolchain.os == "darwin":
        env["DYLD_LIBRARY_PATH"] = _join(*libdirs)
    else:
        env["LD_LIBRARY_PATH"] = _join(*libdirs)
    env["CPATH"] = _join(*incdirs)
    env["ACLOCAL_PATH"] = _join(*[_ / "share" / "aclocal" for _ in roots])
    env["M4PATH"] = env["ACLOCAL_PATH"]
    env["PERL5LIB"] = _join(*[_ / "lib" / "perl5" for _ in roots])
    pkgconfig = []
    for root in roots:
        pkgconfig += [root / "lib" / "pkgconfig", root / "share" / "pkgconfig"]
    env["PKG_CONFIG_PATH"] = _join(*pkgconfig)
    # Replaces pkg-config's compiled in search path.
    env["PKG_CONFIG_LIBDIR"] = env["PKG_CONFIG_PATH"]
    env["MAKEFLAGS"] = f"-j{toolchain.jobs}"
    env["GROUNDWORK_PREFIX"] = str(prefix)
    env["GROUNDWORK_HOST"] = toolchain.triplet
    if toolchain.cacert:
        env["SSL_CERT_FILE"] = toolchain.cacert
    env["LANG"] = "C"
    env["LC_ALL"] = "C"
    for key in PASSTHROUGH:
        if key in base:
            env[key] = base[key]
    return env


def setup_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """
    Setup the subparser for the ``groundwork exec`` command.

    :param subparsers: The subparsers object returned from ``add_subparsers``
    :type subparsers: argparse._SubParsersAction
    """
    subparser = subparsers.add_parser(
        "exec",
        description="Run a command with the install root's build environment",
    )
    subparser.set_defaults(func=main)
    subparser.add_argument(
        "--prefix",
        default=work_dir("root"),
        type=pathlib.Path,
        help="The install root [default: %(default)s]",
    )
    subparser.add_argument("cmd", nargs=argparse.REMAINDER, help="Command to run")


def main(args: argparse.Namespace) -> None:
    """
    The entrypoint into the ``groundwork exec`` command.

    :param args: The args passed to the command
    :type args: argparse.Namespace
    """
    cmd = list(args.cmd)
    if cmd and cmd[0] == "--":
        cmd = cmd[1:]
    if not cmd:
        raise ArgumentError("exec requires a command to run")
    env = buildenv(discover(), args.prefix.resolve())
    log.debug("Running %s under %s", " ".join(cmd), args.prefix)
    try:
        proc = subprocess.run(cmd, env=env)
    except FileNotFoundError:
        raise ArgumentError(f"Command not found: {cmd[0]}")
    sys.exit(proc.returncode)
