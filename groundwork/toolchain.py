# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
"""
Discovery of the host toolchain used to compile packages.
"""
from __future__ import annotations

import json
import logging
import os
import pathlib
import shutil
import sys
from typing import Any, Mapping, Optional, Sequence

from .common import (
    ArgumentError,
    PathLike,
    ToolingMissingError,
    build_arch,
    get_triplet,
)

log = logging.getLogger(__name__)

PROFILES = ("release", "debug")

PROFILE_FLAGS = {
    "release": ["-O2"],
    "debug": ["-O0", "-g"],
}

CC_CANDIDATES = ("cc", "gcc", "clang")
CXX_CANDIDATES = ("c++", "g++", "clang++")
AR_CANDIDATES = ("ar", "gcc-ar", "llvm-ar")
LD_CANDIDATES = ("ld", "ld.lld")
MAKE_CANDIDATES = ("gmake", "make")


class ToolchainContext:
    """
    The resolved compiler, flags and parallelism settings of a run.

    Instances are not modified after creation; use :meth:`replace` to derive
    a new context.
    """

    __slots__ = (
        "cc",
        "cxx",
        "ar",
        "ld",
        "make",
        "tar",
        "triplet",
        "os",
        "arch",
        "cflags",
        "cxxflags",
        "ldflags",
        "jobs",
        "profile",
        "strip",
        "lto",
        "cacert",
        "url_hook",
    )

    def __init__(
        self,
        cc: str,
        make: str,
        cxx: Optional[str] = None,
        ar: Optional[str] = None,
        ld: Optional[str] = None,
        tar: Optional[str] = None,
        triplet: Optional[str] = None,
        os: str = sys.platform,
        arch: Optional[str] = None,
        cflags: Sequence[str] = (),
        cxxflags: Sequence[str] = (),
        ldflags: Sequence[str] = (),
        jobs: int = 1,
        profile: str = "release",
        strip: bool = True,
        lto: bool = False,
        cacert: Optional[str] = None,
        url_hook: Optional[str] = None,
    ) -> None:
        values = {
            "cc": cc,
            "cxx": cxx,
            "ar": ar,
            "ld": ld,
            "make": make,
            "tar": tar,
            "triplet": triplet or get_triplet(arch, os),
            "os": os,
            "arch": arch or build_arch(),
            "cflags": tuple(cflags),
            "cxxflags": tuple(cxxflags),
            "ldflags": tuple(ldflags),
            "jobs": jobs,
            "profile": profile,
            "strip": strip,
            "lto": lto,
            "cacert": cacert,
            "url_hook": url_hook,
        }
        for key, value in values.items():
            object.__setattr__(self, key, value)

    def __setattr__(self, key: str, value: Any) -> None:
        raise AttributeError(f"ToolchainContext is immutable, can not set {key}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ToolchainContext):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"<ToolchainContext {self.triplet} cc={self.cc} jobs={self.jobs}>"

    def replace(self, **changes: Any) -> "ToolchainContext":
        """Return a copy of this context with the given fields changed."""
        values = self.to_dict()
        values.update(changes)
        return ToolchainContext(**values)

    def to_dict(self) -> dict[str, Any]:
        """
        The toolchain description written to the session directory.
        """
        data: dict[str, Any] = {}
        for key in self.__slots__:
            value = getattr(self, key)
            if isinstance(value, tuple):
                value = list(value)
            data[key] = value
        return data

    def write(self, path: PathLike) -> pathlib.Path:
        """
        Write the toolchain description file.

        :param path: The file to write
        :type path: str
        """
        path = pathlib.Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as fp:
            json.dump(self.to_dict(), fp, indent=2, sort_keys=True)
            fp.write("\n")
        return path

    @classmethod
    def load(cls, path: PathLike) -> "ToolchainContext":
        """Read a toolchain description file written by :meth:`write`."""
        with open(path, encoding="utf-8") as fp:
            return cls(**json.load(fp))


def find_program(
    candidates: Sequence[str],
    override: Optional[str] = None,
    path: Optional[str] = None,
) -> Optional[str]:
    """
    Locate the first available program.

    An override is used verbatim when it names an absolute path, otherwise it
    is searched for on ``path`` like the candidates.
    """
    if override:
        if os.path.isabs(override):
            return override if os.access(override, os.X_OK) else None
        return shutil.which(override, path=path)
    for name in candidates:
        found = shutil.which(name, path=path)
        if found:
            return found
    return None


def discover(
    profile: str = "release",
    jobs: Optional[int] = None,
    strip: bool = True,
    lto: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> ToolchainContext:
    """
    Resolve the toolchain context for this run.

    :param profile: ``release`` or ``debug``
    :type profile: str
    :param jobs: Number of parallel make jobs, defaults to the cpu count
    :type jobs: int
    :param strip: Strip installed binaries in release builds
    :type strip: bool
    :param lto: Enable link time optimization
    :type lto: bool
    :param environ: Environment to read overrides from, defaults to ``os.environ``

    :raises ArgumentError: On an unknown profile or a bad job count
    :raises ToolingMissingError: When no C compiler or make is found

    :return: The resolved context
    :rtype: ``ToolchainContext``
    """
    if environ is None:
        environ = os.environ
    if profile not in PROFILES:
        raise ArgumentError(f"Unknown profile {profile}")
    if jobs is None:
        jobs = os.cpu_count() or 1
    if jobs < 1:
        raise ArgumentError(f"Job count must be at least 1, got {jobs}")

    search = environ.get("PATH")
    cc = find_program(CC_CANDIDATES, environ.get("CC"), search)
    if cc is None:
        raise ToolingMissingError(
            "No C compiler found, install one of {} or set CC".format(
                ", ".join(CC_CANDIDATES)
            )
        )
    make = find_program(MAKE_CANDIDATES, environ.get("MAKE"), search)
    if make is None:
        raise ToolingMissingError("No make found, install make or set MAKE")
    cxx = find_program(CXX_CANDIDATES, environ.get("CXX"), search)
    ar = find_program(AR_CANDIDATES, environ.get("AR"), search)
    ld = find_program(LD_CANDIDATES, environ.get("LD"), search)
    tar = None
    if environ.get("TAR"):
        tar = find_program((), environ["TAR"], search)
        if tar is None:
            raise ToolingMissingError(f"Archive tool {environ['TAR']} not found")

    cflags = list(PROFILE_FLAGS[profile])
    ldflags: list[str] = []
    if lto:
        cflags.append("-flto")
        ldflags.append("-flto")
    if strip and profile == "release":
        ldflags.append("-s")
    cxxflags = list(cflags)
    cflags.extend(environ.get("CFLAGS", "").split())
    cxxflags.extend(environ.get("CXXFLAGS", "").split())
    ldflags.extend(environ.get("LDFLAGS", "").split())

    context = ToolchainContext(
        cc=cc,
        cxx=cxx,
        ar=ar,
        ld=ld,
        make=make,
        tar=tar,
        cflags=cflags,
        cxxflags=cxxflags,
        ldflags=ldflags,
        jobs=jobs,
        profile=profile,
        strip=strip,
        lto=lto,
        cacert=environ.get("SSL_CERT_FILE") or None,
        url_hook=environ.get("GROUNDWORK_URL_HOOK") or None,
    )
    log.debug("Resolved toolchain %r", context)
    return context
