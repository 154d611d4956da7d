# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
"""
Common classes and values used around groundwork.
"""
from __future__ import annotations

import collections
import logging
import os
import pathlib
import platform
import selectors
import subprocess
import sys
import tarfile
from typing import IO, Any, Literal, Optional, Union, cast

# groundwork package version
__version__ = "0.3.1"

log = logging.getLogger(__name__)

LINUX = "linux"
DARWIN = "darwin"

LEDGER_DIR = ".ledger"

# Number of trailing output lines kept for a failed command.
OUTPUT_TAIL = 25

ARCHIVE_EXTENSIONS = (
    "tar.gz",
    "tar.xz",
    "tar.bz2",
    "tar.lz",
    "tar.zst",
    "tgz",
    "tar",
)

DEFAULT_DATA_DIR = pathlib.Path.home() / ".local" / "groundwork"

DATA_DIR = pathlib.Path(os.environ.get("GROUNDWORK_DATA", DEFAULT_DATA_DIR)).resolve()

PathLike = Union[str, os.PathLike[str]]


class GroundworkException(Exception):
    """
    Base class for exceptions generated from groundwork.
    """


class ArgumentError(GroundworkException):
    """
    Malformed command line input.
    """


class ToolingMissingError(GroundworkException):
    """
    A required host tool (compiler, make, retrieval client) is missing.
    """


class NoRetrievalToolError(ToolingMissingError):
    """
    None of the retrieval strategies can run on this host.
    """


class FetchError(GroundworkException):
    """
    An artifact could not be retrieved from any of its sources.
    """


class ChecksumMismatchError(FetchError):
    """
    Retrieved content does not match the expected checksum.
    """


class RecipeError(GroundworkException):
    """
    Recipe data is missing or malformed.
    """


class UnknownPackageError(RecipeError):
    """
    No recipe is registered under the requested name.
    """


class MissingInstallStepError(RecipeError):
    """
    A recipe does not define its build step.
    """


class CyclicDependencyError(RecipeError):
    """
    The recipe dependency graph contains a cycle.
    """

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = list(cycle)
        super().__init__("Dependency cycle: {}".format(" -> ".join(self.cycle)))


class DuplicateChecksumError(RecipeError):
    """
    Two recipes share a checksum and therefore a download cache entry.
    """


class BuildStepError(GroundworkException):
    """
    An external command run by a build step exited non-zero.
    """

    def __init__(
        self,
        cmd: list[str],
        returncode: Optional[int] = None,
        output: Optional[list[str]] = None,
    ) -> None:
        self.cmd = [str(_) for _ in cmd]
        self.returncode = returncode
        self.output = list(output or [])
        msg = "Build cmd '{}' failed".format(" ".join(self.cmd))
        if returncode is not None:
            msg += f" with exit code {returncode}"
        super().__init__(msg)


def build_arch() -> str:
    """
    Return the current machine.
    """
    machine = platform.machine()
    return machine.lower()


def get_triplet(machine: Optional[str] = None, plat: Optional[str] = None) -> str:
    """
    Get the target triplet for the specified machine and platform.

    If any of the args are None, it will try to deduce what they should be.

    :param machine: The machine for the triplet
    :type machine: str
    :param plat: The platform for the triplet
    :type plat: str

    :raises GroundworkException: If the platform is unknown

    :return: The target triplet
    :rtype: str
    """
    if not plat:
        plat = sys.platform
    if not machine:
        machine = build_arch()
    if plat == DARWIN:
        return f"{machine}-apple-darwin"
    elif plat == LINUX:
        return f"{machine}-linux-gnu"
    elif plat.startswith("freebsd"):
        return f"{machine}-unknown-freebsd"
    else:
        raise GroundworkException(f"Unknown platform {plat}")


def work_dir(name: str, root: Optional[PathLike] = None) -> pathlib.Path:
    """
    Get the absolute path to the groundwork working directory of the given name.

    :param name: The name of the directory
    :type name: str
    :param root: The root directory that this working directory will be relative to
    :type root: str

    :return: An absolute path to the requested working directory
    :rtype: ``pathlib.Path``
    """
    if root is None:
        base = DATA_DIR
    else:
        base = pathlib.Path(root).resolve()
    return base / name


class WorkDirs:
    """
    Simple class used to hold references to the directories a run works with.

    :param prefix: The install root packages are installed into
    :type prefix: str
    :param download: The download cache, shared between runs
    :type download: str
    :param session: The per-run workspace, None to create a temporary one
    :type session: str
    """

    def __init__(
        self,
        prefix: Optional[PathLike] = None,
        download: Optional[PathLike] = None,
        session: Optional[PathLike] = None,
    ) -> None:
        self.data: pathlib.Path = DATA_DIR
        self.prefix: pathlib.Path = (
            pathlib.Path(prefix).resolve() if prefix else work_dir("root")
        )
        self.download: pathlib.Path = (
            pathlib.Path(download).resolve() if download else work_dir("download")
        )
        self.session: Optional[pathlib.Path] = (
            pathlib.Path(session).resolve() if session else None
        )

    @property
    def ledger(self) -> pathlib.Path:
        """Directory holding the install ledger entries."""
        return self.prefix / LEDGER_DIR

    @property
    def logs(self) -> pathlib.Path:
        """Log directory of the current session."""
        if self.session is None:
            raise GroundworkException("No session directory has been created")
        return self.session / "logs"

    def to_dict(self) -> dict[str, Optional[pathlib.Path]]:
        """
        Get a dictionary representation of the directories in this collection.
        """
        return {
            "data": self.data,
            "prefix": self.prefix,
            "download": self.download,
            "session": self.session,
        }


def archive_extension(url: str) -> str:
    """
    Infer the archive type of a url from its file name.

    :param url: The url or file name to inspect
    :type url: str

    :raises FetchError: If the file name has no known archive suffix

    :return: The extension without the leading dot, e.g. ``tar.xz``
    :rtype: str
    """
    name = url.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]
    for ext in ARCHIVE_EXTENSIONS:
        if name.endswith("." + ext):
            return ext
    raise FetchError(f"Unable to infer archive type of {url}")


def extract_archive(
    to_dir: PathLike,
    archive: PathLike,
    strip_components: int = 1,
    tar: Optional[str] = None,
) -> None:
    """
    Extract an archive to a specific location.

    Leading path components are stripped from every member and no ownership
    information from the archive is restored.

    :param to_dir: The directory to extract to
    :type to_dir: str
    :param archive: The archive to extract
    :type archive: str
    :param strip_components: Number of leading path components to drop
    :type strip_components: int
    :param tar: An external tar program to use instead of ``tarfile``
    :type tar: str
    """
    archive_path = pathlib.Path(archive)
    to_path = pathlib.Path(to_dir)
    to_path.mkdir(parents=True, exist_ok=True)
    if tar:
        runcmd(
            [
                tar,
                "-x",
                "-f",
                str(archive_path),
                f"--strip-components={strip_components}",
                "--no-same-owner",
                "-C",
                str(to_path),
            ]
        )
        return
    archive_str = str(archive_path)
    TarReadMode = Literal["r:gz", "r:xz", "r:bz2", "r"]
    read_type: TarReadMode = "r"
    if archive_str.endswith((".tgz", ".tar.gz")):
        log.debug("Found tar.gz archive")
        read_type = "r:gz"
    elif archive_str.endswith(".xz"):
        log.debug("Found xz archive")
        read_type = "r:xz"
    elif archive_str.endswith(".bz2"):
        log.debug("Found bz2 archive")
        read_type = "r:bz2"
    elif archive_str.endswith((".lz", ".zst")):
        raise GroundworkException(
            f"Python's tarfile can not read {archive_path.name}, set TAR to extract it"
        )
    with tarfile.open(archive_str, mode=read_type) as tarball:
        members = []
        for member in tarball.getmembers():
            name = _strip_path(member.name, strip_components)
            if not name:
                continue
            member.name = name
            if member.islnk():
                member.linkname = _strip_path(member.linkname, strip_components)
            members.append(member)
        tarball.extractall(str(to_path), members=members, filter="data")


def _strip_path(name: str, count: int) -> str:
    parts = [_ for _ in name.split("/") if _ and _ != "."]
    return "/".join(parts[count:])


def get_download_location(url: str, dest: PathLike) -> str:
    """
    Get the full path to where the url will be downloaded to.

    :param url: The url to donwload
    :type url: str
    :param dest: Where to download the url to
    :type dest: str

    :return: The path to where the url will be downloaded to
    :rtype: str
    """
    return os.path.join(os.fspath(dest), os.path.basename(url.split("?", 1)[0]))


def runcmd(*args: Any, **kwargs: Any) -> subprocess.Popen[str]:
    """
    Run a command.

    Run the provided command, raising an exception when the command finishes
    with a non zero exit code. Arguments are passed through to
    ``subprocess.Popen``. Output is logged line by line at debug level.

    :return: The process
    :rtype: ``subprocess.Popen``

    :raises BuildStepError: If the command finishes with a non zero exit code
    """
    if not args:
        raise GroundworkException("No command provided to runcmd")
    cmd = [str(_) for _ in args[0]]
    log.debug("Running command: %s", " ".join(cmd))
    kwargs["stdout"] = subprocess.PIPE
    kwargs["stderr"] = subprocess.PIPE
    kwargs.setdefault("stdin", subprocess.DEVNULL)
    if "universal_newlines" not in kwargs:
        kwargs["universal_newlines"] = True
    tail: collections.deque[str] = collections.deque(maxlen=OUTPUT_TAIL)
    try:
        p = subprocess.Popen(cmd, *args[1:], **kwargs)
    except OSError as exc:
        log.error("Unable to run %s: %s", cmd[0], exc)
        raise BuildStepError(cmd, None, [str(exc)]) from exc
    stdout_stream = p.stdout
    stderr_stream = p.stderr
    if stdout_stream is None or stderr_stream is None:
        p.wait()
        raise GroundworkException("Process pipes are unavailable")
    # Read both stdout and stderr simultaneously
    sel = selectors.DefaultSelector()
    sel.register(stdout_stream, selectors.EVENT_READ)
    sel.register(stderr_stream, selectors.EVENT_READ)
    open_streams = 2
    while open_streams:
        for key, _ in sel.select():
            stream = cast(IO[str], key.fileobj)
            line = stream.readline()
            if not line:
                sel.unregister(stream)
                open_streams -= 1
                continue
            line = line.rstrip("\n")
            tail.append(line)
            if stream is stdout_stream:
                log.debug(line)
            else:
                log.debug("stderr: %s", line)
    sel.close()
    p.wait()
    if p.returncode != 0:
        raise BuildStepError(cmd, p.returncode, list(tail))
    return p
