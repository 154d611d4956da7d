# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
"""
Retrieval of source archives with mirror fallback and checksum verification.
"""
from __future__ import annotations

import hashlib
import http.client
import logging
import os
import pathlib
import shutil
import subprocess
import sys
import tempfile
import time
import urllib.error
import urllib.request
from typing import BinaryIO, Optional, Sequence, Union

try:
    import ssl
except ImportError:  # interpreter built without openssl
    ssl = None  # type: ignore[assignment]

from groundwork.common import (
    ChecksumMismatchError,
    FetchError,
    NoRetrievalToolError,
    PathLike,
    __version__,
    get_download_location,
)

log = logging.getLogger(__name__)

# Destination meaning "write to standard output".
STDOUT = "-"

DEFAULT_MIRROR = "https://ftpmirror.gnu.org/{filename}"

REQUEST_HEADERS = {"User-Agent": f"groundwork {__version__}"}

CHUNK_SIZE = 1024 * 64


def file_checksum(file: PathLike, algorithm: str = "sha256") -> str:
    """
    Compute the hex digest of a file.

    :param file: The path to the file to hash
    :type file: str
    :param algorithm: A ``hashlib`` algorithm name
    :type algorithm: str
    """
    hsh = hashlib.new(algorithm)
    with open(file, "rb") as fp:
        while True:
            chunk = fp.read(CHUNK_SIZE)
            if not chunk:
                break
            hsh.update(chunk)
    return hsh.hexdigest()


def verify_checksum(file: PathLike, checksum: Optional[str]) -> bool:
    """
    Verify the checksum of a file.

    Supports both SHA-1 (40 hex chars) and SHA-256 (64 hex chars) checksums.
    The hash algorithm is auto-detected based on checksum length.

    :param file: The path to the file to check.
    :type file: str
    :param checksum: The checksum to verify against (SHA-1 or SHA-256)
    :type checksum: str

    :raises ChecksumMismatchError: If the checksum verification failed

    :return: True if it succeeded, or False if the checksum was None
    :rtype: bool
    """
    if checksum is None:
        log.error("Can't verify checksum because none was given")
        return False

    checksum = checksum.lower()
    if len(checksum) == 64:
        hash_name = "sha256"
    elif len(checksum) == 40:
        hash_name = "sha1"
    else:
        raise ChecksumMismatchError(
            f"Invalid checksum length {len(checksum)}. Expected 40 (SHA-1) or 64 (SHA-256)"
        )

    found = file_checksum(file, hash_name)
    if checksum != found:
        raise ChecksumMismatchError(
            f"{hash_name} checksum verification failed for {file}. "
            f"expected={checksum} found={found}"
        )
    return True


def default_mirror(url: str, template: Optional[str] = None) -> str:
    """
    Derive a fallback url from the file name of a primary url.

    :param url: The primary url
    :type url: str
    :param template: The mirror template, ``{filename}`` is substituted
    :type template: str
    """
    if template is None:
        template = os.environ.get("GROUNDWORK_MIRROR") or DEFAULT_MIRROR
    filename = os.path.basename(url.split("?", 1)[0])
    return template.format(filename=filename)


class RetrievalStrategy:
    """
    Base class of the ways a url can be retrieved.

    A strategy writes the content of a url either to a file path or, when the
    target is :data:`STDOUT`, to standard output. Retries and timeouts are
    the strategy's own business.
    """

    name = "base"

    def __init__(self, cacert: Optional[str] = None) -> None:
        self.cacert = cacert

    def available(self) -> bool:
        """True when this strategy can run on the host."""
        raise NotImplementedError

    def retrieve(self, url: str, target: str) -> None:
        """
        Retrieve ``url`` into ``target``.

        :raises FetchError: When the url could not be retrieved
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


class _CommandStrategy(RetrievalStrategy):
    """A strategy wrapping an external download program."""

    program = ""

    def executable(self) -> Optional[str]:
        return shutil.which(self.program)

    def available(self) -> bool:
        return self.executable() is not None

    def command(self, url: str, target: str) -> list[str]:
        raise NotImplementedError

    def retrieve(self, url: str, target: str) -> None:
        cmd = self.command(url, target)
        log.debug("Running %s", " ".join(cmd))
        stdout = sys.stdout.buffer if target == STDOUT else subprocess.DEVNULL
        try:
            sys.stdout.flush()
            proc = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=stdout,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise FetchError(f"Unable to run {cmd[0]}: {exc}") from exc
        if proc.returncode != 0:
            err = proc.stderr.decode(errors="replace").strip()
            raise FetchError(
                f"{self.program} failed fetching {url} (exit {proc.returncode}): {err}"
            )


class CurlStrategy(_CommandStrategy):
    """Retrieve with curl."""

    name = program = "curl"

    def command(self, url: str, target: str) -> list[str]:
        cmd = [
            self.executable() or self.program,
            "--fail",
            "--location",
            "--silent",
            "--show-error",
            "--retry",
            "3",
            "--connect-timeout",
            "30",
            "--user-agent",
            REQUEST_HEADERS["User-Agent"],
        ]
        if self.cacert:
            cmd += ["--cacert", self.cacert]
        cmd += ["--output", target, url]
        return cmd


class WgetStrategy(_CommandStrategy):
    """Retrieve with wget."""

    name = program = "wget"

    def command(self, url: str, target: str) -> list[str]:
        cmd = [
            self.executable() or self.program,
            "--quiet",
            "--tries=3",
            "--timeout=30",
            f"--user-agent={REQUEST_HEADERS['User-Agent']}",
        ]
        if self.cacert:
            cmd.append(f"--ca-certificate={self.cacert}")
        cmd += ["--output-document", target, url]
        return cmd


class UrllibStrategy(RetrievalStrategy):
    """
    Retrieve with Python's own http client.

    Only usable when the interpreter was built with ssl support.
    """

    name = "urllib"

    def __init__(
        self, cacert: Optional[str] = None, backoff: int = 3, timeout: float = 30
    ) -> None:
        super().__init__(cacert)
        self.backoff = backoff
        self.timeout = timeout

    def available(self) -> bool:
        return ssl is not None

    def _open(self, url: str) -> http.client.HTTPResponse:
        req = urllib.request.Request(url, headers=REQUEST_HEADERS)
        context = ssl.create_default_context(cafile=self.cacert)
        attempts = max(self.backoff, 1)
        for attempt in range(1, attempts + 1):
            try:
                return urllib.request.urlopen(req, timeout=self.timeout, context=context)
            except urllib.error.HTTPError as exc:
                # Not found will not get better by asking again.
                if exc.code < 500 or attempt >= attempts:
                    raise FetchError(f"Error fetching url {url} {exc}") from exc
            except (http.client.HTTPException, OSError) as exc:
                # URLError, timeouts and resets are OSErrors. A bad status
                # line is an HTTPException.
                if attempt >= attempts:
                    raise FetchError(f"Error fetching url {url} {exc}") from exc
            log.debug("Unable to connect %s, attempt %d", url, attempt)
            time.sleep(attempt * 10)
        raise FetchError(f"Unable to open url {url}")

    def _copy(self, url: str, response: http.client.HTTPResponse, fp: BinaryIO) -> None:
        last = time.time()
        total = 0
        try:
            block = response.read(CHUNK_SIZE)
            while block:
                total += len(block)
                if time.time() - last > 10:
                    log.info("%s > %d", url, total)
                    last = time.time()
                fp.write(block)
                block = response.read(CHUNK_SIZE)
        except (OSError, http.client.HTTPException) as exc:
            raise FetchError(f"Error reading {url} {exc}") from exc
        finally:
            response.close()

    def retrieve(self, url: str, target: str) -> None:
        response = self._open(url)
        log.debug("url opened %s", url)
        if target == STDOUT:
            self._copy(url, response, sys.stdout.buffer)
            sys.stdout.buffer.flush()
        else:
            with open(target, "wb") as fp:
                self._copy(url, response, fp)


STRATEGIES = (CurlStrategy, WgetStrategy, UrllibStrategy)


class Fetcher:
    """
    Retrieve artifacts with the first available strategy.

    :param strategies: Strategy instances in order of preference, defaults to
        curl, wget and urllib
    :type strategies: list
    :param url_hook: A command run as ``<hook> <url>`` whose output replaces
        the url
    :type url_hook: str
    :param mirror_template: Template of the default mirror
    :type mirror_template: str
    """

    def __init__(
        self,
        strategies: Optional[Sequence[RetrievalStrategy]] = None,
        url_hook: Optional[str] = None,
        mirror_template: Optional[str] = None,
        cacert: Optional[str] = None,
    ) -> None:
        if strategies is None:
            strategies = [cls(cacert) for cls in STRATEGIES]
        self.strategies = list(strategies)
        self.url_hook = url_hook
        self.mirror_template = mirror_template
        self._strategy: Optional[RetrievalStrategy] = None

    @property
    def strategy(self) -> RetrievalStrategy:
        """
        The strategy used for the whole run, chosen on first use.

        :raises NoRetrievalToolError: When no strategy is available
        """
        if self._strategy is None:
            for strategy in self.strategies:
                if strategy.available():
                    log.debug("Using %s to retrieve files", strategy.name)
                    self._strategy = strategy
                    break
            else:
                raise NoRetrievalToolError(
                    "No retrieval tool found, tried: {}".format(
                        ", ".join(_.name for _ in self.strategies)
                    )
                )
        return self._strategy

    def rewrite_url(self, url: str) -> str:
        """
        Pass a url through the url hook, if one is configured.
        """
        if not self.url_hook:
            return url
        try:
            proc = subprocess.run(
                [self.url_hook, url],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                universal_newlines=True,
            )
        except OSError as exc:
            raise FetchError(f"Unable to run url hook {self.url_hook}: {exc}") from exc
        if proc.returncode != 0:
            raise FetchError(
                f"Url hook {self.url_hook} failed for {url}: {proc.stderr.strip()}"
            )
        rewritten = proc.stdout.strip()
        if rewritten and rewritten != url:
            log.debug("Url hook rewrote %s -> %s", url, rewritten)
            return rewritten
        return url

    @staticmethod
    def validate_checksum(archive: PathLike, checksum: Optional[str]) -> bool:
        """
        True when the archive matches the checksum.

        :param archive: The path to the archive to validate
        :type archive: str
        :param checksum: The checksum to validate against
        :type checksum: str
        :return: True if the sums matched, else False
        :rtype: bool
        """
        try:
            verify_checksum(archive, checksum)
            return True
        except ChecksumMismatchError as exc:
            log.warning("Checksum validation failed on %s: %s", archive, exc)
            return False

    def _destination(self, url: str, destination: PathLike) -> pathlib.Path:
        dest = pathlib.Path(destination)
        if dest.is_dir():
            dest = pathlib.Path(get_download_location(url, dest))
        return dest

    def _retrieve(self, url: str, target: str) -> None:
        strategy = self.strategy
        log.info("Fetching %s", url)
        strategy.retrieve(self.rewrite_url(url), target)

    def _retrieve_any(self, urls: Sequence[str], target: str) -> str:
        errors = []
        for url in urls:
            try:
                self._retrieve(url, target)
                return url
            except FetchError as exc:
                log.warning("Download failed %s (%s)", url, exc)
                errors.append(f"{url}: {exc}")
        raise FetchError("Unable to download from any source\n" + "\n".join(errors))

    def fetch(
        self,
        url: str,
        mirror: Optional[str] = None,
        checksum: Optional[str] = None,
        destination: Union[str, os.PathLike[str]] = ".",
        stage: bool = True,
    ) -> Optional[pathlib.Path]:
        """
        Retrieve a url into a destination.

        :param url: The primary url
        :type url: str
        :param mirror: The url tried when the primary fails, defaults to a
            mirror derived from the file name
        :type mirror: str
        :param checksum: The expected sha256 (or sha1) of the content
        :type checksum: str
        :param destination: A file, a directory or ``"-"`` for stdout
        :type destination: str
        :param stage: Download to a temporary file and move it into place
        :type stage: bool

        :raises NoRetrievalToolError: When no strategy can run
        :raises ChecksumMismatchError: When the content does not match
        :raises FetchError: When neither the url nor the mirror worked

        :return: The path of the fetched file, None for stdout
        :rtype: ``pathlib.Path``
        """
        if mirror is None:
            mirror = default_mirror(url, self.mirror_template)
        urls = [url]
        if mirror and mirror != url:
            urls.append(mirror)

        if os.fspath(destination) == STDOUT:
            self._retrieve_any(urls, STDOUT)
            return None

        dest = self._destination(url, destination)
        if checksum and dest.is_file():
            if not self.validate_checksum(dest, checksum):
                raise ChecksumMismatchError(
                    f"{dest} is already in the cache and does not match {checksum}, "
                    "remove it to download again"
                )
            log.debug("%s already downloaded, skipping.", dest)
            return dest
        # Resolve the strategy before touching the filesystem.
        _ = self.strategy
        dest.parent.mkdir(parents=True, exist_ok=True)

        if not stage:
            used = self._retrieve_any(urls, str(dest))
            if checksum:
                try:
                    verify_checksum(dest, checksum)
                except ChecksumMismatchError:
                    dest.unlink()
                    raise
            log.debug("Fetched %s -> %s", used, dest)
            return dest

        fd, staged_name = tempfile.mkstemp(
            prefix=f".{dest.name}.", suffix=".part", dir=dest.parent
        )
        os.close(fd)
        staged = pathlib.Path(staged_name)
        try:
            used = self._retrieve_any(urls, staged_name)
            if checksum:
                verify_checksum(staged, checksum)
            os.replace(staged, dest)
        except BaseException:
            try:
                staged.unlink()
            except FileNotFoundError:
                pass
            raise
        log.debug("Fetched %s -> %s", used, dest)
        return dest


__all__ = [
    "CurlStrategy",
    "DEFAULT_MIRROR",
    "Fetcher",
    "RetrievalStrategy",
    "STDOUT",
    "UrllibStrategy",
    "WgetStrategy",
    "default_mirror",
    "file_checksum",
    "verify_checksum",
]
