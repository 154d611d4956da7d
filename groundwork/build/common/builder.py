# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
"""
Builder class for managing the install process.
"""
from __future__ import annotations

import logging
import os
import pathlib
import shutil
import tempfile
from typing import Dict, List, Optional, Sequence

from groundwork.buildenv import buildenv
from groundwork.common import (
    GroundworkException,
    MissingInstallStepError,
    WorkDirs,
    extract_archive,
)
from groundwork.toolchain import ToolchainContext

from .download import Fetcher
from .ledger import InstallLedger
from .recipes import Recipe, RecipeRegistry
from .steps import CommandRunner, Runner, StepContext, run_steps
from . import ui

log = logging.getLogger(__name__)


class Dirs:
    """
    The directories used while building one package.

    :param dirs: The directories of the run
    :type dirs: ``groundwork.common.WorkDirs``
    :param name: The package being built
    :type name: str
    """

    def __init__(self, dirs: WorkDirs, name: str) -> None:
        if dirs.session is None:
            raise GroundworkException("No session directory has been created")
        self.name = name
        self.prefix = dirs.prefix
        self.downloads = dirs.download
        self.logs = dirs.logs
        self.workspace = dirs.session / name
        self.sources = self.workspace / "src"
        self.private = self.workspace / "root"

    def to_dict(self) -> Dict[str, pathlib.Path]:
        """
        Get a dictionary representation of the directories in this collection.

        :return: A dictionary of all the directories
        :rtype: dict
        """
        return {
            x: getattr(self, x)
            for x in [
                "prefix",
                "downloads",
                "logs",
                "workspace",
                "sources",
                "private",
            ]
        }


class Builder:
    """
    Installs packages and their dependencies into an install root.

    :param registry: The recipes to build from
    :type registry: ``RecipeRegistry``
    :param toolchain: The toolchain context of the run
    :type toolchain: ``groundwork.toolchain.ToolchainContext``
    :param dirs: The prefix, download cache and session directories
    :type dirs: ``groundwork.common.WorkDirs``
    :param fetcher: Retrieves source archives, defaults to a ``Fetcher``
        configured from the toolchain
    :type fetcher: ``Fetcher``
    :param runner: Runs the commands of build steps
    :type runner: ``CommandRunner``
    :param ledger: Records installed packages
    :type ledger: ``InstallLedger``
    :param keep_session: Leave the session directory in place after the run
    :type keep_session: bool
    """

    def __init__(
        self,
        registry: RecipeRegistry,
        toolchain: ToolchainContext,
        dirs: Optional[WorkDirs] = None,
        fetcher: Optional[Fetcher] = None,
        runner: Optional[Runner] = None,
        ledger: Optional[InstallLedger] = None,
        keep_session: bool = False,
    ) -> None:
        self.registry = registry
        self.toolchain = toolchain
        self.dirs = dirs if dirs is not None else WorkDirs()
        if fetcher is None:
            fetcher = Fetcher(url_hook=toolchain.url_hook, cacert=toolchain.cacert)
        self.fetcher = fetcher
        self.runner: Runner = runner if runner is not None else CommandRunner()
        self.ledger = ledger if ledger is not None else InstallLedger()
        self.keep_session = keep_session
        self._session_owned = False
        self._session_ready = False
        self.installed: List[str] = []

    @property
    def prefix(self) -> pathlib.Path:
        """Get the install root."""
        return self.dirs.prefix

    def check_prereqs(self) -> None:
        """
        Make sure the host can retrieve files before any work starts.

        :raises NoRetrievalToolError: When no retrieval strategy is available
        """
        strategy = self.fetcher.strategy
        log.debug("Retrieval strategy %s", strategy.name)

    def plan(self, names: Sequence[str]) -> List[str]:
        """
        The packages to visit, dependencies first.
        """
        return self.registry.resolve(names)

    def start_session(self) -> pathlib.Path:
        """
        Create the session directory and describe the toolchain in it.
        """
        if self.dirs.session is None:
            self.dirs.session = pathlib.Path(tempfile.mkdtemp(prefix="groundwork-"))
            self._session_owned = True
        os.makedirs(self.dirs.session, exist_ok=True)
        os.makedirs(self.dirs.logs, exist_ok=True)
        self.toolchain.write(self.dirs.session / "toolchain.json")
        self._session_ready = True
        log.debug("Session directory %s", self.dirs.session)
        return self.dirs.session

    def finish_session(self) -> None:
        """
        Remove the session directory unless it should be kept.
        """
        self._session_ready = False
        if self.dirs.session is None:
            return
        if self.keep_session or not self._session_owned:
            log.info("Session kept at %s", self.dirs.session)
            return
        shutil.rmtree(self.dirs.session, ignore_errors=True)
        self.dirs.session = None
        self._session_owned = False

    def download(self, recipe: Recipe) -> pathlib.Path:
        """
        Get the source archive of a recipe into the download cache.
        """
        path = self.fetcher.fetch(
            recipe.url,
            mirror=recipe.mirror,
            checksum=recipe.checksum,
            destination=self.dirs.download / recipe.archive_name,
        )
        if path is None:
            raise GroundworkException(f"No archive was fetched for {recipe.name}")
        return path

    def install(self, name: str) -> bool:
        """
        Install a package after its dependencies.

        A session directory created by this call is finished before it
        returns.

        :param name: The package to install
        :type name: str

        :raises UnknownPackageError: When there is no recipe for a package
        :raises NoRetrievalToolError: When no retrieval strategy is available
        :raises CyclicDependencyError: When the dependencies form a cycle

        :return: True when anything was built
        :rtype: bool
        """
        self.registry.lookup(name)
        self.check_prereqs()
        started = not self._session_ready
        built = False
        try:
            for step_name in self.plan([name]):
                built = self.install_one(step_name) or built
        finally:
            if started and self._session_ready:
                self.finish_session()
        return built

    def install_one(self, name: str) -> bool:
        """
        Fetch, extract, build and record a single package.

        Dependencies must already be installed.

        :return: False when the package was already installed
        :rtype: bool
        """
        recipe = self.registry.lookup(name)
        if self.ledger.has(self.prefix, name):
            log.debug("%s is already installed in %s", name, self.prefix)
            return False
        if not recipe.build:
            raise MissingInstallStepError(f"Recipe {name} has no build step")
        if not self._session_ready:
            self.start_session()

        dirs = Dirs(self.dirs, name)
        root_log = logging.getLogger(None)
        level = root_log.level
        root_log.setLevel(logging.NOTSET)
        handler = ui.file_handler(dirs.logs / f"{name}.log")
        root_log.addHandler(handler)
        try:
            log.info("Installing %s %s", name, recipe.version)
            env = buildenv(self.toolchain, self.prefix, private=dirs.private)
            archive = self.download(recipe)

            if dirs.workspace.exists():
                shutil.rmtree(dirs.workspace)
            dirs.private.mkdir(parents=True)
            log.info("Extracting %s", archive.name)
            extract_archive(dirs.sources, archive, tar=self.toolchain.tar)

            _ = dirs.to_dict()
            for k in _:
                log.debug("Directory %s %s", k, _[k])
            for k in env:
                log.debug("Environment %s %s", k, env[k])

            ctx = StepContext(
                env,
                dirs.sources,
                self.prefix,
                dirs.sources,
                self.toolchain,
                dirs.workspace,
            )
            if recipe.patch:
                log.info("Patching %s", name)
                run_steps(recipe.patch, self.runner, ctx)
            log.info("Building %s", name)
            run_steps(recipe.build, self.runner, ctx)
            if recipe.post_install:
                os.makedirs(self.prefix, exist_ok=True)
                run_steps(recipe.post_install, self.runner, ctx, cwd=self.prefix)

            self.ledger.record(self.prefix, name, recipe.metadata())
        except Exception:
            log.error("Installing %s failed, see %s", name, dirs.logs / f"{name}.log")
            raise
        finally:
            root_log.removeHandler(handler)
            handler.close()
            root_log.setLevel(level)
        self.installed.append(name)
        ui.success("Installed %s %s", name, recipe.version)
        return True

    def download_files(self, names: Sequence[str]) -> List[pathlib.Path]:
        """
        Download the archives of the packages and their dependencies.
        """
        return [self.download(self.registry.lookup(_)) for _ in self.plan(names)]

    def __call__(
        self,
        names: Sequence[str],
        download_only: bool = False,
        log_level: str = "INFO",
    ) -> List[str]:
        """
        Install packages, stopping at the first failure.

        :param names: The packages to install
        :type names: list
        :param download_only: Only fill the download cache
        :type download_only: bool
        :param log_level: Level of the messages written to stderr
        :type log_level: str

        :return: The packages that were built
        :rtype: list
        """
        root_log = logging.getLogger(None)
        root_log.setLevel(logging.NOTSET)
        stream_handler = ui.stream_handler(log_level)
        root_log.addHandler(stream_handler)
        file_handler: Optional[logging.Handler] = None
        try:
            for name in names:
                self.registry.lookup(name)
            self.check_prereqs()
            if download_only:
                self.download_files(names)
                return []
            self.start_session()
            file_handler = ui.file_handler(self.dirs.logs / "build.log", logging.INFO)
            root_log.addHandler(file_handler)
            for name in names:
                if not self.install(name):
                    ui.success("%s is already installed", name)
            return list(self.installed)
        finally:
            if file_handler is not None:
                root_log.removeHandler(file_handler)
                file_handler.close()
            self.finish_session()
            root_log.removeHandler(stream_handler)
