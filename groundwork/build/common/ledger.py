# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
"""
Per package records of successful installs.
"""
from __future__ import annotations

import datetime
import json
import logging
import os
import pathlib
import tempfile
from typing import Any, Dict, List, Mapping

from groundwork.common import LEDGER_DIR, PathLike, __version__

log = logging.getLogger(__name__)

EXTENSION = ".json"


class InstallLedger:
    """
    The record of which packages an install root holds.

    An entry's existence is what marks a package installed; entries are only
    written once a package's build steps have all succeeded.
    """

    def __init__(self, dirname: str = LEDGER_DIR) -> None:
        self.dirname = dirname

    def path(self, prefix: PathLike, name: str) -> pathlib.Path:
        """The ledger file of a package."""
        return pathlib.Path(prefix) / self.dirname / f"{name}{EXTENSION}"

    def has(self, prefix: PathLike, name: str) -> bool:
        """
        True when the package is recorded as installed under the prefix.
        """
        return self.path(prefix, name).exists()

    def record(
        self, prefix: PathLike, name: str, metadata: Mapping[str, Any]
    ) -> pathlib.Path:
        """
        Write the ledger entry of a package.

        The entry is written to a temporary file and moved into place so a
        reader never sees a partial entry.

        :param prefix: The install root
        :type prefix: str
        :param name: The package name
        :type name: str
        :param metadata: Provenance to store with the entry
        :type metadata: dict

        :return: The path of the entry
        :rtype: ``pathlib.Path``
        """
        path = self.path(prefix, name)
        path.parent.mkdir(parents=True, exist_ok=True)
        data: Dict[str, Any] = dict(metadata)
        data.setdefault("name", name)
        data["installed"] = datetime.datetime.now(datetime.timezone.utc).isoformat()
        data["tool_version"] = __version__
        fd, tmp = tempfile.mkstemp(prefix=f".{name}.", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fp:
                json.dump(data, fp, indent=2, sort_keys=True)
                fp.write("\n")
            os.replace(tmp, path)
        except BaseException:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise
        log.debug("Recorded %s in %s", name, path)
        return path

    def read(self, prefix: PathLike, name: str) -> Dict[str, Any]:
        """Load the ledger entry of a package."""
        with open(self.path(prefix, name), encoding="utf-8") as fp:
            return json.load(fp)

    def installed(self, prefix: PathLike) -> List[str]:
        """Names of every package recorded under the prefix."""
        root = pathlib.Path(prefix) / self.dirname
        if not root.is_dir():
            return []
        return sorted(
            _.name[: -len(EXTENSION)]
            for _ in root.iterdir()
            if _.name.endswith(EXTENSION) and not _.name.startswith(".")
        )
