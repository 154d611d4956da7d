# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
"""
Recipes and the registry mapping package names to them.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from groundwork.common import (
    CyclicDependencyError,
    DuplicateChecksumError,
    UnknownPackageError,
    archive_extension,
)

from .steps import Step

log = logging.getLogger(__name__)


class Recipe:
    """
    How to fetch, patch and build one package.

    Recipes are not modified once created.
    """

    def __init__(
        self,
        name: str,
        version: str,
        url: str,
        checksum: Optional[str],
        mirror: Optional[str] = None,
        dependencies: Sequence[str] = (),
        patch: Sequence[Step] = (),
        build: Sequence[Step] = (),
        post_install: Sequence[Step] = (),
        description: str = "",
    ) -> None:
        self.name = name
        self.version = version
        self.url_tpl = url
        self.mirror_tpl = mirror
        self.checksum = checksum.lower() if checksum else None
        self.dependencies = tuple(dependencies)
        self.patch = tuple(patch)
        self.build = tuple(build)
        self.post_install = tuple(post_install)
        self.description = description

    @property
    def url(self) -> str:
        """Get the formatted download URL."""
        return self.url_tpl.format(version=self.version)

    @property
    def mirror(self) -> Optional[str]:
        """Get the formatted mirror URL if configured."""
        if self.mirror_tpl:
            return self.mirror_tpl.format(version=self.version)
        return None

    @property
    def archive_name(self) -> str:
        """
        The file name of this recipe's archive in the download cache.
        """
        ext = archive_extension(self.url)
        return f"{self.checksum or self.name + '-' + self.version}.{ext}"

    def steps(self) -> Dict[str, List[str]]:
        """Readable descriptions of every step, by phase."""
        return {
            "patch": [_.describe() for _ in self.patch],
            "build": [_.describe() for _ in self.build],
            "post_install": [_.describe() for _ in self.post_install],
        }

    def metadata(self) -> Dict[str, Any]:
        """The provenance recorded in the install ledger."""
        return {
            "name": self.name,
            "version": self.version,
            "url": self.url,
            "mirror": self.mirror,
            "checksum": self.checksum,
            "dependencies": list(self.dependencies),
            "steps": self.steps(),
        }

    def __repr__(self) -> str:
        return f"<Recipe {self.name}-{self.version}>"


class RecipeRegistry:
    """
    A collection of recipes keyed by package name.
    """

    def __init__(self, recipes: Optional[Iterable[Recipe]] = None) -> None:
        self.recipes: Dict[str, Recipe] = {}
        for recipe in recipes or ():
            self.recipes[recipe.name] = recipe

    def add(self, name: str, **kwargs: Any) -> Recipe:
        """
        Add a recipe.

        :param name: The package name
        :type name: str

        Remaining keyword arguments are passed to :class:`Recipe`.
        """
        recipe = Recipe(name, **kwargs)
        self.recipes[name] = recipe
        return recipe

    def lookup(self, name: str) -> Recipe:
        """
        Get the recipe of a package.

        :raises UnknownPackageError: If no recipe has that name
        """
        try:
            return self.recipes[name]
        except KeyError:
            raise UnknownPackageError(f"Unknown package {name}") from None

    def names(self) -> List[str]:
        return sorted(self.recipes)

    def __contains__(self, name: object) -> bool:
        return name in self.recipes

    def __iter__(self) -> Iterator[Recipe]:
        for name in self.names():
            yield self.recipes[name]

    def __len__(self) -> int:
        return len(self.recipes)

    def graph(self) -> Dict[str, List[str]]:
        """Mapping of package name to its dependency names."""
        return {name: list(r.dependencies) for name, r in self.recipes.items()}

    def resolve(self, names: Sequence[str]) -> List[str]:
        """
        Order the given packages and all their dependencies.

        Dependencies come before the packages needing them, in declared
        order, and every package appears once.

        :raises UnknownPackageError: When a name has no recipe
        :raises CyclicDependencyError: When the dependencies form a cycle
        """
        order: List[str] = []
        done = set()
        path: List[str] = []

        def visit(name: str) -> None:
            if name in done:
                return
            if name in path:
                raise CyclicDependencyError(path[path.index(name) :] + [name])
            recipe = self.lookup(name)
            path.append(name)
            for dep in recipe.dependencies:
                visit(dep)
            path.pop()
            done.add(name)
            order.append(name)

        for name in names:
            visit(name)
        return order

    def validate(self) -> None:
        """
        Check the registry as a whole.

        :raises UnknownPackageError: When a dependency has no recipe
        :raises CyclicDependencyError: When the dependencies form a cycle
        :raises DuplicateChecksumError: When two recipes share a checksum
        """
        for recipe in self.recipes.values():
            for dep in recipe.dependencies:
                if dep not in self.recipes:
                    raise UnknownPackageError(
                        f"Package {recipe.name} depends on unknown package {dep}"
                    )
        self.resolve(self.names())
        seen: Dict[str, str] = {}
        for recipe in self:
            if not recipe.checksum:
                continue
            if recipe.checksum in seen:
                raise DuplicateChecksumError(
                    f"Packages {seen[recipe.checksum]} and {recipe.name} share "
                    f"checksum {recipe.checksum}"
                )
            seen[recipe.checksum] = recipe.name
        log.debug("Validated %d recipes", len(self.recipes))
