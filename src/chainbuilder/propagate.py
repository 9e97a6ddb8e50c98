# Copyright 2024 Shane Loretz.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import logging
from typing import Iterable, Optional

from .config import RunConfig
from .graph import Graph
from .recipe import BASE_KEYWORD, RecipeParseError, write_recipe, write_version
from .version import bump


logger = logging.getLogger(__name__)


class VersionPropagator:
    """Bump versions of images and of everything built on top of them.

    A dependent gets its own version bumped and its base image declaration
    pointed at the parent's new version, so the whole chain stays linked.
    """

    def __init__(self, graph: Graph, config: RunConfig):
        self.__graph = graph
        self.__config = config
        self.__visited: set[str] = set()

    def propagate(self, frontier: Iterable[str]) -> None:
        self.__visited = set()
        self._propagate(tuple(frontier), parent_version=None)

    def _propagate(self, frontier: tuple[str, ...], parent_version: Optional[str]):
        for name in frontier:
            if name in self.__visited:
                continue
            self.__visited.add(name)
            node = self.__graph[name]
            # Dependents still point at the reference from before the bump
            old_ref = node.qualified_ref

            new_version = bump(node.version, self.__config.bump_component)[0]
            self._update_version(name, new_version)
            if parent_version is not None:
                self._update_base_ref(name, parent_version)

            dependents = tuple(
                d for d in self.__graph.dependents_of_ref(old_ref) if d != name
            )
            if dependents:
                self._propagate(dependents, parent_version=new_version)

    def _update_version(self, name: str, new_version: str):
        node = self.__graph[name]
        if self.__config.dry_run:
            logger.info(f"Would write '{new_version}' to {node.version_path}")
        else:
            write_version(node, new_version)
        logger.debug(f"{name}: {node.version} -> {new_version}")
        node.version = new_version

    def _update_base_ref(self, name: str, parent_version: str):
        node = self.__graph[name]
        ref_split = node.base_ref.split(":")
        if len(ref_split) > 2:
            raise RecipeParseError(f"Can't parse {BASE_KEYWORD}: {node.base_ref}")
        image = ref_split[0]
        new_ref = f"{image}:{parent_version}"
        new_line = f"{BASE_KEYWORD} {new_ref}"
        # Recipes are split on \n, so CRLF lines still carry their \r
        old_line = node.recipe_lines[node.base_ref_line]
        ending = "\r" if old_line.endswith("\r") else ""
        node.recipe_lines[node.base_ref_line] = new_line + ending
        node.base_ref = new_ref
        if self.__config.dry_run:
            logger.info(f"Would update {node.recipe_path} {BASE_KEYWORD} line to '{new_line}'")
        else:
            write_recipe(node)
