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

from pathlib import Path
import re
from typing import Optional

from .status import NodeState


RECIPE_FILE = "Dockerfile"
VERSION_FILE = "VERSION"
BASE_KEYWORD = "FROM"

BASE_REGEX = re.compile(r"^" + BASE_KEYWORD + r"\s+(.*)$")


class ScanError(RuntimeError):

    def __init__(self, msg):
        super().__init__(msg)


class RecipeParseError(RuntimeError):

    def __init__(self, msg):
        super().__init__(msg)


class RecipeWriteError(RuntimeError):

    def __init__(self, msg):
        super().__init__(msg)


class Node:
    """One image: a directory holding a recipe and a version marker."""

    def __init__(
        self,
        name: str,
        *,
        directory: Path,
        registry: str,
        recipe_lines: list[str],
        version: str,
    ):
        self.name = name
        self.directory = Path(directory)
        self.registry = registry
        self.recipe_lines = list(recipe_lines)
        self.version = version
        self.base_ref, self.base_ref_line = parse_base_ref(self.recipe_lines)
        self.state = NodeState(name)

    @property
    def image(self) -> str:
        registry = self.registry.rstrip("/")
        return f"{registry}/{self.name}"

    @property
    def qualified_ref(self) -> str:
        return f"{self.image}:{self.version}"

    @property
    def recipe_path(self) -> Path:
        return self.directory / RECIPE_FILE

    @property
    def version_path(self) -> Path:
        return self.directory / VERSION_FILE

    def __repr__(self):
        return f"<Node:{self.name} {self.base_ref!r} -> {self.qualified_ref!r}>"


def parse_base_ref(lines: list[str]) -> tuple[str, Optional[int]]:
    """Return the base image reference and the index of the line declaring it."""
    for idx, line in enumerate(lines):
        m = BASE_REGEX.match(line)
        if m is not None:
            return m.group(1).strip(), idx
    return "", None


def read_version(directory: Path) -> str:
    try:
        content = (Path(directory) / VERSION_FILE).read_text()
    except FileNotFoundError:
        return ""
    lines = content.split("\n")
    return lines[0].strip()


def read_node(directory: Path, registry: str) -> Optional[Node]:
    """Return a Node for the directory, or None if it has no recipe."""
    directory = Path(directory)
    try:
        with open(directory / RECIPE_FILE, "r", newline="") as fin:
            recipe = fin.read()
    except (FileNotFoundError, NotADirectoryError, IsADirectoryError):
        return None
    return Node(
        directory.name,
        directory=directory,
        registry=registry,
        recipe_lines=recipe.split("\n"),
        version=read_version(directory),
    )


def write_version(node: Node, version: str) -> None:
    try:
        node.version_path.write_text(version + "\n")
    except OSError as e:
        raise RecipeWriteError(f"Couldn't write {version} to file {node.version_path}: {e}")


def write_recipe(node: Node) -> None:
    try:
        node.recipe_path.write_text("\n".join(node.recipe_lines), newline="")
    except OSError as e:
        raise RecipeWriteError(f"Couldn't write recipe {node.recipe_path}: {e}")
