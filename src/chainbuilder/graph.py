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
from pathlib import Path
from typing import Iterable, Iterator

from .recipe import Node, ScanError, read_node


logger = logging.getLogger(__name__)

DOT_FILE = "Dependency_Graph.dot"

# RefIndex is a dictionary where:
#  Key = a base image reference
#  Value = names of the nodes declaring that base
RefIndex = dict[str, list[str]]


class Graph:
    """All nodes of a project addressed by name.

    Edges are not stored. A node depends on another when its base reference
    equals the other's qualified reference, so every lookup is made against
    the current versions and a version bump is reflected immediately.
    """

    def __init__(self, nodes: Iterable[Node]):
        self.__nodes: dict[str, Node] = {}
        for node in nodes:
            if node.name in self.__nodes:
                raise ValueError(f"Duplicate image name {node.name}")
            self.__nodes[node.name] = node

    def __getitem__(self, name: str) -> Node:
        return self.__nodes[name]

    def __contains__(self, name: str) -> bool:
        return name in self.__nodes

    def __iter__(self) -> Iterator[str]:
        return iter(self.__nodes)

    def __len__(self) -> int:
        return len(self.__nodes)

    def nodes(self) -> tuple[Node, ...]:
        return tuple(self.__nodes.values())

    def index(self) -> RefIndex:
        """Build a lookup from base reference to dependent names."""
        index: RefIndex = {}
        for name in sorted(self.__nodes):
            node = self.__nodes[name]
            if node.base_ref:
                index.setdefault(node.base_ref, []).append(name)
        return index

    def dependents_of_ref(self, ref: str, index: RefIndex | None = None) -> tuple[str, ...]:
        if index is None:
            index = self.index()
        return tuple(index.get(ref, ()))

    def dependents_of(self, name: str, index: RefIndex | None = None) -> tuple[str, ...]:
        """Return names of nodes built directly on top of the given node."""
        ref = self.__nodes[name].qualified_ref
        return tuple(d for d in self.dependents_of_ref(ref, index) if d != name)

    def descendants_of(self, name: str) -> set[str]:
        """Return names of every node transitively built on the given node."""
        index = self.index()
        descendants: set[str] = set()
        to_visit = list(self.dependents_of(name, index))
        while to_visit:
            current = to_visit.pop()
            if current in descendants or current == name:
                continue
            descendants.add(current)
            to_visit.extend(self.dependents_of(current, index))
        return descendants


def scan_directory(base_dir: Path, registry: str) -> Graph:
    """Return a Graph with one Node per immediate subdirectory holding a recipe.

    Subdirectories without a recipe are not images and are skipped.
    """
    base_dir = Path(base_dir)
    try:
        children = sorted(base_dir.iterdir())
    except OSError as e:
        raise ScanError(f"Unable to list images in {base_dir}: {e}")

    nodes: list[Node] = []
    for child in children:
        if not child.is_dir():
            continue
        logger.debug(f"Processing {child.name}")
        node = read_node(child, registry)
        if node is not None:
            nodes.append(node)
    return Graph(nodes)


def graph_to_dot(graph: Graph) -> str:

    def make_str(text: str):
        return text.replace('"', r"\"")

    output = [
        "digraph G {",
        "  node [shape=rectangle];",
        "  rankdir=LR;",
        "  splines=polyline;",
    ]
    for node in sorted(graph.nodes(), key=lambda n: n.name):
        if not node.base_ref:
            continue
        output.append(f'  "{make_str(node.base_ref)}" -> "{make_str(node.qualified_ref)}";')
    output.append("}")
    return "\n".join(output) + "\n"


def write_dot(graph: Graph, path: Path) -> None:
    Path(path).write_text(graph_to_dot(graph))


def render_tree(graph: Graph, root: str, indentation: str = "  ") -> str:
    """Return an indented tree of a node and its dependents with their status."""
    index = graph.index()
    lines = [f"{root} [{graph[root].state.status}]"]
    seen = {root}

    def add_children(name: str, prefix: str):
        for child in graph.dependents_of(name, index):
            if child in seen:
                continue
            seen.add(child)
            lines.append(f"{prefix}↳ {child} [{graph[child].state.status}]")
            add_children(child, prefix + indentation)

    add_children(root, indentation)
    return "\n".join(lines)
