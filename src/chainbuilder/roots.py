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

import fnmatch
import logging
import os
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, Optional

from .graph import Graph
from .recipe import RECIPE_FILE


logger = logging.getLogger(__name__)

# A ChangeMatcher is given a changed path relative to the base directory and
# the name of an image. It returns True if the change affects the image.
ChangeMatcher = Callable[[str, str], bool]


def top_level_matcher(changed_path: str, name: str) -> bool:
    """Match a change anywhere below the image's directory."""
    parts = PurePosixPath(changed_path).parts
    return len(parts) > 0 and parts[0] == name


def glob_matcher(pattern: str = "{name}/*") -> ChangeMatcher:
    """Match changed paths against a glob where {name} is the image name.

    fnmatch's * also matches /, so the default pattern matches any depth.
    """

    def matcher(changed_path: str, name: str) -> bool:
        return fnmatch.fnmatchcase(changed_path, pattern.format(name=name))

    return matcher


def matcher_for(pattern: Optional[str]) -> ChangeMatcher:
    """Return the glob matcher for pattern, or the default one if it's None."""
    if pattern is None:
        return top_level_matcher
    return glob_matcher(pattern)


def _unique(names: Iterable[str]) -> list[str]:
    unique: list[str] = []
    for name in names:
        if name not in unique:
            unique.append(name)
    return unique


def seed_names(seed_paths: Iterable[str | Path]) -> list[str]:
    """Return image names of requested seed directories that hold a recipe."""
    names: list[str] = []
    for seed_path in seed_paths:
        seed_path = Path(os.path.normpath(seed_path))
        if not (seed_path / RECIPE_FILE).is_file():
            logger.warning(f"No {RECIPE_FILE} in {seed_path}, skipping it")
            continue
        names.append(seed_path.name)
    return _unique(names)


def changed_names(
    changed_paths: Iterable[str],
    names: Iterable[str],
    matcher: ChangeMatcher = top_level_matcher,
) -> list[str]:
    """Return the names that have at least one changed path."""
    changed_paths = [p for p in changed_paths if p]
    changed: list[str] = []
    for name in names:
        if any(matcher(path, name) for path in changed_paths):
            changed.append(name)
        else:
            logger.info(f"{name} has no changes, skipping it")
    return _unique(changed)


def resolve_roots(
    graph: Graph,
    seeds: Iterable[str],
    changed_paths: Optional[Iterable[str]] = None,
    matcher: ChangeMatcher = top_level_matcher,
) -> list[str]:
    """Return the seeds to start from, dropping any built as part of another.

    If changed_paths is given only seeds with changes are kept.
    """
    seeds = _unique(seeds)
    for seed in seeds:
        if seed not in graph:
            raise KeyError(f"No image named {seed}")

    if changed_paths is not None:
        seeds = changed_names(changed_paths, seeds, matcher)

    descendants = {seed: graph.descendants_of(seed) for seed in seeds}
    roots: list[str] = []
    for seed in seeds:
        if any(seed in descendants[other] for other in seeds if other != seed):
            logger.debug(f"{seed} will be built as a dependent of another image")
            continue
        roots.append(seed)
    return roots
