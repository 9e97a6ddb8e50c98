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

import collections.abc
from dataclasses import dataclass
from io import StringIO
import logging
from pathlib import Path
from typing import Optional

import yaml

from .version import BumpComponent


logger = logging.getLogger(__name__)

CONFIG_FILE = "conf.yaml"
TOOLS = ("docker", "buildah")


class ParseError(RuntimeError):

    def __init__(self, msg):
        super().__init__(msg)


@dataclass(frozen=True)
class RunConfig:
    """Everything a run needs to know, handed to each component."""

    registry: str = "localhost"
    bump_component: BumpComponent = BumpComponent.NONE
    since: Optional[str] = None
    dry_run: bool = False
    no_cache: bool = False
    pull: bool = True
    push: bool = True
    tool: str = "docker"
    max_workers: Optional[int] = None
    poll_interval: float = 0.25
    follow: bool = False
    change_match: Optional[str] = None

    def __post_init__(self):
        if self.tool not in TOOLS:
            raise ParseError(f"Unknown tool '{self.tool}', use one of {TOOLS}")
        if self.max_workers is not None and self.max_workers < 1:
            raise ParseError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.poll_interval <= 0:
            raise ParseError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.change_match is not None:
            try:
                uses_name = "\0" in self.change_match.format(name="\0")
            except (KeyError, IndexError, ValueError):
                uses_name = False
            if not uses_name:
                raise ParseError(
                    f"change_match must be a glob using only {{name}}, got '{self.change_match}'"
                )

    @classmethod
    def from_sources(cls, file_values: dict, **overrides) -> "RunConfig":
        """Command line overrides win over the config file, which wins over defaults.

        An override of None means it was not given.
        """
        values = dict(file_values)
        for key, value in overrides.items():
            if value is not None:
                values[key] = value
        if isinstance(values.get("bump_component"), str):
            values["bump_component"] = BumpComponent.parse(values["bump_component"])
        return cls(**values)


# Keys a config file may set, and the types their values must have
_FILE_KEYS = {
    "registry": (str,),
    "no_cache": (bool,),
    "pull": (bool,),
    "push": (bool,),
    "tool": (str,),
    "max_workers": (int,),
    "poll_interval": (int, float),
    "change_match": (str,),
}


def parse_config_stream(stream) -> dict:
    """Parse a config file, returning the values it sets."""
    try:
        yaml_dict = yaml.safe_load(stream)
    except yaml.YAMLError as e:
        raise ParseError(f"Config is not valid YAML: {e}")

    if yaml_dict is None:
        return {}
    if not isinstance(yaml_dict, collections.abc.Mapping):
        raise ParseError("Config must be a dictionary")

    values = {}
    for key, value in yaml_dict.items():
        if key not in _FILE_KEYS:
            raise ParseError(f"Config has unknown field '{key}'")
        allowed_types = _FILE_KEYS[key]
        # bool is an int, but 'max_workers: true' is not a number of workers
        if not isinstance(value, allowed_types) or (
            isinstance(value, bool) and bool not in allowed_types
        ):
            raise ParseError(f"Config field '{key}' has invalid value {value!r}")
        values[key] = value
    return values


def parse_config_string(string: str) -> dict:
    with StringIO(string) as stream:
        return parse_config_stream(stream)


def load_config_file(path: Path) -> dict:
    try:
        with open(path, "r") as fin:
            values = parse_config_stream(fin)
    except FileNotFoundError:
        logger.warning(f"No conf file at {path}")
        return {}
    logger.info(f"Using config file: {path}")
    return values
