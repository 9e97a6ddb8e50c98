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
from typing import Optional

from .status import NodeLog
from .work import ExecuteCommand, Sink


def build_command(
    tool: str,
    directory: Path,
    tags: list[str],
    *,
    no_cache: bool = False,
    pull: bool = True,
) -> ExecuteCommand:
    if tool == "buildah":
        cmd = ["buildah", "bud"]
    else:
        cmd = [tool, "build"]
    if pull:
        cmd.append("--pull")
    if no_cache:
        cmd.append("--no-cache")
    for tag in tags:
        cmd.append("-t")
        cmd.append(tag)
    # The command runs inside the image directory, so the context is "."
    cmd.append(".")
    return ExecuteCommand(cmd, working_directory=Path(directory))


def push_command(tool: str, tag: str) -> ExecuteCommand:
    return ExecuteCommand([tool, "push", tag])


def diff_command(base_dir: Path, since: str) -> ExecuteCommand:
    return ExecuteCommand(
        ["git", "diff", "--name-only", "--relative", since],
        working_directory=Path(base_dir),
    )


class Toolchain:
    """The external programs used to build and push images."""

    def __init__(self, tool: str = "docker"):
        self.tool = tool

    def build(
        self,
        directory: Path,
        tags: list[str],
        sink: Sink,
        *,
        no_cache: bool = False,
        pull: bool = True,
        echo: Optional[Sink] = None,
    ) -> None:
        build_command(self.tool, directory, tags, no_cache=no_cache, pull=pull)(
            sink, echo
        )

    def push(self, tag: str, sink: Sink, *, echo: Optional[Sink] = None) -> None:
        push_command(self.tool, tag)(sink, echo)


def changed_files(base_dir: Path, since: str) -> list[str]:
    """Return paths relative to base_dir that changed since the given commit."""
    # Output is parsed, not shown, so it only goes to a throw-away log
    return diff_command(base_dir, since)(NodeLog())
