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
import shlex
import subprocess
from typing import Optional, Protocol


class Sink(Protocol):

    def write(self, data: bytes | str) -> None: ...


class WorkFailedError(Exception):

    def __init__(self, cmd: str, return_code: int):
        super().__init__(f"'{cmd}' failed with exit code {return_code}")
        self.cmd = cmd
        self.return_code = return_code


class ExecuteCommand:
    """Run a command, copying everything it prints into a sink."""

    def __init__(
        self,
        cmd: list[str],
        working_directory: Optional[Path] = None,
    ):
        self.__cmd = cmd
        if working_directory is None:
            working_directory = Path.cwd()
        self.__working_directory = working_directory

    @property
    def cmd(self) -> tuple[str, ...]:
        return tuple(self.__cmd)

    def __str__(self):
        return shlex.join(self.__cmd)

    def __call__(self, sink: Sink, echo: Optional[Sink] = None) -> list[str]:
        """Run the command and return its output lines.

        Raises WorkFailedError if the command exits non-zero.
        """
        sink.write(f"$ {self}\n")
        if echo is not None:
            echo.write(f"$ {self}\n")
        lines: list[str] = []
        process = subprocess.Popen(
            self.__cmd,
            cwd=self.__working_directory,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
        with process:
            while raw_line := process.stdout.readline():
                sink.write(raw_line)
                if echo is not None:
                    echo.write(raw_line)
                lines.append(raw_line.decode(errors="replace").rstrip("\n"))
            return_code = process.wait()
        if return_code != 0:
            raise WorkFailedError(str(self), return_code)
        return lines
