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
from threading import Event, Thread
from typing import Iterable

from .graph import Graph, render_tree
from .status import NodeStatus


logger = logging.getLogger(__name__)


class StatusReporter:
    """Polls image status in the background and logs what changed.

    When an image fails its captured output is written to the log, unless
    output is already being streamed live.
    """

    def __init__(
        self,
        graph: Graph,
        names: Iterable[str],
        interval: float = 0.25,
        dump_failures: bool = True,
    ):
        self._graph = graph
        self._names = tuple(names)
        self._interval = interval
        self._dump_failures = dump_failures
        self._last_seen = {name: NodeStatus.PENDING for name in self._names}
        self._stop = Event()
        self._thread = Thread(target=self._loop, name="status-reporter", daemon=True)

    def __enter__(self):
        self._thread.start()
        return self

    def __exit__(self, t, v, tb):
        self._stop.set()
        self._thread.join()
        # Catch whatever happened since the last poll
        self.poll()

    def _loop(self):
        while not self._stop.wait(self._interval):
            self.poll()

    def poll(self):
        for name in self._names:
            state = self._graph[name].state
            status = state.status
            if status == self._last_seen[name]:
                continue
            self._last_seen[name] = status
            if status == NodeStatus.FAILURE:
                logger.error(f"{name}: {status}")
                if self._dump_failures:
                    logger.error(f"Output of {name}:\n{state.log.text()}")
            else:
                logger.info(f"{name}: {status}")


def summary(graph: Graph, roots: Iterable[str]) -> str:
    return "\n----\n".join(render_tree(graph, root) for root in roots)
