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

from concurrent.futures import Future, ThreadPoolExecutor
import contextlib
import logging
from threading import Event, Lock
from typing import Iterable, Optional

from .cohesive_output import CohesiveOutput
from .config import RunConfig
from .graph import Graph
from .recipe import Node
from .status import NodeStatus
from .tools import Toolchain
from .version import tags_for
from .work import WorkFailedError


logger = logging.getLogger(__name__)


def image_tags(node: Node) -> list[str]:
    """Return every fully qualified tag the node's image is built with."""
    tags = [t for t in tags_for(node.version) if t]
    tags.append("latest")
    return [f"{node.image}:{t}" for t in tags]


class BuildScheduler:
    """Build and push images, each one only after the image it is based on.

    Work runs on a bounded pool of threads. When an image is built
    successfully its dependents are looked up and queued; when it fails
    nothing built on top of it is attempted, but other branches go on.
    """

    def __init__(
        self,
        graph: Graph,
        config: RunConfig,
        toolchain: Optional[Toolchain] = None,
    ):
        self.__graph = graph
        self.__config = config
        if toolchain is None:
            toolchain = Toolchain(config.tool)
        self.__toolchain = toolchain

    def run(self, roots: Iterable[str]) -> dict[str, NodeStatus]:
        """Build everything reachable from roots and wait until it's done.

        Returns the final status of every image that was scheduled.
        """
        executor = ThreadPoolExecutor(max_workers=self.__config.max_workers)
        all_done = Event()
        lock = Lock()
        scheduled: list[str] = []
        outstanding = 0
        errors: list[BaseException] = []

        def finish_one():
            nonlocal outstanding
            with lock:
                outstanding -= 1
                if outstanding == 0:
                    all_done.set()

        def on_done(name: str, f: Future):
            if f.cancelled():
                finish_one()
                return
            e = f.exception()
            if e is not None:
                logger.error(f"Unexpected error while building {name}: {e!r}")
                with lock:
                    errors.append(e)
                executor.shutdown(wait=False, cancel_futures=True)
                all_done.set()
            elif f.result() == NodeStatus.SUCCESS:
                # Children are queued before this node stops counting as
                # outstanding, so the run can't look finished in between.
                for dependent in self.__graph.dependents_of(name):
                    submit(dependent)
            finish_one()

        def submit(name: str):
            nonlocal outstanding
            with lock:
                if name in scheduled:
                    return
                scheduled.append(name)
                outstanding += 1
            try:
                f = executor.submit(self._process, name)
            except RuntimeError:
                # Executor shutting down, something went wrong
                finish_one()
                return
            # Must add done callback outside of locking because the callback
            # may run right away in this thread and lock is not reentrant
            f.add_done_callback(lambda f, name=name: on_done(name, f))

        roots = tuple(roots)
        if roots:
            for root in roots:
                submit(root)
            all_done.wait()
        executor.shutdown()

        if errors:
            raise errors[0]
        return {name: self.__graph[name].state.status for name in scheduled}

    def _process(self, name: str) -> NodeStatus:
        node = self.__graph[name]
        state = node.state
        tags = image_tags(node)
        config = self.__config

        with contextlib.ExitStack() as exit_stack:
            echo = None
            if config.follow:
                echo = exit_stack.enter_context(CohesiveOutput(name))

            state.transition(NodeStatus.BUILDING)
            logger.info(f"Building {tags[0]}")
            try:
                if config.dry_run:
                    state.log.write(f"Would build {name} with tags {tags}\n")
                else:
                    self.__toolchain.build(
                        node.directory,
                        tags,
                        state.log,
                        no_cache=config.no_cache,
                        pull=config.pull,
                        echo=echo,
                    )
                if config.push:
                    state.transition(NodeStatus.PUSHING)
                    for tag in tags:
                        if config.dry_run:
                            state.log.write(f"Would push {tag}\n")
                        else:
                            logger.debug(f"Pushing {tag}")
                            self.__toolchain.push(tag, state.log, echo=echo)
            except (WorkFailedError, OSError) as e:
                state.log.write(f"{e}\n")
                state.transition(NodeStatus.FAILURE)
                logger.info(f"Build of {name} resulted in {NodeStatus.FAILURE}")
                return NodeStatus.FAILURE

            state.transition(NodeStatus.SUCCESS)
            logger.info(f"Build of {name} resulted in {NodeStatus.SUCCESS}")
            return NodeStatus.SUCCESS
