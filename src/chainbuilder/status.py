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

import enum
import io
from threading import Lock


class NodeStatus(enum.Enum):

    PENDING = "pending"
    BUILDING = "building"
    PUSHING = "pushing"
    SUCCESS = "success"
    FAILURE = "failure"

    @property
    def is_terminal(self) -> bool:
        return self in (NodeStatus.SUCCESS, NodeStatus.FAILURE)

    def __str__(self):
        return self.value


# Key = current status
# Value = statuses that may follow it
_TRANSITIONS: dict[NodeStatus, tuple[NodeStatus, ...]] = {
    NodeStatus.PENDING: (NodeStatus.BUILDING,),
    NodeStatus.BUILDING: (
        NodeStatus.PUSHING,
        NodeStatus.SUCCESS,
        NodeStatus.FAILURE,
    ),
    NodeStatus.PUSHING: (NodeStatus.SUCCESS, NodeStatus.FAILURE),
    NodeStatus.SUCCESS: (),
    NodeStatus.FAILURE: (),
}


class InvalidTransitionError(RuntimeError):

    def __init__(self, name: str, current: NodeStatus, wanted: NodeStatus):
        super().__init__(f"{name}: cannot go from {current} to {wanted}")


class NodeLog:
    """Append-only capture of everything the tools printed for one node."""

    def __init__(self):
        self._buffer = io.BytesIO()
        self._lock = Lock()

    def write(self, data: bytes | str) -> None:
        if isinstance(data, str):
            data = data.encode()
        with self._lock:
            self._buffer.write(data)

    def getvalue(self) -> bytes:
        with self._lock:
            return self._buffer.getvalue()

    def text(self) -> str:
        return self.getvalue().decode(errors="replace")


class NodeState:
    """Status and log of a node, polled by observers.

    Only the task building a node writes to its state. The lock makes it
    safe for an observer thread to read at the same time.
    """

    def __init__(self, name: str):
        self._name = name
        self._status = NodeStatus.PENDING
        self._lock = Lock()
        self.log = NodeLog()

    @property
    def status(self) -> NodeStatus:
        with self._lock:
            return self._status

    def transition(self, wanted: NodeStatus) -> None:
        with self._lock:
            if wanted not in _TRANSITIONS[self._status]:
                raise InvalidTransitionError(self._name, self._status, wanted)
            self._status = wanted

    def __repr__(self):
        return f"<NodeState:{self._name}:{self.status}>"
