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

import queue
import sys
import threading
from typing import Optional, TextIO


class CohesiveOutput:
    """Streams output of concurrently building images without interleaving.

    The first image to start streams straight to the console. Every other
    image is buffered until the ones before it are done, then its buffer is
    flushed and it becomes the one streaming.
    """

    # The currently active output
    output_lock: threading.Lock = threading.Lock()
    has_active_output: bool = False
    output_queue: queue.Queue = queue.Queue()

    def __init__(self, name: str, stream: Optional[TextIO] = None):
        self._name = name
        # Looked up late so pytest's capsys sees the output
        self._stream = stream
        self._buffer = [f">>> Begin output from: {name}\n"]
        self._lock = threading.Lock()
        self._is_active_output = False
        self._exited: bool = False

    @property
    def stream(self) -> TextIO:
        if self._stream is None:
            return sys.stdout
        return self._stream

    @classmethod
    def _join_output_queue(cls, instance: "CohesiveOutput"):
        with cls.output_lock:
            cls.output_queue.put(instance)
            if not cls.has_active_output:
                cls._next_in_queue()

    @classmethod
    def _next_in_queue(cls):
        # Flush every finished output waiting in the queue, stop at the first
        # one still running and let it stream from now on.
        while True:
            try:
                next_output = cls.output_queue.get_nowait()
            except queue.Empty:
                return
            with next_output._lock:
                for line in next_output._buffer:
                    next_output.stream.write(line)
                next_output._buffer = []
                if not next_output._exited:
                    next_output._is_active_output = True
                    cls.has_active_output = True
                    return

    def write(self, data: bytes | str):
        if isinstance(data, bytes):
            data = data.decode(errors="replace")
        with self._lock:
            if self._is_active_output:
                self.stream.write(data)
            else:
                self._buffer.append(data)

    def __enter__(self):
        type(self)._join_output_queue(self)
        return self

    def __exit__(self, t, v, tb):
        self.write(f"<<< End output from: {self._name}\n")
        with type(self).output_lock:
            with self._lock:
                self._exited = True
                was_active = self._is_active_output
                self._is_active_output = False
            if was_active:
                type(self).has_active_output = False
                type(self)._next_in_queue()
