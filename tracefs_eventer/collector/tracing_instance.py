# tracefs_eventer/collector/tracing_instance.py - tracefs instance lifecycle
"""
Creates a private tracefs instance with the TCP state-change tracepoint
enabled, and exposes its trace_pipe ring buffer.

An instance is a directory under <mountpoint>/instances. It has its own
event switches and ring buffer, so enabling and disabling it does not
disturb other tracers using the same kernel.

Lifecycle:
    UNINITIALIZED -> enable() -> ENABLED -> open() -> OPENED
        -> close() -> CLOSED -> disable() -> DISABLED
"""

import errno
import logging
import os
import select
import shutil
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from tracefs_eventer.collector.mounts import MountpointRetriever
from tracefs_eventer.collector.tracepoint_deducer import TracepointDeducer
from tracefs_eventer.collector.uid_provider import UIDProvider
from tracefs_eventer.errors import (
    InvalidStateTransition,
    TraceFSEventerError,
    TracingInstanceError,
)


ENABLE_VALUE = '1\n'


class InstanceState(Enum):
    UNINITIALIZED = 0
    ENABLED = 1
    OPENED = 2
    CLOSED = 3
    DISABLED = 4


class TracePipe:
    """
    Line reader over a trace_pipe file descriptor.

    Reads from trace_pipe block until the kernel writes an event. close()
    may be called from another thread while a read is blocked: it wakes the
    reader, which then fails with EBADF.
    """

    def __init__(self, fd: int, name: str, read_size: int = 4096):
        self.fd = fd
        self.name = name
        self.read_size = read_size

        self._buffer = bytearray()
        self._closed = False
        self._read_lock = threading.Lock()
        self._wake_r, self._wake_w = os.pipe()

        self._poller = select.poll()
        self._poller.register(self.fd, select.POLLIN)
        self._poller.register(self._wake_r, select.POLLIN)

    @property
    def closed(self) -> bool:
        return self._closed

    def fileno(self) -> int:
        return self.fd

    def readline(self) -> bytes:
        """
        Read up to and including the next newline.

        Returns:
            The line, or the remaining unterminated bytes at end-of-file,
            or b'' if the pipe is exhausted

        Raises:
            OSError: The read failed, or the pipe was closed
        """
        with self._read_lock:
            while True:
                nl = self._buffer.find(b'\n')
                if nl != -1:
                    line = bytes(self._buffer[:nl + 1])
                    del self._buffer[:nl + 1]
                    return line

                if self._closed:
                    raise OSError(errno.EBADF, "trace pipe closed", self.name)

                ready = {fd for fd, _ in self._poller.poll()}
                if self._wake_r in ready or self._closed:
                    raise OSError(errno.EBADF, "trace pipe closed", self.name)

                chunk = os.read(self.fd, self.read_size)
                if not chunk:
                    line = bytes(self._buffer)
                    self._buffer.clear()
                    return line

                self._buffer.extend(chunk)

    def close(self):
        """
        Close the pipe, waking any thread blocked in readline().
        """
        if self._closed:
            return

        self._closed = True
        os.write(self._wake_w, b'\0')

        # Wait for a woken reader to leave readline() before releasing fds
        with self._read_lock:
            os.close(self.fd)
            os.close(self._wake_r)
            os.close(self._wake_w)


class TracingInstance(ABC):
    """
    Exposes a ring buffer of TCP state-change events from the kernel.
    """

    @abstractmethod
    def enable(self):
        """Create and enable the instance"""

    @abstractmethod
    def open(self):
        """Open the instance ring buffer and return a line reader"""

    @abstractmethod
    def close(self):
        """Close the ring buffer opened by open()"""

    @abstractmethod
    def disable(self):
        """Remove the instance"""


class TraceFSTracingInstance(TracingInstance):
    """
    A uniquely named tracefs instance with the TCP state-change tracepoint
    enabled.
    """

    def __init__(self, mountpoint_retriever: MountpointRetriever,
                 tracepoint_deducer: TracepointDeducer,
                 uid_provider: UIDProvider):
        self.mountpoint_retriever = mountpoint_retriever
        self.tracepoint_deducer = tracepoint_deducer
        self.uid_provider = uid_provider

        self.state = InstanceState.UNINITIALIZED
        self.path: Optional[str] = None
        self.tracepoint_path: Optional[str] = None
        self.pipe: Optional[TracePipe] = None

        self.logger = logging.getLogger(__name__)

    def _require(self, step: str, *allowed: InstanceState):
        if self.state not in allowed:
            raise InvalidStateTransition(step, self.state)

    def enable(self):
        """
        Create the instance directory, enable the tracepoint within it and
        turn tracing on.

        Earlier steps are not undone on failure; call disable() to clean up.

        Raises:
            TracingInstanceError: A step failed, named in the message and
                chained from the underlying error
        """
        self._require("enabling tracing instance", InstanceState.UNINITIALIZED)

        try:
            mountpoint = self.mountpoint_retriever.retrieve_mountpoint()
        except TraceFSEventerError as e:
            raise TracingInstanceError("obtaining tracefs mountpoint", str(e)) from e

        try:
            tracepoint = self.tracepoint_deducer.deduce_tracepoint()
        except TraceFSEventerError as e:
            raise TracingInstanceError("getting tracepoint", str(e)) from e

        self.path = os.path.join(mountpoint, 'instances', self.uid_provider.uid())
        self.tracepoint_path = os.path.join(self.path, 'events', tracepoint)

        try:
            os.mkdir(self.path, 0o700)
            self.logger.info(f"Created tracing instance: {self.path}")
        except FileExistsError:
            # TODO: decide whether an existing instance should be an error, it may hide a UID collision
            self.logger.warning(f"Tracing instance already exists: {self.path}")
        except OSError as e:
            raise TracingInstanceError("making instance directory", str(e)) from e

        try:
            self._write_switch(os.path.join(self.tracepoint_path, 'enable'))
        except OSError as e:
            raise TracingInstanceError(f"enabling tracepoint {tracepoint!r}", str(e)) from e

        try:
            self._write_switch(os.path.join(self.path, 'tracing_on'))
        except OSError as e:
            raise TracingInstanceError("enabling tracing", str(e)) from e

        self.state = InstanceState.ENABLED
        self.logger.info(f"Enabled tracepoint {tracepoint} in {self.path}")

    @staticmethod
    def _write_switch(path: str):
        with open(path, 'w') as f:
            f.write(ENABLE_VALUE)

    def open(self) -> TracePipe:
        """
        Open the instance trace_pipe.

        Returns:
            TracePipe line reader

        Raises:
            TracingInstanceError: The pipe could not be opened
        """
        self._require("opening trace pipe", InstanceState.ENABLED)

        path = os.path.join(self.path, 'trace_pipe')
        try:
            fd = os.open(path, os.O_RDONLY)
        except OSError as e:
            raise TracingInstanceError("opening trace_pipe", str(e)) from e

        self.pipe = TracePipe(fd, path)
        self.state = InstanceState.OPENED
        self.logger.info(f"Opened trace pipe: {path}")
        return self.pipe

    def close(self):
        """
        Close the trace_pipe opened by open().

        Raises:
            TracingInstanceError: The pipe is not open, or closing it failed
        """
        self._require("closing trace pipe", InstanceState.OPENED)

        pipe, self.pipe = self.pipe, None
        self.state = InstanceState.CLOSED

        self.logger.info(f"Closing trace pipe: {pipe.name}")
        try:
            pipe.close()
        except OSError as e:
            raise TracingInstanceError("closing trace pipe", str(e)) from e

    def disable(self):
        """
        Remove the instance directory.

        Safe to call after a failed enable(). A directory that no longer
        exists is not an error.

        Raises:
            TracingInstanceError: Removal failed, or the pipe is still open
        """
        if self.state is InstanceState.DISABLED:
            return

        self._require("removing tracing instance",
                      InstanceState.UNINITIALIZED,
                      InstanceState.ENABLED,
                      InstanceState.CLOSED)

        if self.path is not None:
            self.logger.info(f"Removing tracing instance: {self.path}")
            try:
                self._remove_all(self.path)
            except OSError as e:
                raise TracingInstanceError("removing tracing instance", str(e)) from e

        self.state = InstanceState.DISABLED

    @staticmethod
    def _remove_all(path: str):
        """
        Remove path and anything below it.

        tracefs removes an instance and its contents with a single rmdir,
        whereas an ordinary directory must first be emptied.
        """
        try:
            os.rmdir(path)
        except FileNotFoundError:
            return
        except OSError as e:
            if e.errno not in (errno.ENOTEMPTY, errno.EEXIST):
                raise
            shutil.rmtree(path)
