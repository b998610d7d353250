# tracefs_eventer/collector/tracepoint_deducer.py - Tracepoint selection
"""
Chooses which TCP state-change tracepoint to enable.

Kernels 4.16+ expose sock/inet_sock_set_state. Older kernels expose the same
event as tcp/tcp_set_state, without the family and protocol fields.
"""

import logging
import os
from abc import ABC, abstractmethod

from tracefs_eventer.collector.mounts import MountpointRetriever
from tracefs_eventer.errors import TraceFSEventerError, TracepointUnavailable


INET_SOCK_SET_STATE = 'sock/inet_sock_set_state'
TCP_SET_STATE = 'tcp/tcp_set_state'

# Newest first
TRACEPOINTS = (INET_SOCK_SET_STATE, TCP_SET_STATE)


class TracepointDeducer(ABC):
    """Decides which tracepoint the running kernel supports"""

    @abstractmethod
    def deduce_tracepoint(self) -> str:
        """Return the tracepoint path relative to the events directory"""


class TraceFSTracepointDeducer(TracepointDeducer):
    """
    Deduces the tracepoint from what exists in the tracefs events directory.
    """

    def __init__(self, mountpoint_retriever: MountpointRetriever):
        self.mountpoint_retriever = mountpoint_retriever
        self.logger = logging.getLogger(__name__)

    def deduce_tracepoint(self) -> str:
        """
        Return the newest supported tracepoint present in the kernel.

        Returns:
            Tracepoint, e.g. 'sock/inet_sock_set_state'

        Raises:
            TracepointUnavailable: No supported tracepoint exists
            TraceFSEventerError: The mountpoint could not be retrieved, or
                probing failed for a reason other than non-existence
        """
        try:
            mountpoint = self.mountpoint_retriever.retrieve_mountpoint()
        except TraceFSEventerError as e:
            raise TraceFSEventerError("obtaining tracefs mountpoint") from e

        for tracepoint in TRACEPOINTS:
            path = os.path.join(mountpoint, 'events', tracepoint)
            try:
                os.stat(path)
            except FileNotFoundError:
                self.logger.debug(f"Tracepoint {tracepoint} not present")
                continue
            except OSError as e:
                raise TraceFSEventerError(
                    f"checking if {os.path.basename(tracepoint)} event present") from e

            self.logger.info(f"Using tracepoint {tracepoint}")
            return tracepoint

        raise TracepointUnavailable()
