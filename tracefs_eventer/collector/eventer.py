# tracefs_eventer/collector/eventer.py - Event stream over a tracing instance
"""
Produces a stream of TCP state-change events from a tracefs instance.

event() is meant to be called from a single reading thread. close() may be
called from any other thread, including while event() is blocked reading the
ring buffer; the blocked call then raises EventerClosed.
"""

import logging
import threading
from typing import Dict, Iterator, Optional

from tracefs_eventer.collector.event import Event
from tracefs_eventer.collector.event_parser import EventParser, TraceFSEventParser
from tracefs_eventer.collector.field_parser import SlicingFieldParser
from tracefs_eventer.collector.mounts import (
    MountpointRetriever,
    ProcFSMountpointRetriever,
    ProcMountsMountsParser,
    StaticMountpointRetriever,
)
from tracefs_eventer.collector.tracepoint_deducer import TraceFSTracepointDeducer
from tracefs_eventer.collector.tracing_instance import TraceFSTracingInstance, TracingInstance
from tracefs_eventer.collector.uid_provider import UUIDProvider
from tracefs_eventer.errors import (
    EventerClosed,
    IrrelevantEvent,
    ParseError,
    TraceFSEventerError,
    UnexpectedEndOfStream,
)


class Eventer:
    """
    Reads trace lines from a tracing instance and parses them into Events.

    Construction enables and opens the tracing instance; close() closes and
    removes it.
    """

    def __init__(self, tracing_instance: TracingInstance, event_parser: EventParser):
        """
        Initialize the Eventer.

        Args:
            tracing_instance: Instance to enable and read from
            event_parser: Parser for raw trace lines

        Raises:
            TraceFSEventerError: Enabling or opening the instance failed. The
                instance has been disabled.
        """
        self.tracing_instance = tracing_instance
        self.event_parser = event_parser
        self.logger = logging.getLogger(__name__)

        self.events_returned = 0
        self.irrelevant_skipped = 0
        self.empty_skipped = 0
        self.parse_errors = 0

        self._lock = threading.Lock()
        self._closed = False

        try:
            tracing_instance.enable()
        except TraceFSEventerError as e:
            self._disable_after_failure()
            raise TraceFSEventerError(f"enabling tracing instance: {e}") from e

        try:
            self._reader = tracing_instance.open()
        except TraceFSEventerError as e:
            self._disable_after_failure()
            raise TraceFSEventerError(f"opening tracing instance: {e}") from e

    def _disable_after_failure(self):
        try:
            self.tracing_instance.disable()
        except TraceFSEventerError as e:
            self.logger.warning(f"Failed to clean up tracing instance: {e}")

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def event(self) -> Event:
        """
        Block until the next TCP state-change event is available.

        Empty lines and events for other address families or protocols are
        skipped.

        Returns:
            Next Event

        Raises:
            EventerClosed: close() was called before or during the read
            UnexpectedEndOfStream: The ring buffer returned EOF
            TraceFSEventerError: Reading failed, or a line could not be parsed
        """
        if self.closed:
            raise EventerClosed()

        while True:
            try:
                line = self._reader.readline()
            except (OSError, ValueError) as e:
                # Closing the pipe is how close() interrupts a blocked read
                if self.closed:
                    raise EventerClosed() from e
                raise TraceFSEventerError(f"reading trace pipe for event: {e}") from e

            if not line:
                raise UnexpectedEndOfStream()

            line = line.rstrip(b'\r\n')
            if not line:
                self.empty_skipped += 1
                continue

            try:
                event = self.event_parser.to_event(line)
            except IrrelevantEvent:
                self.irrelevant_skipped += 1
                self.logger.debug(f"Skipping irrelevant event: {line!r}")
                continue
            except ParseError as e:
                self.parse_errors += 1
                raise ParseError(f"creating event from trace pipe: {e}") from e

            self.events_returned += 1
            return event

    def close(self):
        """
        Close the ring buffer and remove the tracing instance.

        Calls after the first are no-ops.

        Raises:
            TraceFSEventerError: Closing or removing the instance failed
        """
        with self._lock:
            if self._closed:
                return
            # event() stops reading once this is set
            self._closed = True

        close_error: Optional[TraceFSEventerError] = None
        try:
            self.tracing_instance.close()
        except TraceFSEventerError as e:
            close_error = e

        try:
            self.tracing_instance.disable()
        except TraceFSEventerError as e:
            message = f"cleaning-up tracing instance: {e}"
            if close_error is not None:
                message += f" (after closing event trace pipe failed: {close_error})"
            raise TraceFSEventerError(message) from e

        if close_error is not None:
            raise TraceFSEventerError(f"closing event trace pipe: {close_error}") from close_error

    def get_stats(self) -> Dict:
        """
        Get eventer statistics.

        Returns:
            Dictionary with line processing counters
        """
        return {
            'events_returned': self.events_returned,
            'irrelevant_skipped': self.irrelevant_skipped,
            'empty_skipped': self.empty_skipped,
            'parse_errors': self.parse_errors,
        }

    def __iter__(self) -> Iterator[Event]:
        while True:
            try:
                yield self.event()
            except EventerClosed:
                return

    def __enter__(self) -> 'Eventer':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def build_mountpoint_retriever(config) -> MountpointRetriever:
    """
    Build the mountpoint retriever described by the configuration.

    Args:
        config: Config instance

    Returns:
        StaticMountpointRetriever if tracefs.mountpoint is set, otherwise a
        ProcFSMountpointRetriever
    """
    mountpoint = config.get('tracefs.mountpoint')
    if mountpoint:
        return StaticMountpointRetriever(mountpoint)

    return ProcFSMountpointRetriever(
        ProcMountsMountsParser(SlicingFieldParser()),
        mounts_file=config.get('tracefs.mounts_file'),
        automount_paths=config.get('tracefs.automount_paths', []),
    )


def new_eventer(config) -> Eventer:
    """
    Create an Eventer reading from a new tracefs instance.

    Args:
        config: Config instance

    Returns:
        Enabled and opened Eventer
    """
    field_parser = SlicingFieldParser()
    mountpoint_retriever = build_mountpoint_retriever(config)
    tracing_instance = TraceFSTracingInstance(
        mountpoint_retriever,
        TraceFSTracepointDeducer(mountpoint_retriever),
        UUIDProvider(config.get('instance.prefix')),
    )

    return Eventer(tracing_instance, TraceFSEventParser(field_parser))
