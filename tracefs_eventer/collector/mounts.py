# tracefs_eventer/collector/mounts.py - tracefs mountpoint discovery
"""
Locates the tracefs mountpoint by scanning the kernel's mount table.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import BinaryIO, Iterable, Optional

from tracefs_eventer.collector.field_parser import FieldCursor, FieldParser, SPACE
from tracefs_eventer.errors import MountpointNotFound, ParseError


TRACEFS = 'tracefs'
PROC_MOUNTS = '/proc/mounts'

# tracefs is automounted on first access to one of these
AUTOMOUNT_PATHS = ('/sys/kernel/debug/tracing', '/sys/kernel/tracing')


class MountsParser(ABC):
    """Finds the first mountpoint of a filesystem type in a mount table"""

    @abstractmethod
    def get_first_mountpoint(self, reader: BinaryIO, fs_type: str) -> str:
        """Return the mountpoint of the first entry for fs_type"""


class ProcMountsMountsParser(MountsParser):
    """
    Parses a mount table in /proc/mounts format.

    For virtual filesystems the device column holds the filesystem name, so
    only the first two columns are read.
    """

    def __init__(self, field_parser: FieldParser):
        self.field_parser = field_parser

    def get_first_mountpoint(self, reader: BinaryIO, fs_type: str) -> str:
        """
        Scan the mount table for the first entry whose device is fs_type.

        Args:
            reader: Binary stream in /proc/mounts format
            fs_type: Filesystem (device) name to look for

        Returns:
            Mountpoint path

        Raises:
            MountpointNotFound: Reading failed, a line was malformed, or no
                entry matched
        """
        try:
            for line in reader:
                cursor = FieldCursor(line.rstrip(b'\n'))
                if not cursor:
                    continue

                try:
                    device, _ = self.field_parser.next_field(cursor, SPACE, True)
                except ParseError as e:
                    raise MountpointNotFound("getting device from mount") from e

                if device != fs_type:
                    continue

                try:
                    mountpoint, _ = self.field_parser.next_field(cursor, SPACE, True)
                except ParseError as e:
                    raise MountpointNotFound("getting mountpoint from mount") from e

                return mountpoint

        except OSError as e:
            raise MountpointNotFound(f"scanning mounts for {fs_type} mountpoint") from e

        raise MountpointNotFound(f"{fs_type} not mounted")


class MountpointRetriever(ABC):
    """Source of the tracefs mountpoint"""

    @abstractmethod
    def retrieve_mountpoint(self) -> str:
        """Return the tracefs mountpoint"""


class ProcFSMountpointRetriever(MountpointRetriever):
    """
    Retrieves the tracefs mountpoint from /proc/mounts.
    """

    def __init__(self, mounts_parser: MountsParser,
                 mounts_file: str = PROC_MOUNTS,
                 automount_paths: Iterable[str] = AUTOMOUNT_PATHS):
        self.mounts_parser = mounts_parser
        self.mounts_file = mounts_file
        self.automount_paths = list(automount_paths)

        self.mountpoint: Optional[str] = None
        self.logger = logging.getLogger(__name__)

    def retrieve_mountpoint(self) -> str:
        """
        Retrieve the tracefs mountpoint, caching it after the first lookup.

        Returns:
            Mountpoint path

        Raises:
            MountpointNotFound: The mount table could not be read or holds
                no tracefs entry
        """
        if self.mountpoint:
            return self.mountpoint

        self._poke_automount_paths()

        try:
            with open(self.mounts_file, 'rb') as mounts:
                mountpoint = self.mounts_parser.get_first_mountpoint(mounts, TRACEFS)
        except OSError as e:
            raise MountpointNotFound(f"opening mounts file {self.mounts_file}") from e

        self.logger.info(f"Found tracefs mounted at {mountpoint}")
        self.mountpoint = mountpoint
        return mountpoint

    def _poke_automount_paths(self):
        """
        Open the likely tracefs locations so the kernel mounts it.

        stat() does not trigger an automount, opening the directory does.
        """
        for path in self.automount_paths:
            try:
                os.close(os.open(path, os.O_RDONLY | os.O_DIRECTORY))
                return
            except OSError as e:
                self.logger.debug(f"Automount path {path} not accessible: {e}")


class StaticMountpointRetriever(MountpointRetriever):
    """Returns a fixed, configured mountpoint"""

    def __init__(self, mountpoint: str):
        self.mountpoint = mountpoint

    def retrieve_mountpoint(self) -> str:
        return self.mountpoint
