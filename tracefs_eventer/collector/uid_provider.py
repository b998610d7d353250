# tracefs_eventer/collector/uid_provider.py - Unique instance names
"""
Provides unique names for tracefs instances.
"""

import uuid
from abc import ABC, abstractmethod


DEFAULT_PREFIX = 'tcp-audit-'


class UIDProvider(ABC):
    """Source of unique strings"""

    @abstractmethod
    def uid(self) -> str:
        """Return a new unique string"""


class UUIDProvider(UIDProvider):
    """
    Provides random UUIDs with a fixed prefix, so that instances created by
    this tool are recognisable in the instances directory.
    """

    def __init__(self, prefix: str = DEFAULT_PREFIX):
        self.prefix = prefix

    def uid(self) -> str:
        return f"{self.prefix}{uuid.uuid4()}"
