# tracefs_eventer/collector/event.py - TCP state-change event model
"""
Structured representation of a TCP state-change event read from tracefs.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from ipaddress import IPv4Address, IPv6Address
from typing import Dict, Union


IPAddress = Union[IPv4Address, IPv6Address]


class TCPState(Enum):
    """
    Canonical TCP connection states, named as in RFC 793.
    """
    CLOSED = 'CLOSED'
    LISTEN = 'LISTEN'
    SYN_SENT = 'SYN-SENT'
    SYN_RECEIVED = 'SYN-RECEIVED'
    ESTABLISHED = 'ESTABLISHED'
    FIN_WAIT_1 = 'FIN-WAIT-1'
    FIN_WAIT_2 = 'FIN-WAIT-2'
    CLOSE_WAIT = 'CLOSE-WAIT'
    CLOSING = 'CLOSING'
    LAST_ACK = 'LAST-ACK'
    TIME_WAIT = 'TIME-WAIT'

    @classmethod
    def from_string(cls, state: str) -> 'TCPState':
        """
        Look up a state by its canonical name.

        Args:
            state: Canonical state name (e.g. 'FIN-WAIT-1')

        Returns:
            Matching TCPState

        Raises:
            ValueError: If the name is not a canonical state
        """
        return cls(state)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Event:
    """
    A single TCP state change, as observed by the kernel.
    """
    time: datetime
    command_on_cpu: str
    pid_on_cpu: int
    source_ip: IPAddress
    dest_ip: IPAddress
    source_port: int
    dest_port: int
    old_state: TCPState
    new_state: TCPState

    def to_dict(self) -> Dict:
        """Convert to a JSON-serialisable dictionary"""
        return {
            'time': self.time.isoformat(),
            'command_on_cpu': self.command_on_cpu,
            'pid_on_cpu': self.pid_on_cpu,
            'source_ip': str(self.source_ip),
            'dest_ip': str(self.dest_ip),
            'source_port': self.source_port,
            'dest_port': self.dest_port,
            'old_state': self.old_state.value,
            'new_state': self.new_state.value,
        }

    def __str__(self) -> str:
        return (f"{self.time.isoformat()} {self.command_on_cpu}[{self.pid_on_cpu}] "
                f"{self.source_ip}:{self.source_port} -> {self.dest_ip}:{self.dest_port} "
                f"{self.old_state} -> {self.new_state}")
