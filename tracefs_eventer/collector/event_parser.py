# tracefs_eventer/collector/event_parser.py - trace_pipe line parsing
"""
Converts a raw trace_pipe line into a TCP state-change Event.

A line from inet_sock_set_state looks like:

    <idle>-0       [000] ..s.   995.318985: inet_sock_set_state: family=AF_INET
        protocol=IPPROTO_TCP sport=44406 dport=80 saddr=192.168.122.38
        daddr=172.217.169.4 saddrv6=::ffff:192.168.122.38
        daddrv6=::ffff:172.217.169.4 oldstate=TCP_SYN_SENT newstate=TCP_ESTABLISHED

tcp_set_state lines on older kernels carry the same fields minus family and
protocol.
"""

import ipaddress
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Union

from tracefs_eventer.collector.event import Event, IPAddress, TCPState
from tracefs_eventer.collector.field_parser import (
    COLON_SPACE,
    SPACE,
    FieldCursor,
    FieldParser,
    decode,
)
from tracefs_eventer.errors import (
    EmptyField,
    FieldConversionError,
    IrrelevantEvent,
    MissingFieldError,
    ParseError,
    StateCanonicalisationError,
    UnexpectedEndOfInput,
)


FAMILY_INET = 'AF_INET'
PROTOCOL_TCP = 'IPPROTO_TCP'

# Kernel state names that do not canonicalise by the generic rule
STATE_EXCEPTIONS = {
    'TCP_CLOSE': 'CLOSED',
    'TCP_FIN_WAIT1': 'FIN-WAIT-1',
    'TCP_FIN_WAIT2': 'FIN-WAIT-2',
    'TCP_SYN_RECV': 'SYN-RECEIVED',
}


class EventParser(ABC):
    """Converts a raw trace line into an Event"""

    @abstractmethod
    def to_event(self, line: Union[bytes, bytearray]) -> Event:
        """
        Return the Event described by line.

        Raises:
            IrrelevantEvent: The line is not a TCP/IPv4 event
            ParseError: The line is malformed
        """


def canonicalise_state(state: str) -> TCPState:
    """
    Map a kernel TCP state mnemonic to its canonical state.

    Args:
        state: Kernel mnemonic, e.g. 'TCP_SYN_SENT'

    Returns:
        Canonical TCPState, e.g. TCPState.SYN_SENT

    Raises:
        ValueError: The mnemonic has no canonical equivalent
    """
    canonical = STATE_EXCEPTIONS.get(state)
    if canonical is None:
        if state.startswith('TCP_'):
            state = state[len('TCP_'):]
        canonical = state.replace('_', '-')

    return TCPState.from_string(canonical)


def parse_command(cursor: FieldCursor) -> str:
    """
    Extract the command from the start of a trace line.

    The command and PID are joined by a dash, but the command may itself
    contain dashes, so the delimiter is the last dash before the first ': '.
    The kernel right-aligns this column, so leading spaces are removed.

    Args:
        cursor: Cursor at the start of the line, advanced past the dash

    Returns:
        Command name

    Raises:
        UnexpectedEndOfInput: No ': ' or no dash before it
        EmptyField: The command is blank
    """
    colon = cursor.find(COLON_SPACE)
    if colon == -1:
        raise UnexpectedEndOfInput("no ': ' separator in line")

    dash = cursor.data.rfind(b'-', cursor.pos, colon)
    if dash <= cursor.pos:
        raise UnexpectedEndOfInput("no command delimiter before ': '")

    command = cursor.take(dash, 1).lstrip(b' ')
    if not command:
        raise EmptyField("empty command")

    return decode(command)


def _parse_port(tags: Dict[str, str], tag: str, description: str) -> int:
    value = _require_tag(tags, tag, description)
    if not (value.isascii() and value.isdigit()) or int(value) > 0xFFFF:
        raise FieldConversionError(tag, f"{description} to integer", value)
    return int(value)


def _parse_address(tags: Dict[str, str], tag: str, description: str) -> IPAddress:
    value = _require_tag(tags, tag, description)
    try:
        return ipaddress.ip_address(value)
    except ValueError as e:
        raise FieldConversionError(tag, description, value) from e


def _parse_state(tags: Dict[str, str], tag: str, which: str) -> TCPState:
    value = _require_tag(tags, tag, f"{which} state")
    try:
        return canonicalise_state(value)
    except ValueError as e:
        raise StateCanonicalisationError(which, value) from e


def _require_tag(tags: Dict[str, str], tag: str, description: str) -> str:
    try:
        return tags[tag]
    except KeyError:
        raise MissingFieldError(tag, description) from None


class TraceFSEventParser(EventParser):
    """
    Parser for tracefs inet_sock_set_state and tcp_set_state lines.
    """

    def __init__(self, field_parser: FieldParser):
        self.field_parser = field_parser

    def to_event(self, line: Union[bytes, bytearray]) -> Event:
        """
        Create an Event from a raw trace line.

        The event time is the time of parsing, not the trace timestamp.

        Args:
            line: Raw trace line without the trailing newline

        Returns:
            Parsed Event

        Raises:
            IrrelevantEvent: The family or protocol tag is present and is not
                AF_INET / IPPROTO_TCP
            ParseError: The line is malformed; the message names the field
        """
        time = datetime.now(timezone.utc)
        cursor = FieldCursor(line)

        try:
            command = parse_command(cursor)
        except ParseError as e:
            raise ParseError(f"parsing command from event: {e}") from e

        try:
            pid_str, _ = self.field_parser.next_field(cursor, SPACE, True)
        except ParseError as e:
            raise ParseError(f"parsing PID from event: {e}") from e
        if not (pid_str.isascii() and pid_str.isdigit()):
            raise FieldConversionError('pid', "PID to integer", pid_str)
        pid = int(pid_str)

        try:
            self.field_parser.next_field(cursor, COLON_SPACE, True)
        except ParseError as e:
            raise ParseError(f"skipping metadata from event: {e}") from e

        try:
            self.field_parser.next_field(cursor, COLON_SPACE, True)
        except ParseError as e:
            raise ParseError(f"skipping tracepoint from event: {e}") from e

        try:
            tags = self.field_parser.get_tagged_fields(cursor)
        except ParseError as e:
            raise ParseError(f"parsing tagged fields: {e}") from e

        # family and protocol are absent from tcp_set_state
        family = tags.get('family')
        if family is not None and family != FAMILY_INET:
            raise IrrelevantEvent(f"irrelevant event: family {family}")

        protocol = tags.get('protocol')
        if protocol is not None and protocol != PROTOCOL_TCP:
            raise IrrelevantEvent(f"irrelevant event: protocol {protocol}")

        source_port = _parse_port(tags, 'sport', "source port")
        dest_port = _parse_port(tags, 'dport', "destination port")
        source_ip = _parse_address(tags, 'saddr', "source address")
        dest_ip = _parse_address(tags, 'daddr', "destination address")
        old_state = _parse_state(tags, 'oldstate', 'old')
        new_state = _parse_state(tags, 'newstate', 'new')

        return Event(
            time=time,
            command_on_cpu=command,
            pid_on_cpu=pid,
            source_ip=source_ip,
            dest_ip=dest_ip,
            source_port=source_port,
            dest_port=dest_port,
            old_state=old_state,
            new_state=new_state,
        )
