# tests/test_event_parser.py - Tests for event parser module
"""
Unit tests for the TraceFSEventParser class and state canonicalisation.
"""

import pytest
from datetime import datetime, timezone
from ipaddress import IPv4Address, IPv6Address

from tracefs_eventer.collector.event import TCPState
from tracefs_eventer.collector.event_parser import (
    TraceFSEventParser,
    canonicalise_state,
    parse_command,
)
from tracefs_eventer.collector.field_parser import FieldCursor, SlicingFieldParser
from tracefs_eventer.errors import (
    EmptyField,
    FieldConversionError,
    IrrelevantEvent,
    MissingFieldError,
    ParseError,
    StateCanonicalisationError,
    UnexpectedEndOfInput,
    caused_by,
)

from fakes import FakeFieldParser


PREFIX = b"<idle>-0       [000] ..s.   995.318985: inet_sock_set_state: "

TAGS = [
    b"family=AF_INET",
    b"protocol=IPPROTO_TCP",
    b"sport=44406",
    b"dport=80",
    b"saddr=192.168.122.38",
    b"daddr=172.217.169.4",
    b"saddrv6=::ffff:192.168.122.38",
    b"daddrv6=::ffff:172.217.169.4",
    b"oldstate=TCP_SYN_SENT",
    b"newstate=TCP_ESTABLISHED",
]

VALID_LINE = PREFIX + b" ".join(TAGS)


def line_without(tag: bytes) -> bytes:
    return PREFIX + b" ".join(t for t in TAGS if not t.startswith(tag + b"="))


def line_with(tag: bytes, value: bytes) -> bytes:
    return PREFIX + b" ".join(
        tag + b"=" + value if t.startswith(tag + b"=") else t for t in TAGS)


@pytest.fixture
def parser():
    return TraceFSEventParser(SlicingFieldParser())


class TestTraceFSEventParser:
    """Test cases for TraceFSEventParser"""

    def test_parse(self, parser):
        """Test every field of a valid event"""
        before = datetime.now(timezone.utc)
        event = parser.to_event(VALID_LINE)
        after = datetime.now(timezone.utc)

        assert event.command_on_cpu == '<idle>'
        assert event.pid_on_cpu == 0
        assert event.source_ip == IPv4Address('192.168.122.38')
        assert event.dest_ip == IPv4Address('172.217.169.4')
        assert event.source_port == 44406
        assert event.dest_port == 80
        assert event.old_state is TCPState.SYN_SENT
        assert event.new_state is TCPState.ESTABLISHED
        assert before <= event.time <= after
        assert event.time.tzinfo == timezone.utc

    def test_parse_old_kernel_tracepoint(self, parser):
        """Test tcp_set_state lines without family and protocol tags"""
        line = (b"curl-4242  [001] .... 12.000001: tcp_set_state: sport=51000 dport=443 "
                b"saddr=10.0.0.1 daddr=10.0.0.2 saddrv6=::ffff:10.0.0.1 daddrv6=::ffff:10.0.0.2 "
                b"oldstate=TCP_ESTABLISHED newstate=TCP_FIN_WAIT1")

        event = parser.to_event(line)

        assert event.command_on_cpu == 'curl'
        assert event.pid_on_cpu == 4242
        assert event.old_state is TCPState.ESTABLISHED
        assert event.new_state is TCPState.FIN_WAIT_1

    def test_command_containing_dashes(self, parser):
        """Test the last dash before ': ' delimits the command"""
        line = b"   kworker-u8-2-117     [002] d.s.   1.5: " + VALID_LINE[len(PREFIX):]

        event = parser.to_event(line)

        assert event.command_on_cpu == 'kworker-u8-2'
        assert event.pid_on_cpu == 117

    def test_leading_padding_stripped(self, parser):
        """Test the right-aligned command column is unpadded"""
        line = b"          sshd-812     [003] ..s1   7.1: " + VALID_LINE[len(PREFIX):]

        assert parser.to_event(line).command_on_cpu == 'sshd'

    def test_ipv6_addresses(self, parser):
        """Test addresses are not restricted to IPv4"""
        event = parser.to_event(line_with(b"saddr", b"::1"))

        assert event.source_ip == IPv6Address('::1')

    def test_irrelevant_event_non_inet_family(self, parser):
        """Test non-AF_INET events are classified as irrelevant"""
        line = b"<idle>-0       [000] ..s.   995.318985: inet_sock_set_state: family=AF_UNIX"

        with pytest.raises(IrrelevantEvent):
            parser.to_event(line)

    def test_irrelevant_event_non_tcp_protocol(self, parser):
        """Test non-TCP events are classified as irrelevant"""
        line = (b"<idle>-0       [000] ..s.   995.318985: inet_sock_set_state: "
                b"family=AF_INET protocol=IPPROTO_FOO")

        with pytest.raises(IrrelevantEvent):
            parser.to_event(line)

    def test_irrelevant_event_is_not_parse_error(self, parser):
        """Test the irrelevant classification is distinct from malformed input"""
        with pytest.raises(IrrelevantEvent) as excinfo:
            parser.to_event(line_with(b"family", b"AF_INET6"))

        assert not isinstance(excinfo.value, ParseError)

    def test_no_command_separator(self, parser):
        """Test a line without the command-PID dash"""
        line = VALID_LINE.replace(b"<idle>-0", b"<idle>0", 1)

        with pytest.raises(ParseError) as excinfo:
            parser.to_event(line)

        assert caused_by(excinfo.value, UnexpectedEndOfInput)
        assert 'command' in str(excinfo.value)

    def test_no_colon_space_separator(self, parser):
        """Test a line without any ': '"""
        line = VALID_LINE.replace(b": ", b" ")

        with pytest.raises(ParseError) as excinfo:
            parser.to_event(line)

        assert caused_by(excinfo.value, UnexpectedEndOfInput)

    def test_no_pid_separator(self, parser):
        """Test a line ending straight after the PID"""
        with pytest.raises(ParseError) as excinfo:
            parser.to_event(b"<idle>-0: ")

        assert 'PID' in str(excinfo.value)

    def test_non_integer_pid(self, parser):
        """Test a PID that is not a number"""
        line = VALID_LINE.replace(b"<idle>-0", b"<idle>-foo", 1)

        with pytest.raises(FieldConversionError) as excinfo:
            parser.to_event(line)

        assert excinfo.value.field == 'pid'
        assert 'PID' in str(excinfo.value)

    @pytest.mark.parametrize('pid', [b"+5", b"1_000", "\u0663".encode("utf-8")])
    def test_pid_not_plain_decimal(self, parser, pid):
        """Test signs, underscores and non-ASCII digits are rejected in the PID"""
        line = VALID_LINE.replace(b"<idle>-0", b"<idle>-" + pid, 1)

        with pytest.raises(FieldConversionError) as excinfo:
            parser.to_event(line)

        assert excinfo.value.field == 'pid'

    def test_blank_command(self, parser):
        """Test a command made only of padding"""
        with pytest.raises(ParseError) as excinfo:
            parser.to_event(b"   -0 [000] ..s. 1.0: " + VALID_LINE[len(PREFIX):])

        assert caused_by(excinfo.value, EmptyField)

    def test_missing_metadata(self, parser):
        """Test a line that stops after the metadata block"""
        with pytest.raises(ParseError) as excinfo:
            parser.to_event(b"<idle>-0       [000] ..s.   995.318985: ")

        assert 'tracepoint' in str(excinfo.value)

    def test_malformed_tagged_fields(self, parser):
        """Test a tag with no value"""
        with pytest.raises(ParseError) as excinfo:
            parser.to_event(PREFIX + b"family=AF_INET sport")

        assert 'tagged fields' in str(excinfo.value)

    @pytest.mark.parametrize('tag, description', [
        (b'sport', 'source port'),
        (b'dport', 'destination port'),
        (b'saddr', 'source address'),
        (b'daddr', 'destination address'),
        (b'oldstate', 'old state'),
        (b'newstate', 'new state'),
    ])
    def test_missing_tag(self, parser, tag, description):
        """Test each mandatory tag is reported by name when absent"""
        with pytest.raises(MissingFieldError) as excinfo:
            parser.to_event(line_without(tag))

        assert excinfo.value.field == tag.decode()
        assert description in str(excinfo.value)

    @pytest.mark.parametrize('tag, value, description', [
        (b'sport', b'foo', 'source port'),
        (b'sport', b'65536', 'source port'),
        (b'sport', b'-1', 'source port'),
        (b'dport', b'+80', 'destination port'),
        (b'saddr', b'192.168.122', 'source address'),
        (b'daddr', b'not-an-ip', 'destination address'),
    ])
    def test_malformed_tag(self, parser, tag, value, description):
        """Test each converted tag is reported by name when malformed"""
        with pytest.raises(FieldConversionError) as excinfo:
            parser.to_event(line_with(tag, value))

        assert excinfo.value.field == tag.decode()
        assert description in str(excinfo.value)

    def test_max_port(self, parser):
        """Test the largest 16-bit port is accepted"""
        assert parser.to_event(line_with(b'sport', b'65535')).source_port == 65535

    @pytest.mark.parametrize('tag, which', [
        (b'oldstate', 'old'),
        (b'newstate', 'new'),
    ])
    def test_unknown_state(self, parser, tag, which):
        """Test unrecognised states name the old or new state"""
        with pytest.raises(StateCanonicalisationError) as excinfo:
            parser.to_event(line_with(tag, b'FOO_BAR'))

        assert excinfo.value.which == which
        assert f"{which} state" in str(excinfo.value)

    def test_field_parser_error_propagated(self):
        """Test errors from the field parser are wrapped with context"""
        parser = TraceFSEventParser(FakeFieldParser(error=EmptyField()))

        with pytest.raises(ParseError) as excinfo:
            parser.to_event(VALID_LINE)

        assert caused_by(excinfo.value, EmptyField)
        assert 'PID' in str(excinfo.value)

    def test_fields_from_field_parser(self):
        """Test the event is built from the fields the field parser returns"""
        field_parser = FakeFieldParser(
            fields=['4242', '[000] ..s. 1.0', 'inet_sock_set_state'],
            tagged_fields={
                'sport': '1', 'dport': '2', 'saddr': '10.0.0.1', 'daddr': '10.0.0.2',
                'oldstate': 'TCP_LISTEN', 'newstate': 'TCP_SYN_RECV',
            })
        parser = TraceFSEventParser(field_parser)

        event = parser.to_event(b"nginx-4242 [000] ..s. 1.0: ")

        assert event.command_on_cpu == 'nginx'
        assert event.pid_on_cpu == 4242
        assert event.source_port == 1
        assert event.dest_port == 2
        assert event.old_state is TCPState.LISTEN
        assert event.new_state is TCPState.SYN_RECEIVED


class TestCanonicaliseState:
    """Test cases for canonicalise_state"""

    @pytest.mark.parametrize('kernel_state, state', [
        ('TCP_ESTABLISHED', TCPState.ESTABLISHED),
        ('TCP_SYN_SENT', TCPState.SYN_SENT),
        ('TCP_SYN_RECV', TCPState.SYN_RECEIVED),
        ('TCP_FIN_WAIT1', TCPState.FIN_WAIT_1),
        ('TCP_FIN_WAIT2', TCPState.FIN_WAIT_2),
        ('TCP_TIME_WAIT', TCPState.TIME_WAIT),
        ('TCP_CLOSE', TCPState.CLOSED),
        ('TCP_CLOSE_WAIT', TCPState.CLOSE_WAIT),
        ('TCP_LAST_ACK', TCPState.LAST_ACK),
        ('TCP_LISTEN', TCPState.LISTEN),
        ('TCP_CLOSING', TCPState.CLOSING),
    ])
    def test_kernel_states(self, kernel_state, state):
        """Test every kernel state maps to its canonical state"""
        assert canonicalise_state(kernel_state) is state

    def test_unmapped_state(self):
        """Test a mnemonic with no canonical equivalent"""
        with pytest.raises(ValueError):
            canonicalise_state('FOO_BAR')

    def test_new_syn_recv_unmapped(self):
        """Test the kernel-internal request socket state is not a TCP state"""
        with pytest.raises(ValueError):
            canonicalise_state('TCP_NEW_SYN_RECV')


class TestParseCommand:
    """Test cases for parse_command"""

    def test_cursor_advanced_past_dash(self):
        """Test the PID is left at the front of the cursor"""
        cursor = FieldCursor(b"  my-cmd-99 [000]: x")

        assert parse_command(cursor) == 'my-cmd'
        assert cursor.remaining() == b"99 [000]: x"

    def test_dash_at_start(self):
        """Test a line whose only dash is the first byte"""
        with pytest.raises(UnexpectedEndOfInput):
            parse_command(FieldCursor(b"-0 [000]: x"))

    def test_dash_only_after_colon(self):
        """Test dashes after the first ': ' are ignored"""
        with pytest.raises(UnexpectedEndOfInput):
            parse_command(FieldCursor(b"idle0: state=FIN-WAIT"))
