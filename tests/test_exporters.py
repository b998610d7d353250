# tests/test_exporters.py - Tests for exporters
"""
Unit tests for the stdout, JSON and Prometheus exporters.
"""

import io
import json
from unittest.mock import patch

from colorama import Fore
from prometheus_client import CollectorRegistry

from tracefs_eventer.collector.event import TCPState
from tracefs_eventer.exporters.json_exporter import JSONExporter
from tracefs_eventer.exporters.prometheus import PrometheusExporter
from tracefs_eventer.exporters.stdout import StdoutExporter

from fakes import make_event


class TestStdoutExporter:
    """Test cases for StdoutExporter"""

    def test_format_event(self):
        """Test every field appears in the formatted line"""
        line = StdoutExporter(use_colors=False).format_event(make_event())

        assert 'curl' in line
        assert 'PID=4242' in line
        assert '192.168.122.38:51234' in line
        assert '93.184.216.34:443' in line
        assert 'SYN-SENT -> ESTABLISHED' in line
        assert '\x1b[' not in line

    def test_colors(self):
        """Test the line is colored by the new state"""
        exporter = StdoutExporter(use_colors=True)

        line = exporter.format_event(make_event(old_state=TCPState.LAST_ACK,
                                                new_state=TCPState.CLOSED))

        assert line.startswith(Fore.RED)

    def test_export(self, capsys):
        """Test events are printed one per line"""
        exporter = StdoutExporter(use_colors=False)

        exporter.export(make_event())
        exporter.export(make_event(dest_port=80))

        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 2
        assert '93.184.216.34:80' in lines[1]

    def test_print_stats(self, capsys):
        """Test statistics are printed"""
        StdoutExporter().print_stats({'events_returned': 12, 'parse_errors': 3})

        out = capsys.readouterr().out
        assert '12' in out
        assert 'Parse errors' in out


class TestJSONExporter:
    """Test cases for JSONExporter"""

    def test_export(self):
        """Test each event is written as one JSON object"""
        stream = io.StringIO()
        exporter = JSONExporter(stream=stream)

        exporter.export(make_event())
        exporter.export(make_event(new_state=TCPState.FIN_WAIT_1))

        lines = stream.getvalue().splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first == {
            'time': '2021-09-22T15:30:12+00:00',
            'command_on_cpu': 'curl',
            'pid_on_cpu': 4242,
            'source_ip': '192.168.122.38',
            'dest_ip': '93.184.216.34',
            'source_port': 51234,
            'dest_port': 443,
            'old_state': 'SYN-SENT',
            'new_state': 'ESTABLISHED',
        }
        assert json.loads(lines[1])['new_state'] == 'FIN-WAIT-1'
        assert exporter.events_written == 2

    def test_output_file(self, tmp_path):
        """Test events are appended to the output file"""
        output_file = tmp_path / 'out' / 'events.jsonl'
        exporter = JSONExporter(str(output_file))

        exporter.export(make_event())
        exporter.close()

        assert json.loads(output_file.read_text())['dest_port'] == 443

    def test_close_leaves_borrowed_stream_open(self):
        """Test a stream passed in is not closed"""
        stream = io.StringIO()
        exporter = JSONExporter(stream=stream)

        exporter.close()

        assert not stream.closed


class TestPrometheusExporter:
    """Test cases for PrometheusExporter"""

    def test_export(self):
        """Test transitions are counted by state pair"""
        exporter = PrometheusExporter(registry=CollectorRegistry())

        exporter.export(make_event())
        exporter.export(make_event())
        exporter.export(make_event(old_state=TCPState.ESTABLISHED,
                                   new_state=TCPState.FIN_WAIT_1))

        registry = exporter.registry
        assert registry.get_sample_value(
            'tcp_audit_state_transitions_total',
            {'old_state': 'SYN-SENT', 'new_state': 'ESTABLISHED'}) == 2
        assert registry.get_sample_value(
            'tcp_audit_state_transitions_total',
            {'old_state': 'ESTABLISHED', 'new_state': 'FIN-WAIT-1'}) == 1
        assert registry.get_sample_value('tcp_audit_connections_established_total') == 2
        assert registry.get_sample_value(
            'tcp_audit_last_event_timestamp_seconds') == make_event().time.timestamp()

    def test_start(self):
        """Test the HTTP server is started on the configured port"""
        registry = CollectorRegistry()
        exporter = PrometheusExporter(port=9123, registry=registry)

        with patch('tracefs_eventer.exporters.prometheus.start_http_server') as mock_start:
            exporter.start()

        mock_start.assert_called_once_with(9123, registry=registry)

    def test_metrics_text(self):
        """Test metrics are rendered in the exposition format"""
        exporter = PrometheusExporter(registry=CollectorRegistry())
        exporter.export(make_event())

        text = exporter.get_metrics_text()

        assert 'tcp_audit_state_transitions_total{' in text
        assert 'new_state="ESTABLISHED"' in text
