# tracefs_eventer/exporters/prometheus.py - Prometheus metrics exporter
"""
Exports TCP state-change counts in Prometheus format.
Provides HTTP endpoint for Prometheus to scrape.
"""

from prometheus_client import Counter, Gauge, start_http_server, generate_latest, REGISTRY
from prometheus_client import CollectorRegistry
from typing import Optional
import logging

from tracefs_eventer.collector.event import Event, TCPState


class PrometheusExporter:
    """
    Exports state transition metrics to Prometheus.

    Exposes an HTTP endpoint that Prometheus can scrape for metrics.
    """

    def __init__(self, port: int = 9090, registry: Optional[CollectorRegistry] = None):
        """
        Initialize the Prometheus exporter.

        Args:
            port: Port to expose metrics on
            registry: Registry to register metrics in (default: global registry)
        """
        self.port = port
        self.registry = registry if registry is not None else REGISTRY
        self.logger = logging.getLogger(__name__)

        self.state_transitions = Counter(
            'tcp_audit_state_transitions_total',
            'Total number of TCP state transitions',
            ['old_state', 'new_state'],
            registry=self.registry
        )

        self.connections_established = Counter(
            'tcp_audit_connections_established_total',
            'Total number of TCP connections reaching ESTABLISHED',
            registry=self.registry
        )

        self.last_event_timestamp = Gauge(
            'tcp_audit_last_event_timestamp_seconds',
            'Time the last TCP state transition was parsed',
            registry=self.registry
        )

        self.logger.info(f"Prometheus exporter initialized on port {port}")

    def start(self):
        """
        Start the Prometheus HTTP server.
        """
        start_http_server(self.port, registry=self.registry)
        self.logger.info(f"Prometheus metrics available at http://localhost:{self.port}/metrics")

    def export(self, event: Event):
        """
        Record a state transition.

        Args:
            event: Event object
        """
        self.state_transitions.labels(
            old_state=event.old_state.value,
            new_state=event.new_state.value
        ).inc()

        if event.new_state is TCPState.ESTABLISHED:
            self.connections_established.inc()

        self.last_event_timestamp.set(event.time.timestamp())

    def get_metrics_text(self) -> str:
        """
        Get current metrics in Prometheus text format.

        Returns:
            Metrics as text
        """
        return generate_latest(self.registry).decode('utf-8')
