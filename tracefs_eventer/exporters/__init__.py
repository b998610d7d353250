# tracefs_eventer/exporters/__init__.py - Exporters module
"""
Exporters for outputting TCP state-change events.

This module provides:
- prometheus.py: Prometheus metrics exporter
- json_exporter.py: JSON lines exporter
- stdout.py: Console output exporter
"""
