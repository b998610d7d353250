# tracefs_eventer/collector/__init__.py - Event collection module
"""
Collector module for reading TCP state-change events from tracefs.

This module provides:
- event.py: Event model and canonical TCP states
- field_parser.py: Tokenizer for raw trace text
- mounts.py: tracefs mountpoint discovery
- uid_provider.py: Unique tracing instance names
- tracepoint_deducer.py: Selection of the kernel's TCP state-change tracepoint
- tracing_instance.py: tracefs instance lifecycle and trace_pipe reader
- event_parser.py: Conversion of trace lines into events
- eventer.py: Event stream over a tracing instance
"""
