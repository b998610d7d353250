# tracefs_eventer/__init__.py - TCP state-change eventer for tracefs
"""
Reads TCP state changes from the kernel's tracefs tracing facility and
converts them into structured events.
"""

from tracefs_eventer.collector.event import Event, TCPState
from tracefs_eventer.collector.eventer import Eventer, new_eventer
from tracefs_eventer.errors import EventerClosed, IrrelevantEvent, TraceFSEventerError

__version__ = '0.1.0'

__all__ = [
    'Event',
    'TCPState',
    'Eventer',
    'new_eventer',
    'EventerClosed',
    'IrrelevantEvent',
    'TraceFSEventerError',
]
