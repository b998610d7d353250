# tracefs_eventer/exporters/json_exporter.py - JSON lines exporter
"""
Writes TCP state-change events as JSON lines.
"""

import json
import sys
from pathlib import Path
from typing import Optional, TextIO
import logging

from tracefs_eventer.collector.event import Event


class JSONExporter:
    """
    Writes one JSON object per event, for further processing by other tools.
    """

    def __init__(self, output_file: Optional[str] = None, stream: Optional[TextIO] = None):
        """
        Initialize the JSON exporter.

        Args:
            output_file: File to append events to (default: stdout)
            stream: Already open text stream, used instead of output_file
        """
        self.logger = logging.getLogger(__name__)
        self.output_file = Path(output_file) if output_file else None
        self._owns_stream = False

        if stream is not None:
            self.stream = stream
        elif self.output_file:
            self.output_file.parent.mkdir(parents=True, exist_ok=True)
            self.stream = open(self.output_file, 'a', encoding='utf-8')
            self._owns_stream = True
            self.logger.info(f"Writing events to {self.output_file}")
        else:
            self.stream = sys.stdout

        self.events_written = 0

    def export(self, event: Event):
        """
        Write a single event.

        Args:
            event: Event object
        """
        self.stream.write(json.dumps(event.to_dict()) + '\n')
        self.stream.flush()
        self.events_written += 1

    def close(self):
        """Close the output file, if this exporter opened it"""
        if self._owns_stream:
            self.stream.close()
            self.logger.info(f"Wrote {self.events_written} events to {self.output_file}")
