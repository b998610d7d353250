# tracefs_eventer/exporters/stdout.py - Console output exporter
"""
Writes TCP state-change events to stdout in human-readable format.
"""

from typing import Dict
from colorama import Fore, Style, init
import logging

from tracefs_eventer.collector.event import Event, TCPState


# Initialize colorama
init(autoreset=True)


class StdoutExporter:
    """
    Writes events to stdout with colored output.

    Connections being opened are green, connections being torn down are
    yellow, and transitions into CLOSED are red.
    """

    STATE_COLORS = {
        TCPState.SYN_SENT: Fore.GREEN,
        TCPState.SYN_RECEIVED: Fore.GREEN,
        TCPState.ESTABLISHED: Fore.GREEN + Style.BRIGHT,
        TCPState.LISTEN: Fore.CYAN,
        TCPState.FIN_WAIT_1: Fore.YELLOW,
        TCPState.FIN_WAIT_2: Fore.YELLOW,
        TCPState.CLOSE_WAIT: Fore.YELLOW,
        TCPState.CLOSING: Fore.YELLOW,
        TCPState.LAST_ACK: Fore.YELLOW,
        TCPState.TIME_WAIT: Fore.YELLOW,
        TCPState.CLOSED: Fore.RED,
    }

    def __init__(self, use_colors: bool = True):
        """
        Initialize the stdout exporter.

        Args:
            use_colors: Whether to use colored output
        """
        self.use_colors = use_colors
        self.logger = logging.getLogger(__name__)

    def format_event(self, event: Event) -> str:
        """
        Format a single event as one line.

        Args:
            event: Event object

        Returns:
            Formatted line
        """
        line = (f"{event.time.strftime('%H:%M:%S.%f')} "
                f"{event.command_on_cpu[:16]:16} PID={event.pid_on_cpu:<7} "
                f"{str(event.source_ip) + ':' + str(event.source_port):>22} -> "
                f"{str(event.dest_ip) + ':' + str(event.dest_port):<22} "
                f"{event.old_state.value:>12} -> {event.new_state.value}")

        if not self.use_colors:
            return line

        color = self.STATE_COLORS.get(event.new_state, '')
        return f"{color}{line}{Style.RESET_ALL}"

    def export(self, event: Event):
        """
        Print a single event to stdout.

        Args:
            event: Event object
        """
        print(self.format_event(event), flush=True)

    def print_stats(self, stats: Dict):
        """
        Print eventer statistics.

        Args:
            stats: Dictionary from Eventer.get_stats()
        """
        print(f"\n{Fore.CYAN}{'='*60}{Style.RESET_ALL}")
        print(f"{Fore.CYAN}Summary{Style.RESET_ALL}")
        print(f"{Fore.CYAN}{'='*60}{Style.RESET_ALL}")
        print(f"  Events:              {stats.get('events_returned', 0)}")
        print(f"  Irrelevant skipped:  {stats.get('irrelevant_skipped', 0)}")
        print(f"  Empty lines skipped: {stats.get('empty_skipped', 0)}")
        print(f"  Parse errors:        {stats.get('parse_errors', 0)}")
