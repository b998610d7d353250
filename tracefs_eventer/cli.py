# tracefs_eventer/cli.py - Command-line interface
"""
Command-line interface for the tracefs TCP state-change eventer.
"""

import click
import logging
import sys

from tracefs_eventer.utils.logger import setup_logging
from tracefs_eventer.utils.config import Config
from tracefs_eventer.errors import ConfigError, EventerClosed, IrrelevantEvent, TraceFSEventerError


logger = logging.getLogger(__name__)


def build_exporter(cfg: Config):
    """
    Create the exporter selected by output.format.

    Args:
        cfg: Validated configuration

    Returns:
        Exporter with an export(event) method
    """
    output_format = cfg.get('output.format')

    if output_format == 'json':
        from tracefs_eventer.exporters.json_exporter import JSONExporter
        return JSONExporter(cfg.get('output.json_file'))

    if output_format == 'prometheus':
        from tracefs_eventer.exporters.prometheus import PrometheusExporter
        exporter = PrometheusExporter(cfg.get('output.prometheus_port'))
        exporter.start()
        return exporter

    from tracefs_eventer.exporters.stdout import StdoutExporter
    return StdoutExporter(use_colors=sys.stdout.isatty())


@click.group()
@click.option('--log-level', default='INFO', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']))
@click.option('--log-file', type=click.Path(), help='Log file path')
@click.pass_context
def cli(ctx, log_level, log_file):
    """
    tracefs TCP state-change eventer

    Streams TCP socket state transitions from the kernel's tracefs as
    structured events.
    """
    ctx.ensure_object(dict)

    setup_logging(level=log_level, log_file=log_file)

    ctx.obj['log_level'] = log_level
    ctx.obj['log_file'] = log_file


@cli.command()
@click.option('--config', type=click.Path(exists=True), help='Configuration file')
@click.option('--count', type=int, help='Stop after this many events')
@click.option('--output-format', type=click.Choice(['stdout', 'json', 'prometheus']), help='Output format')
@click.option('--prometheus-port', type=int, help='Port for the Prometheus metrics endpoint')
@click.option('--mountpoint', type=click.Path(), help='tracefs mountpoint (skips discovery)')
def watch(config, count, output_format, prometheus_port, mountpoint):
    """
    Stream TCP state changes.

    Example:
        tcp-audit-tracefs watch
        tcp-audit-tracefs watch --output-format json --count 100
        tcp-audit-tracefs watch --config configs/default.yaml
    """
    from tracefs_eventer.collector.eventer import new_eventer

    cfg = Config(config)

    # Override config with CLI options
    if output_format:
        cfg.set('output.format', output_format)
    if prometheus_port is not None:
        cfg.set('output.prometheus_port', prometheus_port)
    if mountpoint:
        cfg.set('tracefs.mountpoint', mountpoint)

    try:
        cfg.validate()
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    try:
        exporter = build_exporter(cfg)
    except OSError as e:
        logger.error(f"Failed to start {cfg.get('output.format')} exporter: {e}")
        sys.exit(1)

    try:
        eventer = new_eventer(cfg)
    except TraceFSEventerError as e:
        logger.error(f"Failed to start eventer: {e}")
        if hasattr(exporter, 'close'):
            exporter.close()
        sys.exit(1)

    logger.info("Tracing started. Press Ctrl+C to stop.")

    exit_code = 0
    seen = 0
    try:
        while count is None or seen < count:
            exporter.export(eventer.event())
            seen += 1
    except KeyboardInterrupt:
        logger.info("Stopping eventer...")
    except EventerClosed:
        logger.info("Eventer closed")
    except TraceFSEventerError as e:
        logger.error(f"Error reading events: {e}")
        exit_code = 1
    finally:
        try:
            eventer.close()
        except TraceFSEventerError as e:
            logger.error(f"Error closing eventer: {e}")
            exit_code = 1

        if hasattr(exporter, 'close'):
            exporter.close()

        stats = eventer.get_stats()
        logger.info(f"Eventer stats: {stats}")
        if hasattr(exporter, 'print_stats'):
            exporter.print_stats(stats)

    sys.exit(exit_code)


@cli.command()
@click.argument('trace_file', type=click.File('rb'), default='-')
@click.option('--output-format', type=click.Choice(['stdout', 'json']), default='stdout', help='Output format')
@click.option('--strict', is_flag=True, help='Stop at the first malformed line')
def parse(trace_file, output_format, strict):
    """
    Parse captured trace_pipe output.

    Reads raw trace lines from TRACE_FILE (default: stdin) and prints the
    TCP state changes they describe.

    Example:
        cat /sys/kernel/tracing/trace_pipe | tcp-audit-tracefs parse
        tcp-audit-tracefs parse captured.txt --output-format json
    """
    from tracefs_eventer.collector.event_parser import TraceFSEventParser
    from tracefs_eventer.collector.field_parser import SlicingFieldParser

    cfg = Config()
    cfg.set('output.format', output_format)
    exporter = build_exporter(cfg)
    parser = TraceFSEventParser(SlicingFieldParser())

    errors = 0
    for lineno, line in enumerate(trace_file, start=1):
        line = line.rstrip(b'\r\n')
        if not line:
            continue

        try:
            event = parser.to_event(line)
        except IrrelevantEvent:
            continue
        except TraceFSEventerError as e:
            if strict:
                click.echo(f"Error: line {lineno}: {e}", err=True)
                sys.exit(1)
            logger.warning(f"Skipping line {lineno}: {e}")
            errors += 1
            continue

        exporter.export(event)

    if errors:
        logger.warning(f"{errors} line(s) could not be parsed")


@cli.command()
@click.option('--mountpoint', type=click.Path(), help='tracefs mountpoint (skips discovery)')
def check(mountpoint):
    """
    Check system prerequisites for reading events.

    Verifies:
    - Root privileges
    - tracefs mounted
    - A TCP state-change tracepoint is available
    """
    from tracefs_eventer.collector.eventer import build_mountpoint_retriever
    from tracefs_eventer.utils.helpers import check_prerequisites

    cfg = Config()
    if mountpoint:
        cfg.set('tracefs.mountpoint', mountpoint)

    if check_prerequisites(build_mountpoint_retriever(cfg)):
        click.echo("\n✓ All prerequisites met!")
        sys.exit(0)
    else:
        click.echo("\n✗ Some prerequisites are missing")
        sys.exit(1)


if __name__ == '__main__':
    cli(obj={})
