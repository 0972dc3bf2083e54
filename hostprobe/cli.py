"""
Command line entry point.

    hostprobe PowerShell UAC
    hostprobe system -c WS01 -c WS02 --format json -o results.jsonl
    hostprobe all --snapshot lab.yaml
    hostprobe --list
"""
import argparse
import functools
import logging
import sys
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from hostprobe import __version__
from hostprobe.commands import default_catalog
from hostprobe.config import Settings, load_settings
from hostprobe.core.catalog import CommandCatalog
from hostprobe.core.dispatcher import OUTPUT_FORMATS, Dispatcher
from hostprobe.core.errors import ConfigError, InvalidTargetError, SelectionError
from hostprobe.core.registry import RegistrySnapshot, open_accessor
from hostprobe.core.target import parse_targets
from hostprobe.logging_setup import configure_logging
from hostprobe.output.sinks import ConsoleSink, FileSink, MultiSink, OutputSink, WebhookSink

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hostprobe",
        description="Enumerate security-relevant configuration of local and remote Windows hosts.",
    )
    parser.add_argument("commands", nargs="*", metavar="COMMAND",
                        help="Command names, group names (system, user, misc, remote) or 'all'. "
                             "Arguments are passed as Name=arg1,arg2.")
    parser.add_argument("-c", "--computer", dest="computers", action="append", default=[],
                        help="Remote host to enumerate. Repeat or comma separate for several hosts.")
    parser.add_argument("--format", dest="output_format", choices=OUTPUT_FORMATS, help="Output format.")
    parser.add_argument("-o", "--output", dest="output_file", help="Also append output to this file.")
    parser.add_argument("--webhook", dest="webhook_url", help="POST the run's output to this URL when done.")
    parser.add_argument("--timeout", dest="probe_timeout", type=float,
                        help="Per-command timeout in seconds (0 disables it).")
    parser.add_argument("--workers", dest="max_workers", type=int,
                        help="Number of hosts enumerated in parallel (1-100).")
    parser.add_argument("--snapshot", help="Read registry contents from a JSON/YAML snapshot instead of the live registry.")
    parser.add_argument("--config", help="Path to a YAML settings file.")
    parser.add_argument("--list", action="store_true", help="List the available commands and exit.")
    parser.add_argument("--json-logs", dest="json_logs", action="store_true", default=None,
                        help="Write logs as JSON lines.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def print_command_list(catalog: CommandCatalog, console: Console) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Command", style="bold")
    table.add_column("Groups")
    table.add_column("Remote", justify="center")
    table.add_column("Description")

    for metadata in catalog.metadata():
        groups = ", ".join(sorted(group.value for group in metadata.groups))
        table.add_row(metadata.name, groups, "yes" if metadata.supports_remote else "no", metadata.description)

    console.print(table)


def build_sink(settings: Settings, console: Console) -> OutputSink:
    structured = settings.output_format == "json"
    sinks: List[OutputSink] = [ConsoleSink(console, structured=structured)]
    if settings.output_file:
        sinks.append(FileSink(settings.output_file, structured=structured))
    if settings.webhook_url:
        sinks.append(WebhookSink(settings.webhook_url))
    return sinks[0] if len(sinks) == 1 else MultiSink(sinks)


def main(argv: Optional[List[str]] = None, console: Optional[Console] = None) -> int:
    args = build_parser().parse_args(argv)
    console = console or Console(highlight=False, soft_wrap=True)

    overrides = {
        "output_format": args.output_format,
        "output_file": args.output_file,
        "webhook_url": args.webhook_url,
        "probe_timeout": args.probe_timeout,
        "max_workers": args.max_workers,
        "snapshot": args.snapshot,
        "json_logs": args.json_logs,
        "log_level": "DEBUG" if args.verbose else None,
    }
    try:
        settings = load_settings(args.config, overrides=overrides)
    except ConfigError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        return EXIT_ERROR

    configure_logging(settings.log_level, json_logs=settings.json_logs)
    catalog = default_catalog()

    if args.list:
        print_command_list(catalog, console)
        return EXIT_OK

    if not args.commands:
        console.print("[bold red]Error: no commands selected. Use --list to see the available commands.[/bold red]")
        return EXIT_ERROR

    try:
        targets = parse_targets(args.computers)
    except InvalidTargetError as e:
        logger.critical(f"Invalid target: {e}")
        console.print(f"[bold red]Error: {e}[/bold red]")
        return EXIT_ERROR

    snapshot = None
    if settings.snapshot:
        try:
            snapshot = RegistrySnapshot.load(settings.snapshot)
        except ConfigError as e:
            console.print(f"[bold red]Error: {e}[/bold red]")
            return EXIT_ERROR

    try:
        sink = build_sink(settings, console)
    except OSError as e:
        console.print(f"[bold red]Error: could not open output file: {e}[/bold red]")
        return EXIT_ERROR

    dispatcher = Dispatcher(
        catalog,
        sink,
        accessor_factory=functools.partial(open_accessor, snapshot=snapshot),
        output_format=settings.output_format,
        probe_timeout=settings.probe_timeout,
        max_workers=settings.max_workers,
    )

    try:
        with sink:
            report = dispatcher.run(args.commands, targets)
    except SelectionError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        return EXIT_ERROR
    except KeyboardInterrupt:
        dispatcher.cancel()
        console.print("[yellow]Interrupted.[/yellow]")
        return EXIT_INTERRUPTED

    logger.info(f"Run finished: {report.total_records} record(s), "
                f"{len(report.all_diagnostics)} diagnostic(s) across {len(report.targets)} target(s)")
    return EXIT_INTERRUPTED if report.cancelled else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
