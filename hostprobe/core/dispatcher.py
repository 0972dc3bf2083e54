"""
The dispatcher: selects commands, runs them against one or many targets and
renders every record with the formatter bound to its type.

Per target, commands run one after another and each command's output is
complete before the next one starts. Several targets run in parallel on a
bounded thread pool; each target renders into a private buffer that is
flushed to the shared sink once the target is done.

In JSON mode only records and diagnostics are written: no command headers
and no target frame lines, so the stream stays one document per line.

Failures never abort the run. They become Diagnostics written inline:
    selection  unknown token, or remote-incapable command on a remote target
    probe      exception raised by a command (including TransportError)
    timeout    command exceeded probe_timeout
    formatter  no formatter bound, or the formatter raised
    cancelled  run interrupted before or while the command ran
"""
import logging
import queue
import threading
import time
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Type

from hostprobe.core.catalog import CommandCatalog
from hostprobe.core.command import CommandBase, CommandGroup, ResultRecord
from hostprobe.core.diagnostics import Diagnostic, DiagnosticKind, RunReport, TargetReport
from hostprobe.core.errors import ProbeCancelled, ProbeTimeout, SelectionError
from hostprobe.core.registry import AccessorFactory, RegistryAccessor, winreg_accessor
from hostprobe.core.target import Target
from hostprobe.output.formatters import JsonRecordFormatter
from hostprobe.output.sinks import BufferSink, OutputSink

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("text", "json")

_RECORD = "record"
_ERROR = "error"
_DONE = "done"


@dataclass(frozen=True)
class Selection:
    command: Type[CommandBase]
    args: Tuple[str, ...] = ()


def parse_token(token: str) -> Tuple[str, Tuple[str, ...]]:
    """Splits "Name=arg1,arg2" into ("Name", ("arg1", "arg2"))."""
    name, _, rest = token.partition("=")
    args = tuple(arg.strip() for arg in rest.split(",") if arg.strip())
    return name.strip(), args


class Dispatcher:
    def __init__(self, catalog: CommandCatalog, sink: OutputSink,
                 accessor_factory: AccessorFactory = winreg_accessor,
                 output_format: str = "text", probe_timeout: float = 30.0,
                 max_workers: int = 10):
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Unsupported output format: {output_format}")
        self.catalog = catalog
        self.sink = sink
        self.accessor_factory = accessor_factory
        self.output_format = output_format
        self.probe_timeout = probe_timeout
        self.max_workers = max(1, max_workers)
        self._stop = threading.Event()
        self._sink_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select(self, tokens: Iterable[str]) -> Tuple[List[Selection], List[Diagnostic]]:
        """Resolves command names, group names and "all" against the catalog."""
        selections: List[Selection] = []
        diagnostics: List[Diagnostic] = []
        seen = set()

        for token in tokens:
            name, args = parse_token(token)
            key = name.lower()
            if not key:
                continue

            command = self.catalog.get(key)
            if command is not None:
                candidates = [(command, args)]
            elif key == "all":
                candidates = [(c, ()) for c in self.catalog.commands.values()]
            else:
                group = CommandGroup.lookup(key)
                if group is None:
                    diagnostics.append(Diagnostic(DiagnosticKind.SELECTION, f"Unknown command or group '{name}'"))
                    continue
                candidates = [(c, ()) for c in self.catalog.in_group(group)]

            for candidate, candidate_args in candidates:
                if candidate not in seen:
                    seen.add(candidate)
                    selections.append(Selection(candidate, candidate_args))

        return selections, diagnostics

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Stops issuing new commands and targets. Work already running finishes on its own."""
        if not self._stop.is_set():
            logger.warning("Run cancellation requested")
        self._stop.set()

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def run(self, tokens: Iterable[str], targets: Optional[Sequence[Target]] = None) -> RunReport:
        """
        Runs the selected commands against every target.

        Raises SelectionError when nothing runnable was selected. Every other
        failure ends up in the returned report and inline in the output.
        """
        selections, diagnostics = self.select(tokens)
        report = RunReport(diagnostics=diagnostics)
        for diagnostic in diagnostics:
            self._emit(self.sink, diagnostic)

        if not selections:
            raise SelectionError("No commands selected")

        targets = list(targets or [Target.local()])
        logger.info(f"Running {len(selections)} command(s) against {len(targets)} target(s)")

        if len(targets) == 1:
            report.targets.append(self._run_target(targets[0], selections, self.sink))
        else:
            report.targets.extend(self._run_fleet(targets, selections))

        report.cancelled = self.cancelled
        return report

    def _run_fleet(self, targets: List[Target], selections: List[Selection]) -> List[TargetReport]:
        reports: Dict[Target, TargetReport] = {}
        workers = min(self.max_workers, len(targets))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="hostprobe-target") as executor:
            pending: Dict[Future, Target] = {
                executor.submit(self._run_buffered, target, selections): target for target in targets
            }
            while pending:
                try:
                    for future in as_completed(list(pending)):
                        target = pending.pop(future)
                        reports[target] = self._collect(future, target)
                except KeyboardInterrupt:
                    logger.warning("Run interrupted, waiting for in-flight targets to finish")
                    self.cancel()
                    for future in pending:
                        future.cancel()

        return [reports[target] for target in targets]

    def _run_buffered(self, target: Target, selections: List[Selection]) -> Tuple[TargetReport, BufferSink]:
        buffer = BufferSink()
        return self._run_target(target, selections, buffer), buffer

    def _collect(self, future: Future, target: Target) -> TargetReport:
        try:
            target_report, buffer = future.result()
        except CancelledError:
            target_report = TargetReport(str(target))
            buffer = BufferSink()
            self._record(target_report, buffer, Diagnostic(
                DiagnosticKind.CANCELLED, "Run cancelled before target started", target=str(target)))
        except Exception as e:
            logger.error(f"Unexpected failure running target {target}: {e}")
            target_report = TargetReport(str(target))
            buffer = BufferSink()
            self._record(target_report, buffer, Diagnostic(
                DiagnosticKind.PROBE, f"{type(e).__name__}: {e}", target=str(target)))

        with self._sink_lock:
            if self.output_format == "text":
                self.sink.write_line(f"#### Target: {target} ####")
            buffer.replay(self.sink)
        return target_report

    def _run_target(self, target: Target, selections: List[Selection], sink: OutputSink) -> TargetReport:
        report = TargetReport(str(target))
        start = time.monotonic()
        logger.info(f"Starting run against {target}")

        try:
            accessor = self.accessor_factory(target)
        except Exception as e:
            logger.error(f"Could not create registry accessor for {target}: {e}")
            self._record(report, sink, Diagnostic(DiagnosticKind.PROBE, f"{type(e).__name__}: {e}", target=str(target)))
            return report

        with accessor:
            for selection in selections:
                if self.cancelled:
                    self._record(report, sink, Diagnostic(
                        DiagnosticKind.CANCELLED, "Run cancelled, remaining commands skipped", target=str(target)))
                    break

                metadata = selection.command.metadata()
                if target.is_remote and not metadata.supports_remote:
                    self._record(report, sink, Diagnostic(
                        DiagnosticKind.SELECTION,
                        "Command does not support remote targets",
                        command=metadata.name, target=str(target)))
                    continue

                self._run_command(selection, accessor, target, sink, report)

        report.duration_seconds = round(time.monotonic() - start, 2)
        logger.info(f"Finished run against {target} in {report.duration_seconds}s")
        return report

    def _run_command(self, selection: Selection, accessor: RegistryAccessor, target: Target,
                     sink: OutputSink, report: TargetReport) -> None:
        name = selection.command.name
        if self.output_format == "text":
            sink.write_line(f"====== {name} ======")
            sink.write_line("")
        logger.info(f"Running command '{name}' on {target}")

        count = 0
        try:
            command = selection.command()
            for record in self._records(command, accessor, selection.args, target):
                count += 1
                self._render(record, name, target, sink, report)
        except ProbeTimeout as e:
            self._record(report, sink, Diagnostic(DiagnosticKind.TIMEOUT, str(e), command=name, target=str(target)))
        except ProbeCancelled as e:
            self._record(report, sink, Diagnostic(DiagnosticKind.CANCELLED, str(e), command=name, target=str(target)))
        except KeyboardInterrupt:
            self.cancel()
            self._record(report, sink, Diagnostic(
                DiagnosticKind.CANCELLED, "Interrupted while running", command=name, target=str(target)))
        except Exception as e:
            logger.debug(f"Command '{name}' failed on {target}", exc_info=True)
            self._record(report, sink, Diagnostic(
                DiagnosticKind.PROBE, f"Terminating exception running command: {type(e).__name__}: {e}",
                command=name, target=str(target)))
        finally:
            report.executed.append(name)
            report.record_counts[name] = count

    def _records(self, command: CommandBase, accessor: RegistryAccessor, args: Sequence[str],
                 target: Target) -> Iterator[ResultRecord]:
        if not self.probe_timeout or self.probe_timeout <= 0:
            yield from command.execute(accessor, list(args))
            return

        cancel_event = threading.Event()
        bound = accessor.bind_cancel(cancel_event)
        results: "queue.Queue[Tuple[str, object]]" = queue.Queue()

        def drain():
            try:
                for record in command.execute(bound, list(args)):
                    results.put((_RECORD, record))
            except Exception as e:
                results.put((_ERROR, e))
            else:
                results.put((_DONE, None))

        worker = threading.Thread(target=drain, name=f"probe-{command.name}-{target}", daemon=True)
        worker.start()
        deadline = time.monotonic() + self.probe_timeout

        try:
            while True:
                remaining = deadline - time.monotonic()
                try:
                    if remaining <= 0:
                        raise queue.Empty
                    kind, payload = results.get(timeout=remaining)
                except queue.Empty:
                    raise ProbeTimeout(f"Command timed out after {self.probe_timeout}s")
                if kind == _RECORD:
                    yield payload
                elif kind == _ERROR:
                    raise payload
                else:
                    return
        finally:
            # Stops the worker's next read if it is still running
            cancel_event.set()

    def _render(self, record: ResultRecord, name: str, target: Target, sink: OutputSink,
                report: TargetReport) -> None:
        if self.output_format == "json":
            formatter = JsonRecordFormatter(sink, command=name, target=str(target))
        else:
            formatter_class = self.catalog.formatter_for(type(record))
            if formatter_class is None:
                self._record(report, sink, Diagnostic(
                    DiagnosticKind.FORMATTER, f"No formatter bound to {type(record).__name__}",
                    command=name, target=str(target)))
                return
            formatter = formatter_class(sink)

        try:
            formatter.format_result(record)
        except Exception as e:
            self._record(report, sink, Diagnostic(
                DiagnosticKind.FORMATTER, f"Error formatting {type(record).__name__}: {e}",
                command=name, target=str(target)))

    def _record(self, report: TargetReport, sink: OutputSink, diagnostic: Diagnostic) -> None:
        report.diagnostics.append(diagnostic)
        self._emit(sink, diagnostic)

    def _emit(self, sink: OutputSink, diagnostic: Diagnostic) -> None:
        logger.warning(f"{diagnostic} (target: {diagnostic.target or '-'})")
        sink.write_diagnostic(diagnostic)
