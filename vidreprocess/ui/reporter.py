from typing import Optional
from rich.console import Console
from rich.markup import escape
from vidreprocess.domain.events import (
    ActionMessage,
    JobAborted,
    JobCompleted,
    JobFailed,
    JobStarted,
    LogEvent,
    RunFinished,
    RunStarted,
)
from vidreprocess.infrastructure.event_bus import EventBus
from vidreprocess.pipeline.log_router import LogRouter
from vidreprocess.ui.tables import format_ratio, format_size, format_time


class ConsoleReporter:
    """Subscribes to EventBus and prints job lifecycle lines.

    With `verbose`, also echoes engine output for the file currently selected
    in the LogRouter (the one being processed).
    """

    def __init__(
        self,
        bus: EventBus,
        console: Optional[Console] = None,
        log_router: Optional[LogRouter] = None,
        verbose: bool = False,
    ):
        self.bus = bus
        self.console = console or Console()
        self.log_router = log_router
        self.verbose = verbose
        self.total = 0
        self.position = 0
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(RunStarted, self.on_run_started)
        self.bus.subscribe(JobStarted, self.on_job_started)
        self.bus.subscribe(JobCompleted, self.on_job_completed)
        self.bus.subscribe(JobFailed, self.on_job_failed)
        self.bus.subscribe(JobAborted, self.on_job_aborted)
        self.bus.subscribe(ActionMessage, self.on_action_message)
        self.bus.subscribe(RunFinished, self.on_run_finished)
        if self.verbose:
            self.bus.subscribe(LogEvent, self.on_log_event)

    def on_run_started(self, event: RunStarted):
        self.total = event.total
        self.position = 0
        self.console.print(f"[bold]Processing {event.total} file(s)[/]")

    def on_job_started(self, event: JobStarted):
        self.position += 1
        self.console.print(f"[cyan]▶[/] [{self.position}/{self.total}] {escape(event.job.name)}")

    def on_job_completed(self, event: JobCompleted):
        stats = event.job.stats
        if stats is None:
            return
        self.console.print(
            f"[green]✓[/] {escape(event.job.name)}: "
            f"{format_size(stats.original_size)} → {format_size(stats.new_size)} "
            f"({format_ratio(stats.original_size, stats.new_size)}) in {format_time(stats.duration_secs)}"
        )

    def on_job_failed(self, event: JobFailed):
        self.console.print(f"[red]✗[/] {escape(event.job.name)}: {escape(event.error_message)}")

    def on_job_aborted(self, event: JobAborted):
        self.console.print(f"[yellow]■[/] {escape(event.job.name)}: aborted")

    def on_action_message(self, event: ActionMessage):
        self.console.print(f"[dim]{escape(event.message)}[/]")

    def on_log_event(self, event: LogEvent):
        selected = self.log_router.selected_path if self.log_router else None
        if selected is None or event.path == selected:
            self.console.print(event.message, markup=False, highlight=False, style="dim")

    def on_run_finished(self, event: RunFinished):
        summary = (
            f"done={event.completed} error={event.failed} "
            f"skipped={event.skipped} aborted={event.aborted}"
        )
        style = "yellow" if event.was_aborted else ("red" if event.failed else "green")
        self.console.print(f"[{style}]Run finished:[/] {summary}")
