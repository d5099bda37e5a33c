"""Sequential scheduler for the reprocessing batch.

Drives the jobs of a FileRegistry one at a time through the engine and is the
only writer of job status while a run is in flight. Uses the EventBus to
report job lifecycle and per-file log lines, so the presentation layer never
has to poll.

Key guarantees:
- Single-flight: at most one job is `processing` at any instant
- Jobs that are done or skipped at run start are never re-dispatched
- Abort is checked before each dispatch and after each engine call, so it
  takes effect within at most one job
- `done` jobs always carry stats; `error`/`aborted` jobs never do
"""

import logging
import threading
from typing import Any, Optional, Set
from vidreprocess.config.models import OptionsConfig
from vidreprocess.domain.errors import OrchestratorBusyError
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
from vidreprocess.domain.models import FileJob, JobStatus
from vidreprocess.infrastructure.event_bus import EventBus
from vidreprocess.pipeline.abort import AbortController, CancellationToken
from vidreprocess.pipeline.registry import FileRegistry


class ProcessingOrchestrator:
    """Runs the registry's jobs through the engine, strictly in order.

    Args:
        registry: FileRegistry holding the jobs, in submission order.
        engine: Transcoding engine (`process(path, options) -> ProcessingStats`).
        event_bus: EventBus for job lifecycle and log events.
        abort_controller: Issues the per-run cancellation token.
    """

    def __init__(
        self,
        registry: FileRegistry,
        engine: Any,
        event_bus: EventBus,
        abort_controller: AbortController,
    ):
        self.registry = registry
        self.engine = engine
        self.event_bus = event_bus
        self.abort_controller = abort_controller
        self.logger = logging.getLogger(__name__)

        self._run_lock = threading.Lock()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def _log(self, path: str, message: str) -> None:
        self.event_bus.publish(LogEvent(path=path, message=message))

    def run(self, options: OptionsConfig, token: Optional[CancellationToken] = None) -> None:
        """Processes every pending job once. Blocks until the run ends.

        Pass a token from `abort_controller.begin_run()` when the run is started
        on another thread, so an abort issued before the thread gets going is kept.
        """
        with self._run_lock:
            if self._running:
                raise OrchestratorBusyError("A processing run is already in progress")
            self._running = True

        try:
            self._run(options, token)
        finally:
            with self._run_lock:
                self._running = False

    def _run(self, options: OptionsConfig, token: Optional[CancellationToken]) -> None:
        if token is None:
            token = self.abort_controller.begin_run()
        snapshot = options.model_copy(deep=True)
        paths = self.registry.paths()
        done_at_start = set(self.registry.reset_terminal())

        self.logger.info(f"Run started: {len(paths)} file(s), options={snapshot.model_dump(mode='json')}")
        self.event_bus.publish(RunStarted(total=len(paths)))

        counters = {"completed": 0, "failed": 0, "skipped": 0, "aborted": 0}

        for path in paths:
            if token.is_requested:
                job = self.registry.get(path)
                name = job.name if job else path
                self.logger.info(f"Abort requested, not starting {name}")
                self._log(path, f"Processing aborted before starting {name}.")
                break

            job = self.registry.get(path)
            if job is None:
                # Removed by the user while the run was in progress
                continue

            if path in done_at_start and job.stats is not None:
                self.registry.update(path, status=JobStatus.DONE)
                self._log(path, f"Skipping already processed file: {job.name}")
                counters["skipped"] += 1
                continue
            if job.status == JobStatus.SKIPPED:
                counters["skipped"] += 1
                continue

            outcome = self._process_job(job, snapshot, token)
            counters[outcome] += 1
            if outcome == "aborted":
                break

        self._restore_done(done_at_start)

        was_aborted = token.is_requested
        if was_aborted:
            self.logger.info("All tasks aborted.")
            self.event_bus.publish(ActionMessage(message="All tasks aborted."))
        else:
            self.logger.info("All tasks completed.")
            self.event_bus.publish(ActionMessage(message="All tasks completed."))

        self.logger.info(
            f"Run finished: completed={counters['completed']}, failed={counters['failed']}, "
            f"skipped={counters['skipped']}, aborted={counters['aborted']}"
        )
        self.event_bus.publish(RunFinished(was_aborted=was_aborted, **counters))

    def _process_job(self, job: FileJob, options: OptionsConfig, token: CancellationToken) -> str:
        """Dispatches one job and records its outcome. Returns the counter name."""
        path = job.path
        started = self.registry.update(path, status=JobStatus.PROCESSING, error=None)
        if started is None:
            return "skipped"
        self.event_bus.publish(JobStarted(job=started))
        self._log(path, f"Processing: {job.name}")
        self.logger.info(f"PROCESS_START: {job.name}")

        try:
            stats = self.engine.process(path, options)
        except Exception as e:
            if token.is_requested:
                return self._mark_aborted(job)
            err_msg = str(e) or e.__class__.__name__
            failed = self.registry.update(path, status=JobStatus.ERROR, error=err_msg, stats=None)
            self.logger.error(f"PROCESS_END: {job.name} status=error: {err_msg}")
            self._log(path, f"Failed: {job.name} - {err_msg}")
            if failed is not None:
                self.event_bus.publish(JobFailed(job=failed, error_message=err_msg))
            return "failed"

        if token.is_requested:
            # A result that lands after the abort is discarded; the output file
            # stays on disk untracked.
            self.logger.warning(f"Discarding late result for {job.name}: output left at {stats.output_path}")
            return self._mark_aborted(job)

        completed = self.registry.update(
            path,
            status=JobStatus.DONE,
            stats=stats,
            processed=True,
            error=None,
        )
        self.logger.info(
            f"PROCESS_END: {job.name} status=done elapsed={stats.duration_secs:.2f}s "
            f"size={stats.original_size}->{stats.new_size}"
        )
        self._log(path, f"Finished: {job.name}")
        if completed is not None:
            self.event_bus.publish(JobCompleted(job=completed))
        return "completed"

    def _restore_done(self, done_at_start: Set[str]) -> None:
        """Jobs the loop never reached (abort) go back to done if they still hold stats."""
        for path in done_at_start:
            job = self.registry.get(path)
            if job is not None and job.status == JobStatus.PENDING and job.stats is not None:
                self.registry.update(path, status=JobStatus.DONE)

    def _mark_aborted(self, job: FileJob) -> str:
        aborted = self.registry.update(job.path, status=JobStatus.ABORTED, stats=None)
        self.logger.info(f"PROCESS_END: {job.name} status=aborted")
        self._log(job.path, f"Processing of {job.name} aborted.")
        if aborted is not None:
            self.event_bus.publish(JobAborted(job=aborted))
        return "aborted"
