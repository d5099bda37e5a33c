import logging
from typing import Any, Callable, Iterable, List, Optional
from vidreprocess.domain.models import FileJob, JobStatus, StatusCheckResult
from vidreprocess.pipeline.registry import FileRegistry

ConfirmCallback = Callable[[FileJob], bool]


class StatusChecker:
    """Annotates newly added files with their initial status.

    Files carrying a processed marker start as skipped. When the marker asks
    for it (a tagged original) or the `confirm_reprocess` policy is on, the
    user decides: accepting makes the job pending again, declining keeps it
    skipped. Without a confirm callback, declining is assumed.
    """

    def __init__(
        self,
        engine: Any,
        confirm: Optional[ConfirmCallback] = None,
        confirm_reprocess: bool = False,
    ):
        self.engine = engine
        self.confirm = confirm
        self.confirm_reprocess = confirm_reprocess
        self.logger = logging.getLogger(__name__)

    def _ask(self, job: FileJob) -> bool:
        if self.confirm is None:
            return False
        return bool(self.confirm(job))

    def check(self, job: FileJob) -> FileJob:
        """Returns a copy of the job with status/processed set from the engine's markers."""
        try:
            result = self.engine.check_status(job.path)
        except Exception as e:
            self.logger.warning(f"Status check failed for {job.name}, adding as pending: {e}")
            return job

        if result == StatusCheckResult.NOT_PROCESSED:
            return job.model_copy(update={"status": JobStatus.PENDING, "processed": False})

        needs_decision = result == StatusCheckResult.CONFIRM or self.confirm_reprocess
        skipped = job.model_copy(update={"status": JobStatus.SKIPPED, "processed": True})
        if needs_decision and self._ask(skipped):
            self.logger.info(f"Reprocessing confirmed for {job.name}")
            return job.model_copy(update={"status": JobStatus.PENDING, "processed": False})

        self.logger.info(f"Skipping already processed file: {job.name}")
        return skipped

    def add_files(self, registry: FileRegistry, paths: Iterable[str]) -> List[FileJob]:
        """Checks paths not yet in the registry and enqueues them in order."""
        new_jobs = []
        seen = set()
        for path in paths:
            path = str(path)
            if path in registry or path in seen:
                continue
            seen.add(path)
            new_jobs.append(self.check(FileJob.from_path(path)))
        return registry.add(new_jobs)
