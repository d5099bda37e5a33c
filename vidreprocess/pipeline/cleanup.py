"""Post-run cleanup: decide which originals/outputs to delete, then delete them.

Deletion goes through the engine. A successful deletion updates the registry:
deleting an input removes its job; deleting an output resets its job to
pending so it can be processed again. Failed deletions leave the job as it
was, since the artifact is still there.
"""

import logging
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Set
from pydantic import BaseModel
from vidreprocess.config.models import CleanupRules
from vidreprocess.domain.errors import OrchestratorBusyError
from vidreprocess.domain.events import ActionMessage
from vidreprocess.domain.models import FileJob, JobStatus
from vidreprocess.infrastructure.event_bus import EventBus
from vidreprocess.pipeline.registry import FileRegistry


class ArtifactKind(str, Enum):
    ORIGINAL = "original"
    OUTPUT = "output"


class DeletionCandidate(BaseModel):
    path: str
    job_path: str
    kind: ArtifactKind
    size_bytes: int


class DeletionResult(BaseModel):
    path: str
    deleted: bool
    error: Optional[str] = None


class CleanupPolicy:
    def __init__(
        self,
        registry: FileRegistry,
        engine: Any,
        event_bus: Optional[EventBus] = None,
        orchestrator: Optional[Any] = None,
    ):
        self.registry = registry
        self.engine = engine
        self.event_bus = event_bus
        self.orchestrator = orchestrator
        self.logger = logging.getLogger(__name__)

    def _ensure_idle(self) -> None:
        if self.orchestrator is not None and self.orchestrator.is_running:
            raise OrchestratorBusyError("Cannot clean up while processing is in progress")

    def plan(self, jobs: Iterable[FileJob], rules: CleanupRules) -> List[DeletionCandidate]:
        """Lists the artifacts the rules would delete, in job order."""
        candidates = []
        seen = set()
        for job in jobs:
            if job.status != JobStatus.DONE or job.stats is None:
                continue
            stats = job.stats
            # Equal sizes match neither rule
            if rules.delete_originals_if_smaller_output and stats.original_size > stats.new_size:
                if job.path not in seen:
                    seen.add(job.path)
                    candidates.append(DeletionCandidate(
                        path=job.path,
                        job_path=job.path,
                        kind=ArtifactKind.ORIGINAL,
                        size_bytes=stats.original_size,
                    ))
            if rules.delete_outputs_if_larger_than_original and stats.new_size > stats.original_size:
                if stats.output_path not in seen:
                    seen.add(stats.output_path)
                    candidates.append(DeletionCandidate(
                        path=stats.output_path,
                        job_path=job.path,
                        kind=ArtifactKind.OUTPUT,
                        size_bytes=stats.new_size,
                    ))
        return candidates

    def compute_deletion_set(self, jobs: Iterable[FileJob], rules: CleanupRules) -> Set[str]:
        return {candidate.path for candidate in self.plan(jobs, rules)}

    def apply_deletion(self, paths: Iterable[str]) -> List[DeletionResult]:
        """Deletes each path; one failure never stops the rest of the batch."""
        self._ensure_idle()
        results = []
        for path in paths:
            try:
                self.engine.delete(path)
            except Exception as e:
                self.logger.error(f"Failed to delete {path}: {e}")
                results.append(DeletionResult(path=path, deleted=False, error=str(e)))
                continue

            self.logger.info(f"Deleted {path}")
            self._forget_artifact(path)
            results.append(DeletionResult(path=path, deleted=True))

        deleted = sum(1 for r in results if r.deleted)
        failed = len(results) - deleted
        if self.event_bus is not None:
            message = f"Cleanup: deleted {deleted} file(s)"
            if failed:
                message += f", {failed} failed"
            self.event_bus.publish(ActionMessage(message=message))
        return results

    def _forget_artifact(self, path: str) -> None:
        if path in self.registry:
            self.registry.remove(path)
            return
        for job in self.registry.jobs():
            if job.stats is not None and job.stats.output_path == path:
                self._reset_job(job.path)

    def _reset_job(self, job_path: str) -> None:
        self.registry.update(job_path, status=JobStatus.PENDING, processed=False, stats=None)

    def reject(self, path: str, confirm: Optional[Callable[[str], bool]] = None) -> Optional[DeletionResult]:
        """Deletes one job's output and makes the job pending again.

        `confirm` receives the output path about to be deleted and can veto.
        """
        self._ensure_idle()
        job = self.registry.get(path)
        if job is None:
            raise KeyError(path)
        if job.stats is None:
            raise ValueError(f"{job.name} has no output to reject")

        output_path = job.stats.output_path
        if confirm is not None and not confirm(output_path):
            return None

        try:
            self.engine.delete(output_path)
        except Exception as e:
            self.logger.error(f"Failed to reject {job.name}: {e}")
            if self.event_bus is not None:
                self.event_bus.publish(ActionMessage(message=f"Failed to delete {output_path}: {e}"))
            return DeletionResult(path=output_path, deleted=False, error=str(e))

        self._reset_job(job.path)
        self.logger.info(f"Rejected {job.name}: deleted {output_path}")
        if self.event_bus is not None:
            self.event_bus.publish(ActionMessage(message=f"Rejected {job.name}"))
        return DeletionResult(path=output_path, deleted=True)
