"""Ordered, path-keyed collection of FileJobs.

The registry owns the jobs. Readers get copies, so the presentation layer can
never mutate a job behind the orchestrator's back; writers go through
`update`.
"""

import logging
import threading
from typing import Any, Dict, Iterable, Iterator, List, Optional, TYPE_CHECKING
from vidreprocess.domain.models import FileJob, JobStatus, RESETTABLE_STATUSES

if TYPE_CHECKING:
    from vidreprocess.pipeline.log_router import LogRouter


class FileRegistry:
    """Insertion-ordered job list with unique paths."""

    def __init__(self, log_router: Optional["LogRouter"] = None):
        self.log_router = log_router
        self.logger = logging.getLogger(__name__)
        self._jobs: Dict[str, FileJob] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._jobs

    def __iter__(self) -> Iterator[FileJob]:
        return iter(self.jobs())

    def add(self, jobs: Iterable[FileJob]) -> List[FileJob]:
        """Appends jobs whose path is not present yet; duplicates are dropped silently."""
        added = []
        with self._lock:
            for job in jobs:
                if job.path in self._jobs:
                    continue
                stored = job.model_copy(deep=True)
                self._jobs[job.path] = stored
                added.append(stored.model_copy(deep=True))
        if added:
            self.logger.info(f"Registry: added {len(added)} file(s), total={len(self)}")
        return added

    def remove(self, path: str) -> bool:
        with self._lock:
            removed = self._jobs.pop(path, None) is not None
        if removed:
            if self.log_router is not None:
                self.log_router.clear(path)
            self.logger.info(f"Registry: removed {path}")
        return removed

    def clear(self) -> None:
        """Empties the registry and the log map. Confirmation is up to the caller."""
        with self._lock:
            self._jobs.clear()
        if self.log_router is not None:
            self.log_router.clear_all()
        self.logger.info("Registry: cleared")

    def reset_terminal(self) -> List[str]:
        """Moves done/error/aborted jobs back to pending.

        Status only: stats stay on formerly-done jobs so they can still be
        compared and cleaned up. Returns the paths that were done.
        """
        was_done = []
        with self._lock:
            for job in self._jobs.values():
                if job.status in RESETTABLE_STATUSES:
                    if job.status == JobStatus.DONE:
                        was_done.append(job.path)
                    job.status = JobStatus.PENDING
        return was_done

    def get(self, path: str) -> Optional[FileJob]:
        with self._lock:
            job = self._jobs.get(path)
            return job.model_copy(deep=True) if job is not None else None

    def jobs(self) -> List[FileJob]:
        with self._lock:
            return [job.model_copy(deep=True) for job in self._jobs.values()]

    def paths(self) -> List[str]:
        with self._lock:
            return list(self._jobs)

    def update(self, path: str, /, **changes: Any) -> Optional[FileJob]:
        """Applies field changes to one job; None if the job is gone."""
        with self._lock:
            job = self._jobs.get(path)
            if job is None:
                return None
            for field, value in changes.items():
                if field not in FileJob.model_fields or field == "path":
                    raise ValueError(f"Cannot update field '{field}' of a job")
                setattr(job, field, value)
            return job.model_copy(deep=True)

    def count(self, status: JobStatus) -> int:
        with self._lock:
            return sum(1 for job in self._jobs.values() if job.status == status)
