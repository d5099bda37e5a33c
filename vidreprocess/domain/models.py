from enum import Enum
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field

class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"
    ABORTED = "aborted"  # Abort requested while the job was in flight
    SKIPPED = "skipped"  # Already processed, never dispatched

TERMINAL_STATUSES = frozenset({JobStatus.DONE, JobStatus.ERROR, JobStatus.ABORTED, JobStatus.SKIPPED})
RESETTABLE_STATUSES = frozenset({JobStatus.DONE, JobStatus.ERROR, JobStatus.ABORTED})

class StatusCheckResult(str, Enum):
    NOT_PROCESSED = "not_processed"
    SKIPPED = "skipped"
    CONFIRM = "confirm"  # Tagged original, ask before reprocessing

class ProcessingStats(BaseModel):
    duration_secs: float = Field(ge=0)
    original_size: int = Field(ge=0)
    new_size: int = Field(ge=0)
    output_path: str

class FileJob(BaseModel):
    path: str
    name: str
    status: JobStatus = JobStatus.PENDING
    processed: bool = False
    error: Optional[str] = None
    stats: Optional[ProcessingStats] = None

    @classmethod
    def from_path(cls, path: str) -> "FileJob":
        return cls(path=str(path), name=Path(path).name or str(path))

class VideoFilter(BaseModel):
    short_name: str
    long_name: str
    priority: int
    code: str

class VideoModifier(BaseModel):
    short_name: str
    long_name: str
    code: str
