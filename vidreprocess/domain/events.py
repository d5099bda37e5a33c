"""Domain events for the reprocessing pipeline.

Events flow through the EventBus, decoupling the orchestrator and the engine
from the presentation layer. The engine's log stream is itself an event
(`LogEvent`), routed per file by the LogRouter.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from pydantic import BaseModel
from .models import FileJob


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class LogEvent(Event):
    """One line of engine or orchestrator output for a given input file."""

    path: str
    message: str


class JobEvent(Event):
    """Base class for events related to a specific job."""

    job: FileJob


class JobStarted(JobEvent):
    """Emitted when a job transitions to processing."""

    pass


class JobCompleted(JobEvent):
    """Emitted when a job is done and its stats are attached."""

    pass


class JobFailed(JobEvent):
    """Emitted when the engine reported an error for a job."""

    error_message: str


class JobAborted(JobEvent):
    """Emitted when a job ends as aborted."""

    pass


class RunStarted(Event):
    """Emitted when the orchestrator begins a run."""

    total: int


class RunFinished(Event):
    """Emitted when the orchestrator returns to idle."""

    completed: int = 0
    failed: int = 0
    skipped: int = 0
    aborted: int = 0
    was_aborted: bool = False


class AbortRequested(Event):
    """Emitted once per run when the user requests an abort."""

    pass


class ActionMessage(Event):
    """User-facing feedback message."""

    message: str
