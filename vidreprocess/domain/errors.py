"""Exception hierarchy for the reprocessing pipeline.

None of these are fatal to the process: the orchestrator and cleanup policy
turn them into per-job status or per-path results.
"""


class VidReprocessError(Exception):
    """Base class for all vidreprocess errors."""


class TranscodeError(VidReprocessError):
    """The engine failed to produce an output for a job."""


class StatusCheckError(VidReprocessError):
    """Probing a file for processed markers failed."""


class CancelError(VidReprocessError):
    """The best-effort cancel request could not be delivered."""


class DeletionError(VidReprocessError):
    """An artifact could not be deleted."""


class CatalogError(VidReprocessError):
    """The filter/modifier catalog is missing or malformed."""


class OrchestratorBusyError(VidReprocessError):
    """A run is already in flight."""
