import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union
from vidreprocess.domain.events import JobStarted, LogEvent
from vidreprocess.infrastructure.event_bus import EventBus


class LogRouter:
    """Demultiplexes the engine's log stream into one list of lines per file.

    Appends never depend on which file is selected for viewing; only
    within-path order is guaranteed. Logs from earlier runs persist until the
    job is removed or the registry is cleared.
    """

    def __init__(self):
        self._logs: Dict[str, List[str]] = {}
        self._lock = threading.Lock()
        self.selected_path: Optional[str] = None

    def append(self, path: str, message: str) -> None:
        with self._lock:
            self._logs.setdefault(path, []).append(message)

    def on_log_event(self, event: LogEvent) -> None:
        self.append(event.path, event.message)

    def on_job_started(self, event: JobStarted) -> None:
        self.select(event.job.path)

    def select(self, path: Optional[str]) -> None:
        self.selected_path = path

    def get(self, path: str) -> List[str]:
        with self._lock:
            return list(self._logs.get(path, ()))

    def selected_lines(self) -> List[str]:
        if self.selected_path is None:
            return []
        return self.get(self.selected_path)

    def paths(self) -> List[str]:
        with self._lock:
            return list(self._logs)

    def clear(self, path: str) -> None:
        with self._lock:
            self._logs.pop(path, None)
        if self.selected_path == path:
            self.selected_path = None

    def clear_all(self) -> None:
        with self._lock:
            self._logs.clear()
        self.selected_path = None

    def save(self, path: str, destination: Union[str, Path]) -> Path:
        """Writes one file's log to a text file."""
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        lines = self.get(path)
        destination.write_text("\n".join(lines) + ("\n" if lines else ""))
        return destination

    @contextmanager
    def listen(self, bus: EventBus) -> Iterator["LogRouter"]:
        """Subscribes to the log stream for the duration of the with-block."""
        with bus.subscription(LogEvent, self.on_log_event), \
                bus.subscription(JobStarted, self.on_job_started):
            yield self
