import logging
import threading
from typing import Any, Optional
from vidreprocess.domain.events import AbortRequested, ActionMessage
from vidreprocess.infrastructure.event_bus import EventBus


class CancellationToken:
    """Monotonic per-run abort flag: once requested, it stays requested."""

    def __init__(self):
        self._event = threading.Event()

    @property
    def is_requested(self) -> bool:
        return self._event.is_set()

    def request(self) -> bool:
        """Sets the flag. Returns True only for the first request."""
        if self._event.is_set():
            return False
        self._event.set()
        return True


class AbortController:
    """Cooperative abort for one run plus a best-effort engine cancel.

    The token alone stops the orchestrator from dispatching further jobs; the
    engine cancel only shortens the job in flight.
    """

    def __init__(self, engine: Any, event_bus: Optional[EventBus] = None):
        self.engine = engine
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)
        self._token = CancellationToken()
        self.last_cancel_error: Optional[Exception] = None

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def is_requested(self) -> bool:
        return self._token.is_requested

    def begin_run(self) -> CancellationToken:
        """Issues a fresh token for a new run."""
        self._token = CancellationToken()
        self.last_cancel_error = None
        return self._token

    def request_abort(self) -> None:
        if self._token.request():
            self.logger.info("Abort requested - no further files will be started")
            if self.event_bus is not None:
                self.event_bus.publish(AbortRequested())
                self.event_bus.publish(ActionMessage(message="Attempting to abort current processing..."))

        try:
            self.engine.cancel()
        except Exception as e:
            self.last_cancel_error = e
            self.logger.error(f"Error sending abort signal: {e}")
            if self.event_bus is not None:
                self.event_bus.publish(ActionMessage(message=f"Error sending abort signal: {e}"))
