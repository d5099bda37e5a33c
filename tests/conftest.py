import pytest
import threading
import yaml
from typing import Callable, Dict, List, Optional
from vidreprocess.config.models import AppConfig, OptionsConfig
from vidreprocess.domain.errors import DeletionError, TranscodeError
from vidreprocess.domain.models import ProcessingStats, StatusCheckResult
from vidreprocess.infrastructure.event_bus import EventBus
from vidreprocess.pipeline.abort import AbortController
from vidreprocess.pipeline.log_router import LogRouter
from vidreprocess.pipeline.orchestrator import ProcessingOrchestrator
from vidreprocess.pipeline.registry import FileRegistry

# ============================================================================
# Fake engine
# ============================================================================

class FakeEngine:
    """In-memory engine: per-path sizes or failures, records every call."""

    def __init__(self):
        self.sizes: Dict[str, tuple] = {}
        self.failures: Dict[str, str] = {}
        self.statuses: Dict[str, StatusCheckResult] = {}
        self.undeletable: set = set()
        self.processed: List[str] = []
        self.deleted: List[str] = []
        self.cancel_calls = 0
        self.on_process: Optional[Callable[[str], None]] = None
        self._lock = threading.Lock()
        self.in_flight = 0
        self.max_in_flight = 0

    def process(self, path: str, options: OptionsConfig) -> ProcessingStats:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.processed.append(path)
            if self.on_process is not None:
                self.on_process(path)
            if path in self.failures:
                raise TranscodeError(self.failures[path])
            original_size, new_size = self.sizes.get(path, (100, 50))
            return ProcessingStats(
                duration_secs=1.5,
                original_size=original_size,
                new_size=new_size,
                output_path=f"{path}.out.mp4",
            )
        finally:
            with self._lock:
                self.in_flight -= 1

    def cancel(self) -> None:
        self.cancel_calls += 1

    def delete(self, path: str) -> None:
        if path in self.undeletable:
            raise DeletionError(f"Permission denied: {path}")
        self.deleted.append(path)

    def check_status(self, path: str) -> StatusCheckResult:
        return self.statuses.get(path, StatusCheckResult.NOT_PROCESSED)


@pytest.fixture
def fake_engine():
    return FakeEngine()

# ============================================================================
# Pipeline Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

@pytest.fixture
def log_router():
    return LogRouter()

@pytest.fixture
def registry(log_router):
    return FileRegistry(log_router=log_router)

@pytest.fixture
def abort_controller(fake_engine, event_bus):
    return AbortController(fake_engine, event_bus=event_bus)

@pytest.fixture
def orchestrator(registry, fake_engine, event_bus, abort_controller):
    return ProcessingOrchestrator(registry, fake_engine, event_bus, abort_controller)

@pytest.fixture
def options():
    return OptionsConfig(quality=30)

@pytest.fixture
def make_stats():
    def _make(original_size=100, new_size=50, output_path="/videos/out.mp4", duration_secs=2.0):
        return ProcessingStats(
            duration_secs=duration_secs,
            original_size=original_size,
            new_size=new_size,
            output_path=output_path,
        )
    return _make

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Returns a sample AppConfig object for testing."""
    return AppConfig(
        general={"confirm_reprocess": False, "debug": False},
        options={"quality": 28, "codec": "libx265", "filters": ["half"]},
        cleanup={"delete_originals_if_smaller_output": True},
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "vidreprocess.yaml"

    content = {
        'general': {
            'config_dir': str(conf_dir),
            'confirm_reprocess': True,
            'debug': False,
        },
        'options': {
            'quality': 30,
            'codec': 'libx265',
            'preset': 'slow',
            'filters': ['half', 'denoise'],
            'modifiers': {'ss': '10'},
        },
        'cleanup': {
            'delete_originals_if_smaller_output': True,
            'delete_outputs_if_larger_than_original': False,
        },
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def dummy_video_files(tmp_path):
    """Creates dummy video files in a temporary input directory."""
    input_dir = tmp_path / "input"
    input_dir.mkdir()
    files = []
    for i in range(3):
        f = input_dir / f"video{i}.mp4"
        f.write_bytes(b"dummy video content " * 100)  # ~2KB
        files.append(f)
    return files


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
