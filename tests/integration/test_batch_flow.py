"""Full add -> run -> cleanup -> reject -> rerun flow against a fake engine."""
import threading
import pytest
from vidreprocess.config.models import CleanupRules
from vidreprocess.domain.events import JobCompleted, JobStarted, LogEvent, RunFinished
from vidreprocess.domain.models import FileJob, JobStatus, StatusCheckResult
from vidreprocess.pipeline.cleanup import CleanupPolicy
from vidreprocess.pipeline.status_checker import StatusChecker

pytestmark = pytest.mark.integration


def test_full_batch_flow(registry, fake_engine, event_bus, log_router, orchestrator, options):
    fake_engine.statuses["/v/old.mp4"] = StatusCheckResult.SKIPPED
    fake_engine.statuses["/v/tagged.mp4"] = StatusCheckResult.CONFIRM
    fake_engine.sizes["/v/A.mp4"] = (100, 80)
    fake_engine.sizes["/v/B.mp4"] = (50, 70)
    fake_engine.sizes["/v/tagged.mp4"] = (60, 60)
    fake_engine.failures["/v/C.mp4"] = "disk full"

    checker = StatusChecker(fake_engine, confirm=lambda job: job.path == "/v/tagged.mp4")
    checker.add_files(registry, ["/v/A.mp4", "/v/old.mp4", "/v/B.mp4", "/v/tagged.mp4", "/v/C.mp4"])
    assert registry.get("/v/old.mp4").status == JobStatus.SKIPPED
    assert registry.get("/v/tagged.mp4").status == JobStatus.PENDING

    finished = []
    event_bus.subscribe(RunFinished, finished.append)
    with log_router.listen(event_bus):
        orchestrator.run(options)

    assert fake_engine.processed == ["/v/A.mp4", "/v/B.mp4", "/v/tagged.mp4", "/v/C.mp4"]
    assert (finished[0].completed, finished[0].failed, finished[0].skipped) == (3, 1, 1)
    assert registry.get("/v/C.mp4").error == "disk full"

    cleanup = CleanupPolicy(registry, fake_engine, event_bus=event_bus, orchestrator=orchestrator)
    rules = CleanupRules(delete_originals_if_smaller_output=True, delete_outputs_if_larger_than_original=True)
    to_delete = cleanup.compute_deletion_set(registry.jobs(), rules)
    assert "/v/A.mp4" in to_delete
    assert "/v/B.mp4.out.mp4" in to_delete

    cleanup.apply_deletion(sorted(to_delete))
    assert "/v/A.mp4" not in registry
    assert log_router.get("/v/A.mp4") == []
    assert registry.get("/v/B.mp4").status == JobStatus.PENDING

    # Reject a good output, then rerun: only B, the rejected job and the failure go again
    cleanup.reject("/v/tagged.mp4")
    fake_engine.processed.clear()
    del fake_engine.failures["/v/C.mp4"]
    fake_engine.sizes["/v/B.mp4"] = (50, 30)

    orchestrator.run(options)

    assert fake_engine.processed == ["/v/B.mp4", "/v/tagged.mp4", "/v/C.mp4"]
    assert registry.count(JobStatus.DONE) == 3
    assert registry.get("/v/old.mp4").status == JobStatus.SKIPPED
    assert all(
        (job.status == JobStatus.DONE) == (job.stats is not None)
        for job in registry.jobs()
    )


def test_abort_from_another_thread(registry, fake_engine, event_bus, orchestrator, abort_controller, options):
    """Abort arrives while the engine is busy; the current job ends aborted and nothing else starts."""
    registry.add([FileJob.from_path(f"/v/{i}.mp4") for i in range(5)])
    started = threading.Event()
    release = threading.Event()

    def block(path):
        started.set()
        release.wait(5)

    fake_engine.on_process = block
    starts = []
    event_bus.subscribe(JobStarted, starts.append)

    worker = threading.Thread(target=orchestrator.run, args=(options,))
    worker.start()
    assert started.wait(5)
    assert orchestrator.is_running is True

    abort_controller.request_abort()
    release.set()
    worker.join(5)

    assert not worker.is_alive()
    assert orchestrator.is_running is False
    assert len(starts) == 1
    assert registry.get("/v/0.mp4").status == JobStatus.ABORTED
    assert registry.count(JobStatus.PENDING) == 4
    assert fake_engine.cancel_calls == 1


def test_log_lines_stay_with_their_file(registry, fake_engine, event_bus, log_router, orchestrator, options):
    registry.add([FileJob.from_path("/v/x.mp4"), FileJob.from_path("/v/y.mp4")])
    fake_engine.on_process = lambda path: event_bus.publish(LogEvent(path=path, message=f"ffmpeg {path}"))
    selected = []
    event_bus.subscribe(JobCompleted, lambda e: selected.append(log_router.selected_path))

    with log_router.listen(event_bus):
        orchestrator.run(options)

    assert log_router.get("/v/x.mp4") == ["Processing: x.mp4", "ffmpeg /v/x.mp4", "Finished: x.mp4"]
    assert log_router.get("/v/y.mp4") == ["Processing: y.mp4", "ffmpeg /v/y.mp4", "Finished: y.mp4"]
    assert selected == ["/v/x.mp4", "/v/y.mp4"]
