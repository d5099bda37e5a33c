import pytest
import threading
from typer.testing import CliRunner

from vidreprocess import main as cli
from vidreprocess.config.models import Codec
from vidreprocess.domain.models import FileJob, JobStatus, StatusCheckResult
from vidreprocess.pipeline.abort import AbortController


@pytest.fixture
def app_env(tmp_path, monkeypatch, fake_engine):
    """Points the CLI at a temp config dir and swaps in the fake engine."""
    created = {}
    app_dir = tmp_path / "app"

    class RecordingAbortController(AbortController):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created["abort"] = self

    monkeypatch.setattr(cli, "default_config_dir", lambda: app_dir)
    monkeypatch.setattr(cli, "FFmpegEngine", lambda **kwargs: fake_engine)
    monkeypatch.setattr(cli, "AbortController", RecordingAbortController)
    created["app_dir"] = app_dir
    return created


def _paths(files):
    return [str(f.resolve()) for f in files]


def test_process_success_with_cleanup(app_env, fake_engine, dummy_video_files):
    first, second, third = _paths(dummy_video_files)
    fake_engine.sizes[first] = (1000, 400)
    fake_engine.sizes[second] = (500, 700)
    runner = CliRunner()

    result = runner.invoke(cli.app, ["process", *map(str, dummy_video_files), "--yes", "--delete-originals"])

    assert result.exit_code == 0, result.output
    assert fake_engine.processed == [first, second, third]
    assert first in fake_engine.deleted
    assert f"{second}.out.mp4" in fake_engine.deleted
    assert "Results" in result.output
    assert "Cleanup: deleted" in result.output
    assert (app_env["app_dir"] / "vidreprocess.log").exists()


def test_process_keeps_larger_outputs_when_asked(app_env, fake_engine, dummy_video_files):
    fake_engine.sizes[_paths(dummy_video_files)[0]] = (500, 700)
    runner = CliRunner()

    result = runner.invoke(cli.app, ["process", str(dummy_video_files[0]), "--yes", "--keep-larger-outputs"])

    assert result.exit_code == 0, result.output
    assert fake_engine.deleted == []


def test_process_cleanup_declined(app_env, fake_engine, dummy_video_files):
    fake_engine.sizes[_paths(dummy_video_files)[0]] = (500, 700)
    runner = CliRunner()

    result = runner.invoke(cli.app, ["process", str(dummy_video_files[0])], input="n\n")

    assert result.exit_code == 0, result.output
    assert "Delete these files?" in result.output
    assert fake_engine.deleted == []


def test_process_failure_exits_one(app_env, fake_engine, dummy_video_files):
    fake_engine.failures[_paths(dummy_video_files)[1]] = "disk full"
    runner = CliRunner()

    result = runner.invoke(cli.app, ["process", *map(str, dummy_video_files), "--yes"])

    assert result.exit_code == 1
    assert "disk full" in result.output
    assert len(fake_engine.processed) == 3


def test_process_abort_exits_130(app_env, fake_engine, dummy_video_files):
    fake_engine.on_process = lambda path: app_env["abort"].request_abort()
    runner = CliRunner()

    result = runner.invoke(cli.app, ["process", *map(str, dummy_video_files), "--yes"])

    assert result.exit_code == 130
    assert len(fake_engine.processed) == 1
    assert "aborted" in result.output


def test_run_in_worker_issues_token_before_thread_starts(orchestrator, registry, fake_engine, abort_controller, options):
    registry.add([FileJob.from_path("/v/1.mp4")])
    issued_on = []
    begin_run = abort_controller.begin_run

    def begin_run_then_ctrl_c():
        issued_on.append(threading.current_thread().name)
        token = begin_run()
        abort_controller.request_abort()
        return token

    abort_controller.begin_run = begin_run_then_ctrl_c

    cli._run_in_worker(orchestrator, abort_controller, options)

    assert issued_on == [threading.current_thread().name]
    assert fake_engine.processed == []
    assert registry.get("/v/1.mp4").status == JobStatus.PENDING


def test_process_applies_option_overrides(app_env, fake_engine, dummy_video_files):
    seen = []
    original_process = fake_engine.process

    def spy(path, options):
        seen.append(options)
        return original_process(path, options)

    fake_engine.process = spy
    runner = CliRunner()

    result = runner.invoke(cli.app, [
        "process", str(dummy_video_files[0]), "--yes",
        "--quality", "30", "--codec", "libx265", "--filter", "half", "--modifier", "ss=10", "--stabilize",
    ])

    assert result.exit_code == 0, result.output
    options = seen[0]
    assert options.quality == 30
    assert options.codec == Codec.LIBX265
    assert options.filters == ["half"]
    assert options.modifiers == [("ss", "10")]
    assert options.stabilize is True


def test_process_uses_config_file(app_env, fake_engine, dummy_video_files, config_yaml_path):
    seen = []
    original_process = fake_engine.process
    fake_engine.process = lambda path, options: seen.append(options) or original_process(path, options)
    runner = CliRunner()

    result = runner.invoke(cli.app, ["process", str(dummy_video_files[0]), "--yes", "-c", str(config_yaml_path)])

    assert result.exit_code == 0, result.output
    assert seen[0].quality == 30
    assert seen[0].filters == ["half", "denoise"]


def test_process_missing_config(app_env, dummy_video_files, tmp_path):
    runner = CliRunner()
    result = runner.invoke(cli.app, ["process", str(dummy_video_files[0]), "-c", str(tmp_path / "missing.yaml")])

    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_process_missing_input(app_env, tmp_path):
    runner = CliRunner()
    result = runner.invoke(cli.app, ["process", str(tmp_path / "gone.mp4")])

    assert result.exit_code == 1
    assert "not found" in result.output


def test_process_unknown_filter(app_env, fake_engine, dummy_video_files):
    runner = CliRunner()
    result = runner.invoke(cli.app, ["process", str(dummy_video_files[0]), "--filter", "sepia"])

    assert result.exit_code == 1
    assert "Unknown filter/modifier: sepia" in result.output
    assert fake_engine.processed == []


def test_process_bad_modifier_syntax(app_env, dummy_video_files):
    runner = CliRunner()
    result = runner.invoke(cli.app, ["process", str(dummy_video_files[0]), "--modifier", "ss"])

    assert result.exit_code == 1
    assert "expected ID=VALUE" in result.output


def test_process_all_skipped(app_env, fake_engine, dummy_video_files):
    for path in _paths(dummy_video_files):
        fake_engine.statuses[path] = StatusCheckResult.SKIPPED
    runner = CliRunner()

    result = runner.invoke(cli.app, ["process", *map(str, dummy_video_files)])

    assert result.exit_code == 0
    assert "No files to process" in result.output
    assert fake_engine.processed == []


def test_process_tagged_original_confirm(app_env, fake_engine, dummy_video_files):
    path = _paths(dummy_video_files)[0]
    fake_engine.statuses[path] = StatusCheckResult.CONFIRM
    runner = CliRunner()

    result = runner.invoke(cli.app, ["process", str(dummy_video_files[0])], input="y\n")

    assert result.exit_code == 0, result.output
    assert "Process it again?" in result.output
    assert fake_engine.processed == [path]


def test_process_save_logs(app_env, dummy_video_files, tmp_path):
    logs_dir = tmp_path / "logs"
    runner = CliRunner()

    result = runner.invoke(cli.app, ["process", str(dummy_video_files[0]), "--yes", "--save-logs", str(logs_dir)])

    assert result.exit_code == 0, result.output
    saved = logs_dir / "001_video0.mp4.log"
    assert saved.exists()
    assert "Processing: video0.mp4" in saved.read_text()


def test_save_logs_keeps_same_named_files_apart(registry, log_router, tmp_path):
    first, second = "/card/100GOPRO/GOPR0001.MP4", "/card/101GOPRO/GOPR0001.MP4"
    registry.add([FileJob.from_path(first), FileJob.from_path(second)])
    log_router.append(first, "from folder 100")
    log_router.append(second, "from folder 101")

    cli._save_logs(log_router, registry, tmp_path / "logs")

    assert (tmp_path / "logs" / "001_GOPR0001.MP4.log").read_text() == "from folder 100\n"
    assert (tmp_path / "logs" / "002_GOPR0001.MP4.log").read_text() == "from folder 101\n"


def test_process_review_rejects_output(app_env, fake_engine, dummy_video_files):
    path = _paths(dummy_video_files)[0]
    runner = CliRunner()

    result = runner.invoke(cli.app, ["process", str(dummy_video_files[0]), "--review"], input="y\n")

    assert result.exit_code == 0, result.output
    assert fake_engine.deleted == [f"{path}.out.mp4"]
    assert "Rejected video0.mp4" in result.output


def test_filters_command(app_env):
    runner = CliRunner()
    result = runner.invoke(cli.app, ["filters"])

    assert result.exit_code == 0
    assert "half" in result.output
    assert (app_env["app_dir"] / "video_filters.tab").exists()


def test_modifiers_command(app_env):
    runner = CliRunner()
    result = runner.invoke(cli.app, ["modifiers"])

    assert result.exit_code == 0
    assert "ss" in result.output
