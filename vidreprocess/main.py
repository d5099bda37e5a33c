import typer
import threading
from pathlib import Path
from typing import List, Optional, Tuple
from rich.console import Console

from vidreprocess.config.loader import load_config
from vidreprocess.config.models import AppConfig, Codec, HwAccel, Preset
from vidreprocess.domain.errors import CatalogError
from vidreprocess.domain.models import FileJob, JobStatus
from vidreprocess.infrastructure.logging import setup_logging
from vidreprocess.infrastructure.event_bus import EventBus
from vidreprocess.infrastructure.catalog import FilterCatalog
from vidreprocess.infrastructure.ffprobe import FFprobeAdapter
from vidreprocess.infrastructure.ffmpeg import FFmpegEngine
from vidreprocess.pipeline.registry import FileRegistry
from vidreprocess.pipeline.log_router import LogRouter
from vidreprocess.pipeline.status_checker import StatusChecker
from vidreprocess.pipeline.abort import AbortController
from vidreprocess.pipeline.orchestrator import ProcessingOrchestrator
from vidreprocess.pipeline.cleanup import CleanupPolicy
from vidreprocess.ui.reporter import ConsoleReporter
from vidreprocess.ui.tables import (
    build_cleanup_table,
    build_filters_table,
    build_jobs_table,
    build_modifiers_table,
)

APP_NAME = "vidreprocess"
CONFIG_FILENAME = "vidreprocess.yaml"
EXIT_ABORTED = 130

app = typer.Typer(help="vidreprocess - batch video re-encoding with ffmpeg")
console = Console()


def default_config_dir() -> Path:
    return Path(typer.get_app_dir(APP_NAME))


def _load_app_config(config_path: Optional[Path]) -> AppConfig:
    """User-given config must exist; the default one is optional."""
    if config_path is not None:
        return load_config(config_path)
    default_path = default_config_dir() / CONFIG_FILENAME
    if default_path.exists():
        return load_config(default_path)
    return AppConfig()


def _parse_modifiers(values: List[str]) -> List[Tuple[str, str]]:
    parsed = []
    for value in values:
        name, sep, arg = value.partition("=")
        if not sep or not name:
            raise ValueError(f"Invalid modifier '{value}', expected ID=VALUE")
        parsed.append((name.strip(), arg.strip()))
    return parsed


def _check_catalog_ids(catalog: FilterCatalog, filters: List[str], modifiers: List[Tuple[str, str]]) -> None:
    unknown = [f for f in filters if catalog.filter_by_name(f) is None]
    unknown += [name for name, _ in modifiers if catalog.modifier_by_name(name) is None]
    if unknown:
        raise ValueError(f"Unknown filter/modifier: {', '.join(unknown)}")


def _run_in_worker(orchestrator: ProcessingOrchestrator, abort: AbortController, options) -> None:
    """Runs the batch on a worker thread; Ctrl+C in the main thread becomes an abort."""
    errors: List[BaseException] = []
    token = abort.begin_run()

    def target():
        try:
            orchestrator.run(options, token=token)
        except Exception as e:
            errors.append(e)

    worker = threading.Thread(target=target, name="vidreprocess-run", daemon=True)
    worker.start()
    while worker.is_alive():
        try:
            worker.join(0.2)
        except KeyboardInterrupt:
            console.print("[yellow]Ctrl+C - aborting after the current file...[/]")
            abort.request_abort()
    if errors:
        raise errors[0]


def _save_logs(log_router: LogRouter, registry: FileRegistry, directory: Path) -> None:
    # One file per job, numbered in log order
    for index, path in enumerate(log_router.paths(), start=1):
        job = registry.get(path)
        name = job.name if job else Path(path).name
        log_router.save(path, directory / f"{index:03d}_{name}.log")
    console.print(f"[dim]Logs saved to {directory}[/]")


def _review(cleanup: CleanupPolicy, registry: FileRegistry) -> None:
    for job in registry.jobs():
        if job.status != JobStatus.DONE or job.stats is None:
            continue
        result = cleanup.reject(
            job.path,
            confirm=lambda output: typer.confirm(f"Reject {job.name} and delete {output}?", default=False),
        )
        if result is not None and not result.deleted:
            typer.secho(f"Could not delete {result.path}: {result.error}", fg=typer.colors.RED, err=True)


@app.command()
def process(
    files: List[Path] = typer.Argument(..., help="Video files to re-encode"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    quality: Optional[int] = typer.Option(None, "--quality", "-q", help="Override quality (0-63, lower is better)"),
    codec: Optional[Codec] = typer.Option(None, "--codec", help="Override video codec"),
    preset: Optional[Preset] = typer.Option(None, "--preset", help="Override encoder preset"),
    hwaccel: Optional[HwAccel] = typer.Option(None, "--hwaccel", help="Override hardware decoding"),
    filters: List[str] = typer.Option([], "--filter", "-f", help="Filter id from the catalog (repeatable)"),
    modifiers: List[str] = typer.Option([], "--modifier", "-m", help="Modifier as ID=VALUE (repeatable)"),
    stabilize: Optional[bool] = typer.Option(None, "--stabilize/--no-stabilize", help="Two-pass vidstab stabilization"),
    tag_original: Optional[bool] = typer.Option(None, "--tag-original/--no-tag-original", help="Tag the original file as processed"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes to every prompt"),
    delete_originals: Optional[bool] = typer.Option(
        None, "--delete-originals/--keep-originals",
        help="Delete originals whose output came out smaller"
    ),
    delete_larger_outputs: Optional[bool] = typer.Option(
        None, "--delete-larger-outputs/--keep-larger-outputs",
        help="Delete outputs that came out larger than the original"
    ),
    review: bool = typer.Option(False, "--review", help="Review each output and optionally reject it"),
    save_logs: Optional[Path] = typer.Option(None, "--save-logs", help="Directory for per-file ffmpeg logs"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Echo ffmpeg output"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Re-encode video files one at a time, then clean up by size."""
    try:
        config = _load_app_config(config_path)
        if debug:
            config.general.debug = True

        config_dir = Path(config.general.config_dir) if config.general.config_dir else default_config_dir()
        log_path_value = Path(config.general.log_path) if config.general.log_path else None
        logger = setup_logging(config_dir, debug=config.general.debug, log_path=log_path_value)
        logger.info(f"vidreprocess started: files={len(files)}")

        try:
            parsed_modifiers = _parse_modifiers(modifiers) if modifiers else None
            options = config.options.merge(
                quality=quality,
                codec=codec,
                preset=preset,
                hwaccel=hwaccel,
                filters=filters or None,
                modifiers=parsed_modifiers,
                stabilize=stabilize,
                tag_original=tag_original,
            )
        except ValueError as exc:
            typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

        missing = [str(f) for f in files if not f.is_file()]
        if missing:
            typer.secho(f"Error: file(s) not found: {', '.join(missing)}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

        catalog = FilterCatalog(config_dir)
        try:
            _check_catalog_ids(catalog, options.filters, options.modifiers)
        except (ValueError, CatalogError) as exc:
            typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

        logger.info(f"Options: {options.model_dump(mode='json')}")

        bus = EventBus()
        engine = FFmpegEngine(event_bus=bus, catalog=catalog, ffprobe_adapter=FFprobeAdapter(), debug=config.general.debug)
        log_router = LogRouter()
        registry = FileRegistry(log_router=log_router)
        abort = AbortController(engine, event_bus=bus)
        orchestrator = ProcessingOrchestrator(registry, engine, bus, abort)
        cleanup = CleanupPolicy(registry, engine, event_bus=bus, orchestrator=orchestrator)
        ConsoleReporter(bus, console=console, log_router=log_router, verbose=verbose)

        def confirm_reprocess(job: FileJob) -> bool:
            if yes:
                return True
            return typer.confirm(f"{job.name} was already processed. Process it again?", default=False)

        checker = StatusChecker(engine, confirm=confirm_reprocess, confirm_reprocess=config.general.confirm_reprocess)
        added = checker.add_files(registry, [str(f.resolve()) for f in files])
        logger.info(f"Added {len(added)} file(s), {registry.count(JobStatus.SKIPPED)} skipped")

        if registry.count(JobStatus.PENDING) == 0:
            console.print(build_jobs_table(registry.jobs()))
            console.print("[yellow]No files to process.[/]")
            raise typer.Exit(code=0)

        with log_router.listen(bus):
            _run_in_worker(orchestrator, abort, options)

        console.print(build_jobs_table(registry.jobs(), title="Results"))

        if save_logs is not None:
            _save_logs(log_router, registry, save_logs)

        rules = config.cleanup.model_copy(update={
            k: v for k, v in {
                "delete_originals_if_smaller_output": delete_originals,
                "delete_outputs_if_larger_than_original": delete_larger_outputs,
            }.items() if v is not None
        })
        candidates = cleanup.plan(registry.jobs(), rules)
        if candidates:
            console.print(build_cleanup_table(candidates))
            if yes or typer.confirm("Delete these files?", default=False):
                results = cleanup.apply_deletion([c.path for c in candidates])
                for result in results:
                    if not result.deleted:
                        typer.secho(f"Could not delete {result.path}: {result.error}", fg=typer.colors.RED, err=True)

        if review and not abort.is_requested:
            _review(cleanup, registry)

        if abort.is_requested:
            typer.secho("Processing aborted by user", fg=typer.colors.YELLOW)
            raise typer.Exit(code=EXIT_ABORTED)
        if registry.count(JobStatus.ERROR):
            raise typer.Exit(code=1)

    except typer.Exit:
        raise

    except FileNotFoundError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    except Exception as e:
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def _open_catalog(config_path: Optional[Path]) -> FilterCatalog:
    config = _load_app_config(config_path)
    config_dir = Path(config.general.config_dir) if config.general.config_dir else default_config_dir()
    return FilterCatalog(config_dir)


@app.command("filters")
def list_filters(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """List the video filters available to --filter."""
    try:
        console.print(build_filters_table(_open_catalog(config_path).filters()))
    except (CatalogError, FileNotFoundError) as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command("modifiers")
def list_modifiers(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """List the modifiers available to --modifier."""
    try:
        console.print(build_modifiers_table(_open_catalog(config_path).modifiers()))
    except (CatalogError, FileNotFoundError) as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
