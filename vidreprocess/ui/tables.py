from typing import Iterable, Optional
from rich.table import Table
from rich.text import Text
from rich.box import ROUNDED
from vidreprocess.domain.models import FileJob, JobStatus, VideoFilter, VideoModifier

STATUS_STYLES = {
    JobStatus.PENDING: "dim",
    JobStatus.PROCESSING: "cyan",
    JobStatus.DONE: "green",
    JobStatus.ERROR: "red",
    JobStatus.ABORTED: "yellow",
    JobStatus.SKIPPED: "blue",
}


def format_size(size: Optional[int]) -> str:
    """Format size: 123B, 1.2KB, 45.1MB, 3.2GB."""
    if size is None:
        return "-"
    if size == 0:
        return "0B"
    units = ['B', 'KB', 'MB', 'GB', 'TB']
    idx = 0
    val = float(size)
    while val >= 1024.0 and idx < len(units) - 1:
        val /= 1024.0
        idx += 1
    if idx == 0:
        return f"{int(val)}B"
    return f"{val:.1f}{units[idx]}"


def format_time(seconds: Optional[float]) -> str:
    """Format time: 59s, 01m 01s, 1h 01m."""
    if seconds is None:
        return "--:--"
    if seconds < 60:
        return f"{int(seconds)}s"
    if seconds < 3600:
        return f"{int(seconds // 60):02d}m {int(seconds % 60):02d}s"
    return f"{int(seconds // 3600)}h {int((seconds % 3600) // 60):02d}m"


def format_ratio(original_size: int, new_size: int) -> str:
    if original_size == 0:
        return "-"
    return f"{new_size / original_size * 100:.0f}%"


def build_jobs_table(jobs: Iterable[FileJob], title: str = "Files") -> Table:
    table = Table(title=title, box=ROUNDED, expand=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Original", justify="right")
    table.add_column("New", justify="right")
    table.add_column("Ratio", justify="right")
    table.add_column("Time", justify="right")
    table.add_column("Details", overflow="fold")

    for idx, job in enumerate(jobs, start=1):
        status = Text(job.status.value, style=STATUS_STYLES.get(job.status, ""))
        if job.processed and job.status != JobStatus.DONE:
            status.append(" (processed)", style="dim")
        if job.stats is not None:
            stats = job.stats
            table.add_row(
                str(idx), job.name, status,
                format_size(stats.original_size),
                format_size(stats.new_size),
                format_ratio(stats.original_size, stats.new_size),
                format_time(stats.duration_secs),
                stats.output_path,
            )
        else:
            table.add_row(str(idx), job.name, status, "-", "-", "-", "-", job.error or "")
    return table


def build_cleanup_table(candidates: Iterable, title: str = "Files to delete") -> Table:
    table = Table(title=title, box=ROUNDED)
    table.add_column("Kind")
    table.add_column("Path", overflow="fold")
    table.add_column("Size", justify="right")
    for candidate in candidates:
        style = "yellow" if candidate.kind.value == "original" else "magenta"
        table.add_row(
            Text(candidate.kind.value, style=style),
            candidate.path,
            format_size(candidate.size_bytes),
        )
    return table


def build_filters_table(filters: Iterable[VideoFilter]) -> Table:
    table = Table(title="Filters", box=ROUNDED)
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Priority", justify="right")
    table.add_column("Code", style="dim", overflow="fold")
    for video_filter in filters:
        table.add_row(video_filter.short_name, video_filter.long_name, str(video_filter.priority), video_filter.code)
    return table


def build_modifiers_table(modifiers: Iterable[VideoModifier]) -> Table:
    table = Table(title="Modifiers", box=ROUNDED)
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Code", style="dim", overflow="fold")
    for modifier in modifiers:
        table.add_row(modifier.short_name, modifier.long_name, modifier.code)
    return table
