import os
import shlex
import shutil
import subprocess
import logging
import tempfile
import threading
import time
import uuid
from pathlib import Path
from typing import List, Optional, Tuple, Union
from vidreprocess.config.models import OptionsConfig, HwAccel
from vidreprocess.domain.errors import CancelError, DeletionError, TranscodeError
from vidreprocess.domain.events import LogEvent
from vidreprocess.domain.models import ProcessingStats, StatusCheckResult
from vidreprocess.infrastructure.catalog import FilterCatalog
from vidreprocess.infrastructure.event_bus import EventBus
from vidreprocess.infrastructure.ffprobe import (
    FFprobeAdapter,
    LEGACY_COMMENT_MARKER,
    REPROCESSED_TAG,
    TAGGED_ORIGINAL_VALUE,
)

OUTPUT_EXTENSION = ".mp4"
VF_PREFIX = "vf:"


def _escape_filter_path(path: Path) -> str:
    return str(path).replace("'", "'\\''")


def move_file(source: Path, destination: Path) -> None:
    """Renames, falling back to copy+delete across filesystems."""
    try:
        source.rename(destination)
    except OSError:
        shutil.move(str(source), str(destination))


class FFmpegEngine:
    """Transcoding engine backed by ffmpeg/ffprobe subprocesses.

    Runs one ffmpeg process at a time and streams its stderr onto the
    EventBus as LogEvents keyed by the input path. The current process is
    tracked so `cancel()` can terminate it from another thread.
    """

    def __init__(
        self,
        event_bus: EventBus,
        catalog: FilterCatalog,
        ffprobe_adapter: Optional[FFprobeAdapter] = None,
        temp_dir: Optional[Path] = None,
        debug: bool = False,
    ):
        self.event_bus = event_bus
        self.catalog = catalog
        self.ffprobe_adapter = ffprobe_adapter or FFprobeAdapter()
        self.temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())
        self.debug = debug
        self.logger = logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._cancelled = False

    # -- naming -------------------------------------------------------------

    def build_output_path(self, input_path: Union[str, Path], options: OptionsConfig) -> Path:
        """Final output sits next to the input, named after the options used."""
        input_path = Path(input_path)
        suffix_parts = []
        if options.stabilize:
            suffix_parts.append("_stabilized")
        if options.filters:
            suffix_parts.append("_" + "_".join(options.filters))
        if options.modifiers:
            suffix_parts.append("_" + "_".join(name for name, _ in options.modifiers))
        suffix_parts.append(f"_q{options.quality}_{options.codec.value}")
        return input_path.parent / f"{input_path.stem}{''.join(suffix_parts)}{OUTPUT_EXTENSION}"

    def build_reprocessed_tag(self, options: OptionsConfig) -> str:
        """Human-readable record of the options, stored as container metadata."""
        flags = [
            f"quality={options.quality}",
            f"codec={options.codec.value}",
            f"preset={options.preset.value}",
        ]
        if options.stabilize:
            flags.append("stabilize=true")
        if options.filters:
            flags.append(f"filters={','.join(options.filters)}")
        if options.modifiers:
            flags.append("modifiers=" + ",".join(f"{name}:{value}" for name, value in options.modifiers))
        return "; ".join(flags)

    # -- command building ---------------------------------------------------

    def _resolve_filters_and_modifiers(
        self,
        options: OptionsConfig,
        trf_path: Optional[Path] = None,
    ) -> Tuple[List[str], List[str]]:
        """Returns (extra ffmpeg args, -vf filter chain)."""
        filter_chain: List[str] = []
        extra_args: List[str] = []

        if options.stabilize and trf_path is not None:
            filter_chain.append(
                f"vidstabtransform=input='{_escape_filter_path(trf_path)}':zoom=0:smoothing=10"
            )

        if options.filters:
            selected = [f for f in self.catalog.filters() if f.short_name in options.filters]
            missing = set(options.filters) - {f.short_name for f in selected}
            for name in sorted(missing):
                self.logger.warning(f"Unknown filter '{name}' ignored")
            # Stable sort keeps catalog order for equal priorities
            for video_filter in sorted(selected, key=lambda f: f.priority):
                filter_chain.append(video_filter.code)

        for short_name, value in options.modifiers:
            modifier = self.catalog.modifier_by_name(short_name)
            if modifier is None:
                self.logger.warning(f"Unknown modifier '{short_name}' ignored")
                continue
            code = modifier.code.replace("#1", value)
            if code.startswith(VF_PREFIX):
                filter_chain.append(code[len(VF_PREFIX):])
            else:
                try:
                    extra_args.extend(shlex.split(code))
                except ValueError as e:
                    raise TranscodeError(f"Failed to parse modifier '{short_name}' code: {e}") from e

        return extra_args, filter_chain

    def build_stabilize_command(self, input_path: Union[str, Path], trf_path: Path) -> List[str]:
        """Pass 1 of 2: motion analysis into a .trf file, no output video."""
        return [
            "ffmpeg",
            "-y",
            "-i", str(input_path),
            "-vf", f"vidstabdetect=stepsize=32:shakiness=10:accuracy=15:result='{_escape_filter_path(trf_path)}'",
            "-f", "null",
            "-",
        ]

    def build_command(
        self,
        input_path: Union[str, Path],
        output_path: Path,
        options: OptionsConfig,
        trf_path: Optional[Path] = None,
    ) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        cmd = ["ffmpeg", "-y"]
        if options.hwaccel != HwAccel.NONE:
            cmd.extend(["-hwaccel", options.hwaccel.value])
        cmd.extend(["-i", str(input_path)])

        cmd.extend([
            "-map_metadata", "0",  # Copy global metadata
            "-c:a", "copy",
            "-codec:v", options.codec.value,
            "-qmin", "20",
        ])

        extra_args, filter_chain = self._resolve_filters_and_modifiers(options, trf_path)
        cmd.extend(extra_args)
        if filter_chain:
            cmd.extend(["-vf", ",".join(filter_chain)])

        cmd.extend([
            "-qmax", str(options.quality),
            "-preset", options.preset.value,
            "-movflags", "+faststart",
            "-metadata", f"{REPROCESSED_TAG}={self.build_reprocessed_tag(options)}",
            "-metadata", f"comment={LEGACY_COMMENT_MARKER}",
            str(output_path),
        ])
        return cmd

    # -- execution ----------------------------------------------------------

    def _log(self, path: str, message: str) -> None:
        self.event_bus.publish(LogEvent(path=path, message=message))

    def _run(self, cmd: List[str], log_path: str) -> int:
        """Runs one ffmpeg process, streaming stderr lines as LogEvents."""
        with self._lock:
            if self._cancelled:
                raise TranscodeError("Cancelled before ffmpeg could start")
            try:
                process = subprocess.Popen(
                    cmd,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.PIPE,
                    universal_newlines=True,
                    errors="replace",  # ffmpeg echoes raw metadata bytes
                    bufsize=1,
                )
            except OSError as e:
                raise TranscodeError(f"Failed to start ffmpeg: {e}") from e
            self._process = process

        try:
            if process.stderr is not None:
                for line in process.stderr:
                    self._log(log_path, line.rstrip("\r\n"))
            return process.wait()
        except BaseException:
            # Never leave ffmpeg running behind a failed job
            self._kill(process)
            raise
        finally:
            with self._lock:
                self._process = None

    def _kill(self, process: subprocess.Popen) -> None:
        try:
            if process.poll() is None:
                self.logger.warning("FFMPEG_KILL: terminating ffmpeg after an aborted read")
                process.terminate()
            process.wait(timeout=10)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
        except OSError as e:
            self.logger.error(f"Failed to stop ffmpeg: {e}")

    def process(self, path: str, options: OptionsConfig) -> ProcessingStats:
        """Transcodes one file and returns its size statistics."""
        start_time = time.monotonic()
        input_path = Path(path)
        with self._lock:
            self._cancelled = False

        try:
            original_size = input_path.stat().st_size
        except OSError as e:
            raise TranscodeError(f"Cannot read input {input_path}: {e}") from e

        final_output_path = self.build_output_path(input_path, options)
        temp_output_path = self.temp_dir / f"{input_path.stem}_{uuid.uuid4()}_workinprogress{OUTPUT_EXTENSION}"
        trf_path = self.temp_dir / f"{input_path.stem}_{uuid.uuid4()}.trf" if options.stabilize else None

        if self.debug:
            self.logger.info(f"FFMPEG_START: {input_path.name} -> {final_output_path.name}")

        try:
            if trf_path is not None:
                self._log(path, "Starting Stabilization Pass 1/2...")
                pass1 = self.build_stabilize_command(input_path, trf_path)
                self._log(path, f"Command Pass 1: {' '.join(pass1)}")
                returncode = self._run(pass1, path)
                if returncode != 0:
                    raise TranscodeError(f"Stabilization Pass 1 failed. Status: {returncode}")
                self._log(path, "Stabilization Pass 1 Complete. Starting Pass 2...")

            cmd = self.build_command(input_path, temp_output_path, options, trf_path)
            self._log(path, f"Command: {' '.join(cmd)}")
            if self.debug:
                self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")
            returncode = self._run(cmd, path)
        except TranscodeError:
            self._remove_quietly(temp_output_path)
            raise
        except Exception as e:
            self._remove_quietly(temp_output_path)
            raise TranscodeError(f"FFmpeg run failed: {e}") from e
        finally:
            if trf_path is not None:
                self._remove_quietly(trf_path)

        if returncode != 0:
            self._remove_quietly(temp_output_path)
            if self.debug:
                self.logger.info(f"FFMPEG_END: {input_path.name} status=failed code={returncode}")
            raise TranscodeError(f"FFmpeg failed or was aborted. Status: {returncode}")

        try:
            move_file(temp_output_path, final_output_path)
            new_size = final_output_path.stat().st_size
        except OSError as e:
            self._remove_quietly(temp_output_path)
            raise TranscodeError(f"Failed to move output to {final_output_path}: {e}") from e
        self._copy_file_times(input_path, final_output_path)

        duration_secs = time.monotonic() - start_time

        if options.tag_original:
            self._tag_original(input_path, path)

        if self.debug:
            self.logger.info(f"FFMPEG_END: {input_path.name} status=done elapsed={duration_secs:.2f}s")

        return ProcessingStats(
            duration_secs=duration_secs,
            original_size=original_size,
            new_size=new_size,
            output_path=str(final_output_path),
        )

    def _copy_file_times(self, source: Path, destination: Path) -> None:
        try:
            st = source.stat()
            os.utime(destination, (st.st_atime, st.st_mtime))
        except OSError as e:
            self.logger.warning(f"Failed to copy timestamps to {destination.name}: {e}")

    def _tag_original(self, input_path: Path, log_path: str) -> None:
        """Marks the input as processed by remuxing it with our tag."""
        self._log(log_path, "Tagging original file...")
        temp_tag_path = input_path.parent / f"{input_path.stem}_tagged_temp{OUTPUT_EXTENSION}"
        cmd = [
            "ffmpeg",
            "-y",
            "-i", str(input_path),
            "-c", "copy",
            "-map_metadata", "0",
            "-metadata", f"{REPROCESSED_TAG}={TAGGED_ORIGINAL_VALUE}",
            str(temp_tag_path),
        ]
        try:
            returncode = self._run(cmd, log_path)
        except (TranscodeError, ValueError) as e:
            self._log(log_path, f"Failed to tag original file: {e}")
            self._remove_quietly(temp_tag_path)
            return

        if returncode != 0:
            self._log(log_path, f"Failed to tag original file. Status: {returncode}")
            self._remove_quietly(temp_tag_path)
            return

        try:
            move_file(temp_tag_path, input_path)
        except OSError as e:
            self._log(log_path, f"Failed to replace original file with tagged version: {e}")
            self._remove_quietly(temp_tag_path)
            return
        self._log(log_path, "Original file successfully tagged.")

    def _remove_quietly(self, path: Path) -> None:
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            self.logger.warning(f"Failed to cleanup temp file {path}: {e}")

    # -- control ------------------------------------------------------------

    def cancel(self) -> None:
        """Terminates the ffmpeg process in flight, if any."""
        with self._lock:
            self._cancelled = True
            process = self._process
        if process is None or process.poll() is not None:
            return
        self.logger.info("FFMPEG_CANCEL: terminating current ffmpeg process")
        try:
            process.terminate()
        except OSError as e:
            raise CancelError(f"Failed to terminate ffmpeg: {e}") from e

    def delete(self, path: str) -> None:
        try:
            Path(path).unlink()
        except OSError as e:
            raise DeletionError(f"Failed to delete {path}: {e}") from e

    def check_status(self, path: str) -> StatusCheckResult:
        return self.ffprobe_adapter.check_status(path)
