import logging
import shutil
from pathlib import Path
from typing import Optional

LOG_FILENAME = "vidreprocess.log"
# Runs execute on the "vidreprocess-run" worker thread; Ctrl+C handling stays on MainThread
LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(threadName)s] %(name)s - %(message)s'
REQUIRED_TOOLS = ("ffmpeg", "ffprobe")


def setup_logging(log_dir: Path, debug: bool = False, log_path: Optional[Path] = None) -> logging.Logger:
    """Configures the root logger to write vidreprocess.log.

    The file is written as UTF-8. Also records where ffmpeg and ffprobe were
    found on PATH, or warns when they are missing.

    Args:
        log_dir: Directory holding the log file (the app config dir by default)
        debug: DEBUG level, which adds engine command lines and timings
        log_path: Explicit log file, overrides log_dir
    """
    log_file = Path(log_path) if log_path else (Path(log_dir) / LOG_FILENAME)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.FileHandler(log_file, encoding="utf-8")],
        force=True
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_file} (debug={'ON' if debug else 'OFF'})")
    for tool in REQUIRED_TOOLS:
        location = shutil.which(tool)
        if location:
            logger.info(f"{tool}: {location}")
        else:
            logger.warning(f"{tool} not found on PATH; processing will fail")

    return logger
