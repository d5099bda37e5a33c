import subprocess
import json
from pathlib import Path
from typing import Dict, Any, Union
from vidreprocess.domain.errors import StatusCheckError
from vidreprocess.domain.models import StatusCheckResult

REPROCESSED_TAG = "reprocessed"
TAGGED_ORIGINAL_VALUE = "tagged_as_processed"
LEGACY_COMMENT_MARKER = "PROCESSED_BY_VIDREPROCESS"

class FFprobeAdapter:
    """Wrapper around ffprobe to read container tags."""

    def get_format_tags(self, file_path: Union[str, Path]) -> Dict[str, Any]:
        """Executes ffprobe and returns the format-level tags."""
        cmd = [
            "ffprobe",
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            str(file_path)
        ]

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise StatusCheckError(f"Failed to run ffprobe for {file_path}: {e}") from e
        if result.returncode != 0:
            raise StatusCheckError(f"ffprobe failed for {file_path}: {result.stderr}")

        try:
            data = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise StatusCheckError(f"ffprobe returned invalid JSON for {file_path}: {e}") from e

        tags = (data.get("format") or {}).get("tags") or {}
        # Containers disagree on tag case (MOV keys vs. MP4 udta)
        return {str(k).lower(): v for k, v in tags.items()}

    def check_status(self, file_path: Union[str, Path]) -> StatusCheckResult:
        """Classifies a file by the markers a previous run left on it."""
        tags = self.get_format_tags(file_path)

        reprocessed = tags.get(REPROCESSED_TAG)
        if reprocessed is not None:
            if str(reprocessed).strip() == TAGGED_ORIGINAL_VALUE:
                return StatusCheckResult.CONFIRM
            return StatusCheckResult.SKIPPED

        comment = tags.get("comment")
        if isinstance(comment, str) and LEGACY_COMMENT_MARKER in comment:
            return StatusCheckResult.SKIPPED

        return StatusCheckResult.NOT_PROCESSED
