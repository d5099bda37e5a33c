"""Filter and modifier catalog backed by tab-separated files.

The catalog lives in the app config directory as `video_filters.tab` and
`video_commands.tab`. Both are written with built-in defaults the first time
they are needed, so users can extend them by editing the files.
"""

import csv
import logging
from pathlib import Path
from typing import Dict, List, Optional
from pydantic import ValidationError
from vidreprocess.domain.errors import CatalogError
from vidreprocess.domain.models import VideoFilter, VideoModifier

FILTERS_FILENAME = "video_filters.tab"
MODIFIERS_FILENAME = "video_commands.tab"

DEFAULT_FILTERS = """short_name\tlong_name\tpriority\tcode
quart\tquarter size\t10\tscale=iw/4:-1
half\thalve size\t10\tscale=iw/2:-1
thrqts\t3/4 size\t10\tscale=iw*0.75:-1
eighth\t1/8 size\t10\tscale=iw*0.125:-1
denoise\tdenoise default\t-1\thqdn3d=3:3:2:2
denoise_sft\tdenoise soft\t-1\thqdn3d=3:3:2:2
denoise_vsft\tdenoise very soft\t-1\thqdn3d=2:2:1:1
atadenoise\tadaptive temporal averaging denoiser\t-1\tatadenoise
bm3d\tblock-matching 3d denoiser\t-1\tbm3d
nlm\tnon-local means denoiser\t-1\tnlmeans
deshake\tdeshake\t0\tdeshake,crop=in_w-32:in_h-32:16:16
rot+90\trotate +90 degrees\t1\ttranspose=1
rot-90\trotate -90 degrees\t1\ttranspose=2
rot180\trotate 180 degrees\t1\ttranspose=2,transpose=2
sab\tshape adaptive blur\t-2\tsab
w3fdif\tdeinterlace w3fdif\t-10\tw3fdif
sharp\tsharpen\t5\tsmartblur=lr=2.00:ls=-0.90:lt=-5.0:cr=0.5:cs=1.0:ct=1.5
"""

# `#1` is replaced by the modifier value; a `vf:` prefix routes the code into
# the filter chain instead of the argument list.
DEFAULT_MODIFIERS = """short_name\tlong_name\tcode
ss\tstart (secs)\t-ss #1
t\tduration (secs)\t-t #1
crop\tcrop frame (pixels)\tvf:crop=in_w-2*#1:in_h-2*#1:#1:#1
"""


class FilterCatalog:
    """Static list of filters and modifiers, read once per process."""

    def __init__(self, config_dir: Path):
        self.config_dir = Path(config_dir)
        self.logger = logging.getLogger(__name__)
        self._filters: Optional[List[VideoFilter]] = None
        self._modifiers: Optional[List[VideoModifier]] = None

    @property
    def filters_path(self) -> Path:
        return self.config_dir / FILTERS_FILENAME

    @property
    def modifiers_path(self) -> Path:
        return self.config_dir / MODIFIERS_FILENAME

    def ensure_files(self) -> None:
        """Writes the default catalog files if they do not exist yet."""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            if not self.filters_path.exists():
                self.filters_path.write_text(DEFAULT_FILTERS)
                self.logger.info(f"Created default filter catalog: {self.filters_path}")
            if not self.modifiers_path.exists():
                self.modifiers_path.write_text(DEFAULT_MODIFIERS)
                self.logger.info(f"Created default modifier catalog: {self.modifiers_path}")
        except OSError as e:
            raise CatalogError(f"Cannot create catalog files in {self.config_dir}: {e}") from e

    def _read_rows(self, path: Path) -> List[Dict[str, str]]:
        try:
            with open(path, newline='') as f:
                return list(csv.DictReader(f, delimiter='\t'))
        except OSError as e:
            raise CatalogError(f"Cannot read catalog {path}: {e}") from e

    def filters(self) -> List[VideoFilter]:
        if self._filters is None:
            self.ensure_files()
            try:
                self._filters = [VideoFilter(**row) for row in self._read_rows(self.filters_path)]
            except (ValidationError, TypeError) as e:
                raise CatalogError(f"Malformed filter catalog {self.filters_path}: {e}") from e
        return list(self._filters)

    def modifiers(self) -> List[VideoModifier]:
        if self._modifiers is None:
            self.ensure_files()
            try:
                self._modifiers = [VideoModifier(**row) for row in self._read_rows(self.modifiers_path)]
            except (ValidationError, TypeError) as e:
                raise CatalogError(f"Malformed modifier catalog {self.modifiers_path}: {e}") from e
        return list(self._modifiers)

    def filter_by_name(self, short_name: str) -> Optional[VideoFilter]:
        return next((f for f in self.filters() if f.short_name == short_name), None)

    def modifier_by_name(self, short_name: str) -> Optional[VideoModifier]:
        return next((m for m in self.modifiers() if m.short_name == short_name), None)
