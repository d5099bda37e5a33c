from enum import Enum
from typing import Any, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator

class Codec(str, Enum):
    LIBX264 = "libx264"
    LIBX265 = "libx265"
    H264 = "h264"
    HEVC = "hevc"
    AV1 = "av1"
    VP9 = "vp9"
    MPEG4 = "mpeg4"

class Preset(str, Enum):
    ULTRAFAST = "ultrafast"
    SUPERFAST = "superfast"
    VERYFAST = "veryfast"
    FASTER = "faster"
    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"
    SLOWER = "slower"
    VERYSLOW = "veryslow"

class HwAccel(str, Enum):
    NONE = "none"
    AUTO = "auto"
    CUDA = "cuda"
    VAAPI = "vaapi"
    QSV = "qsv"
    VIDEOTOOLBOX = "videotoolbox"

class OptionsConfig(BaseModel):
    """Transcode options handed to every job of a run.

    Frozen: edits go through `merge`, which returns a new value, so a snapshot
    taken at run start can never be changed under a job in flight.
    """
    model_config = ConfigDict(frozen=True)

    filters: List[str] = Field(default_factory=list)
    modifiers: List[Tuple[str, str]] = Field(default_factory=list)
    quality: int = Field(default=23, ge=0, le=63)
    codec: Codec = Codec.LIBX264
    preset: Preset = Preset.MEDIUM
    hwaccel: HwAccel = HwAccel.NONE
    tag_original: bool = False
    stabilize: bool = False

    @field_validator('filters')
    @classmethod
    def dedupe_filters(cls, v: List[str]) -> List[str]:
        # Set semantics, insertion order kept for display and output naming
        return list(dict.fromkeys(v))

    @field_validator('modifiers', mode='before')
    @classmethod
    def coerce_modifiers(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return [(str(name), str(value)) for name, value in v.items()]
        return v

    @field_validator('modifiers')
    @classmethod
    def validate_unique_modifiers(cls, v: List[Tuple[str, str]]) -> List[Tuple[str, str]]:
        seen = set()
        for name, _ in v:
            if name in seen:
                raise ValueError(f"Duplicate modifier '{name}'. Each modifier can be used once.")
            seen.add(name)
        return v

    def merge(self, **changes: Any) -> "OptionsConfig":
        """Returns a new, validated OptionsConfig with the given fields replaced."""
        data = self.model_dump()
        data.update({k: v for k, v in changes.items() if v is not None})
        return OptionsConfig(**data)

class CleanupRules(BaseModel):
    delete_originals_if_smaller_output: bool = False
    delete_outputs_if_larger_than_original: bool = True

class GeneralConfig(BaseModel):
    config_dir: Optional[str] = None  # Filter/modifier catalog location
    log_path: Optional[str] = None
    confirm_reprocess: bool = False  # Ask before skipping files that carry our output tag
    debug: bool = False

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    options: OptionsConfig = Field(default_factory=OptionsConfig)
    cleanup: CleanupRules = Field(default_factory=CleanupRules)
