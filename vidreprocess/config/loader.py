import yaml
from pathlib import Path
from .models import AppConfig, OptionsConfig

def load_config(config_path: Path) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model."""
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    # Flat files may put the transcode options at the root
    option_keys = set(OptionsConfig.model_fields)
    flat_options = {k: data.pop(k) for k in list(data) if k in option_keys}
    if flat_options:
        data["options"] = {**flat_options, **(data.get("options") or {})}

    return AppConfig(**data)
