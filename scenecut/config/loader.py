import yaml
from pathlib import Path
from typing import Optional
from .models import AppConfig

def load_config(config_path: Optional[Path]) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model."""
    if config_path is None:
        return AppConfig()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    # Flat files (threshold: 0.3) are treated as the 'general' section
    if "general" not in data and "encoding" not in data:
        data = {"general": data}

    return AppConfig(**data)
