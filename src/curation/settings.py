"""
Configuration settings for the curation module.
"""
import os
from pathlib import Path

from src.curation.models import CurationConfig

# Directories
DATABASE_PATH = Path("data/curation.db")

# Environment variable per CurationConfig field, e.g. CURATION_DUPLICATE_THRESHOLD
ENV_PREFIX = "CURATION_"


def load_config(**overrides) -> CurationConfig:
    """Defaults, then CURATION_* environment variables, then explicit overrides."""
    values = {}
    for name in CurationConfig.model_fields:
        raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
        if raw is not None:
            values[name] = raw
    values.update({k: v for k, v in overrides.items() if v is not None})
    return CurationConfig(**values)


def database_path() -> Path:
    return Path(os.getenv("CURATION_DATABASE_PATH", str(DATABASE_PATH)))
