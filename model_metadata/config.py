import logging
import os
from pathlib import Path
from typing import List, Optional
import tomllib

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


# Base Directory Setup
BASE_DIR = Path(__file__).resolve().parent
OUTPUT_DIR = os.getenv("MODEL_METADATA_OUTPUT_DIR") or "output"
if not os.path.isabs(OUTPUT_DIR):
    OUTPUT_DIR = os.path.abspath(OUTPUT_DIR)

def get_project_metadata() -> tuple[str, str]:
    try:
        pyproject_path = BASE_DIR.parent / "pyproject.toml"
        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)
        return data["project"]["name"], data["project"]["version"]
    except Exception:
        return "model-metadata-collection", "0.3.0"

PROJECT_NAME, PROJECT_VERSION = get_project_metadata()

# Input / output documents
DATA_DIR = os.getenv("MODEL_METADATA_DATA_DIR") or "data"
MODELS_INDEX_PATH = os.getenv("MODEL_METADATA_INDEX") or os.path.join(DATA_DIR, "models-index.yaml")
CATALOG_OUTPUT_PATH = os.getenv("MODEL_METADATA_CATALOG") or os.path.join(DATA_DIR, "models-catalog.yaml")
STATIC_CATALOG_PATH = os.getenv("MODEL_METADATA_STATIC_CATALOG") or "input/supplemental-catalog.yaml"
CATALOG_SOURCE = os.getenv("MODEL_METADATA_CATALOG_SOURCE") or "Red Hat"
EXTRACTION_CONFIG_PATH = os.getenv("MODEL_METADATA_EXTRACTION_CONFIG")

# Worker pool
DEFAULT_MAX_CONCURRENT = 5
MAX_CONCURRENT = int(os.getenv("MODEL_METADATA_MAX_CONCURRENT") or DEFAULT_MAX_CONCURRENT)

# Hugging Face Setup
HF_TOKEN = os.getenv("HF_TOKEN")
HF_COLLECTIONS_OWNER = os.getenv("HF_COLLECTIONS_OWNER") or "RedHatAI"

# OCI registry
REGISTRY_USERNAME = os.getenv("REGISTRY_USERNAME")
REGISTRY_PASSWORD = os.getenv("REGISTRY_PASSWORD")
REGISTRY_TIMEOUT = float(os.getenv("REGISTRY_TIMEOUT") or 30)


DEFAULT_DATE_FORMATS: List[str] = [
    "%m/%d/%Y",   # M/D/YYYY and MM/DD/YYYY
    "%m-%d-%Y",   # M-D-YYYY and MM-DD-YYYY
    "%Y-%m-%d",
    "%d/%m/%Y",   # D/M/YYYY, only reached when the month slot is > 12
    "%d-%m-%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
]

DEFAULT_PLACEHOLDER_TOKENS: List[str] = [
    "n/a", "na", "tbd", "tba", "unknown", "none", "null", "other", "-", "todo",
]


class ExtractionSettings(BaseModel):
    """Tunables for the field extractor, extensible through a YAML file."""
    date_formats: List[str] = Field(default_factory=lambda: list(DEFAULT_DATE_FORMATS))
    placeholder_tokens: List[str] = Field(default_factory=lambda: list(DEFAULT_PLACEHOLDER_TOKENS))
    max_value_length: int = Field(default=500, gt=0)

    def is_placeholder(self, value: str) -> bool:
        lowered = value.strip().lower()
        return any(lowered == token.lower() for token in self.placeholder_tokens)


def load_extraction_settings(path: Optional[str] = None) -> ExtractionSettings:
    """
    Build extraction settings from the defaults plus an optional YAML file.

    The file may list extra ``date_formats`` and ``placeholder_tokens``; they are
    appended after the built-in ones so that the default ordering keeps priority.
    """
    path = path or EXTRACTION_CONFIG_PATH
    settings = ExtractionSettings()
    if not path:
        return settings

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read extraction settings from {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Extraction settings in {path} must be a mapping")

    try:
        extra = ExtractionSettings(
            date_formats=data.get("date_formats") or [],
            placeholder_tokens=data.get("placeholder_tokens") or [],
            max_value_length=data.get("max_value_length", settings.max_value_length),
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid extraction settings in {path}: {e}") from e

    for fmt in extra.date_formats:
        if fmt not in settings.date_formats:
            settings.date_formats.append(fmt)
    for token in extra.placeholder_tokens:
        if token.lower() not in (t.lower() for t in settings.placeholder_tokens):
            settings.placeholder_tokens.append(token)
    settings.max_value_length = extra.max_value_length

    logger.info(f"Loaded extraction settings from {path}")
    return settings
