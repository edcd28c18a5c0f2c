"""
JSON Schema validation of models catalog documents.

Static catalogs are written by hand, so they are checked against the bundled
catalog schema before being merged into the generated catalog.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft7Validator, ValidationError

# Module-level logger
logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).parent.parent / "schemas"
CATALOG_SCHEMA_FILE = SCHEMA_DIR / "models-catalog.schema.json"

# Global schema cache
_cached_schema: Optional[Dict[str, Any]] = None


def load_schema() -> Dict[str, Any]:
    """Load the catalog schema, caching it in memory after the first read."""
    global _cached_schema

    if _cached_schema is not None:
        return _cached_schema

    with open(CATALOG_SCHEMA_FILE, "r", encoding="utf-8") as f:
        _cached_schema = json.load(f)
    logger.debug("Loaded models catalog schema from %s", CATALOG_SCHEMA_FILE)
    return _cached_schema


def _format_validation_error(error: ValidationError) -> str:
    """Format a validation error into a readable message."""
    path = " -> ".join(str(p) for p in error.absolute_path) if error.absolute_path else "root"
    return f"[{path}] {error.message}"


def validate_catalog(document: Any) -> Tuple[bool, List[str]]:
    """
    Validate a models catalog document.

    Returns:
        Tuple of (is_valid, list of error messages).
    """
    validator = Draft7Validator(load_schema())
    errors = sorted(validator.iter_errors(document), key=lambda e: [str(p) for p in e.absolute_path])
    if not errors:
        return True, []
    return False, [_format_validation_error(e) for e in errors]
