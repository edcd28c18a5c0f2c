import base64
import glob
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..config import CATALOG_SOURCE, ExtractionSettings
from ..utils.text_utils import dedupe, sanitize_reference
from ..utils.validation import validate_catalog
from ..utils.yaml_utils import QuotedString, load_yaml, write_yaml
from .migration import load_record
from .schemas import (
    CatalogArtifact,
    CatalogEntry,
    ExtractedMetadata,
    MetadataValue,
    ModelsCatalog,
)

logger = logging.getLogger(__name__)

METADATA_FILENAME = "metadata.yaml"

ASSETS_DIR = Path(__file__).parent.parent / "assets"
MODEL_LOGO_FILE = ASSETS_DIR / "catalog-model.svg"
VALIDATED_LOGO_FILE = ASSETS_DIR / "catalog-validated_model.svg"
VALIDATED_TAG = "validated"

_logo_cache: Dict[Path, str] = {}


def metadata_path(output_dir: str, reference: str) -> str:
    return os.path.join(output_dir, sanitize_reference(reference), "models", METADATA_FILENAME)


def _to_string(timestamp: Optional[int]) -> Optional[str]:
    return None if timestamp is None else str(timestamp)


def encode_svg_data_uri(svg_path: Path) -> str:
    """Read an SVG file and return it as a base64 data URI."""
    if svg_path not in _logo_cache:
        with open(svg_path, "rb") as f:
            encoded = base64.b64encode(f.read()).decode("ascii")
        _logo_cache[svg_path] = f"data:image/svg+xml;base64,{encoded}"
    return _logo_cache[svg_path]


def determine_logo(tags: List[str]) -> str:
    """Validated models get the validated logo, everything else the default one."""
    if VALIDATED_TAG in tags:
        return encode_svg_data_uri(VALIDATED_LOGO_FILE)
    return encode_svg_data_uri(MODEL_LOGO_FILE)


def to_metadata_value(value: Any) -> MetadataValue:
    """Coerce a stored custom property into the MetadataValue shape."""
    if isinstance(value, MetadataValue):
        return value
    if isinstance(value, dict):
        string_value = value.get("string_value")
        return MetadataValue(
            metadataType=value.get("metadataType") or "MetadataStringValue",
            string_value=string_value if isinstance(string_value, str) else "",
        )
    return MetadataValue(string_value=value if isinstance(value, str) else "")


def to_catalog_entry(record: ExtractedMetadata) -> CatalogEntry:
    """
    Project a metadata record into its catalog form: timestamps as decimal
    strings, tags and validatedOn folded into customProperties, and a logo
    chosen from the tags.
    """
    create_time = _to_string(record.create_time_since_epoch)
    last_update = _to_string(record.last_update_time_since_epoch)
    if record.artifacts:
        first = record.artifacts[0]
        create_time = create_time or _to_string(first.create_time_since_epoch)
        last_update = last_update or _to_string(first.last_update_time_since_epoch)

    custom_properties = {tag: MetadataValue() for tag in record.tags if tag}
    if record.validated_on:
        custom_properties["validated_on"] = MetadataValue(string_value=",".join(record.validated_on))

    artifacts = [
        CatalogArtifact(
            uri=artifact.uri,
            create_time_since_epoch=_to_string(artifact.create_time_since_epoch),
            last_update_time_since_epoch=_to_string(artifact.last_update_time_since_epoch),
            custom_properties={k: to_metadata_value(v) for k, v in artifact.custom_properties.items()},
        )
        for artifact in record.artifacts
    ]

    return CatalogEntry(
        name=record.name,
        provider=record.provider,
        description=record.description,
        readme=record.readme,
        logo=determine_logo(record.tags),
        language=record.language,
        license=record.license,
        license_link=record.license_link,
        tasks=record.tasks,
        create_time_since_epoch=create_time,
        last_update_time_since_epoch=last_update,
        custom_properties=custom_properties,
        artifacts=artifacts,
    )


def _earliest(values: Iterable[Optional[str]]) -> Optional[str]:
    present = [v for v in values if v is not None]
    return min(present, key=int) if present else None


def _latest(values: Iterable[Optional[str]]) -> Optional[str]:
    present = [v for v in values if v is not None]
    return max(present, key=int) if present else None


def merge_entries(group: List[CatalogEntry]) -> CatalogEntry:
    """Consolidate catalog entries that describe the same model."""
    merged = group[0].model_copy(deep=True)

    seen_uris = set()
    artifacts = []
    for entry in group:
        for artifact in entry.artifacts:
            if artifact.uri not in seen_uris:
                seen_uris.add(artifact.uri)
                artifacts.append(artifact)
    merged.artifacts = artifacts

    creates = [e.create_time_since_epoch for e in group] + [a.create_time_since_epoch for a in artifacts]
    updates = [e.last_update_time_since_epoch for e in group] + [a.last_update_time_since_epoch for a in artifacts]
    merged.create_time_since_epoch = _earliest(creates)
    merged.last_update_time_since_epoch = _latest(updates)

    for entry in group[1:]:
        for field in ("provider", "description", "readme", "logo", "license", "license_link"):
            if not getattr(merged, field) and getattr(entry, field):
                setattr(merged, field, getattr(entry, field))
        merged.language = dedupe(merged.language + entry.language)
        merged.tasks = dedupe(merged.tasks + entry.tasks)
        for key, value in entry.custom_properties.items():
            merged.custom_properties.setdefault(key, value)

    logger.info(f"Consolidated {len(group)} entries into '{merged.name}' with {len(artifacts)} artifacts")
    return merged


def deduplicate_entries(entries: List[CatalogEntry]) -> List[CatalogEntry]:
    """Merge entries with the same name (case-insensitive), sort by name, unnamed last."""
    groups: Dict[str, List[CatalogEntry]] = {}
    unnamed = []
    for entry in entries:
        if not entry.name or not entry.name.strip():
            unnamed.append(entry)
            continue
        groups.setdefault(entry.name.strip().lower(), []).append(entry)

    named = [group[0] if len(group) == 1 else merge_entries(group) for group in groups.values()]
    named.sort(key=lambda e: e.name)
    return named + unnamed


def load_static_catalogs(paths: Iterable[str]) -> List[CatalogEntry]:
    """Load hand-maintained catalogs; invalid or missing files are skipped."""
    models: List[CatalogEntry] = []
    for path in paths:
        if not path or not os.path.exists(path):
            logger.info(f"Static catalog not found, skipping: {path}")
            continue
        try:
            document = load_yaml(path)
        except Exception as e:
            logger.warning(f"Unreadable static catalog {path}: {e}")
            continue
        is_valid, errors = validate_catalog(document)
        if not is_valid:
            logger.warning(f"Invalid static catalog {path}: {errors[:5]}")
            continue
        catalog = ModelsCatalog.model_validate(document)
        logger.info(f"Loaded {len(catalog.models)} static models from {path}")
        models.extend(catalog.models)
    return models


def catalog_document(catalog: ModelsCatalog) -> Dict[str, Any]:
    """Serialisable form of the catalog with every string_value force-quoted."""
    def quote(node):
        if isinstance(node, dict):
            return {k: QuotedString(v) if k == "string_value" and isinstance(v, str) else quote(v)
                    for k, v in node.items()}
        if isinstance(node, list):
            return [quote(item) for item in node]
        return node

    return quote(catalog.model_dump(by_alias=True, mode="json"))


class CatalogBuilder:
    """Aggregates persisted records and static catalogs into one models catalog."""

    def __init__(self, output_dir: str, source: str = CATALOG_SOURCE,
                 settings: Optional[ExtractionSettings] = None):
        self.output_dir = output_dir
        self.source = source
        self.settings = settings

    def record_paths(self, references: Optional[Iterable[str]] = None) -> List[str]:
        if references is None:
            pattern = os.path.join(self.output_dir, "*", "models", METADATA_FILENAME)
            return sorted(glob.glob(pattern))
        return [path for path in (metadata_path(self.output_dir, ref) for ref in references)
                if os.path.exists(path)]

    def collect_records(self, references: Optional[Iterable[str]] = None) -> List[ExtractedMetadata]:
        return [load_record(path, self.settings) for path in self.record_paths(references)]

    def build(self, references: Optional[Iterable[str]] = None,
              static_paths: Iterable[str] = ()) -> ModelsCatalog:
        entries = [to_catalog_entry(record) for record in self.collect_records(references)]
        models = deduplicate_entries(entries)
        models.extend(load_static_catalogs(static_paths))
        logger.info(f"Catalog contains {len(models)} models")
        return ModelsCatalog(source=self.source, models=models)

    def write(self, catalog: ModelsCatalog, path: str) -> None:
        write_yaml(path, catalog_document(catalog))
        logger.info(f"Wrote models catalog to {path}")
