"""
Schema normalizer for persisted metadata records.

Three document shapes have been written over time:

* current: structured artifacts, integer epoch-second timestamps;
* mixed:   structured artifacts, timestamps stored as a number or a string;
* legacy:  artifacts stored as plain URI strings.

``normalize_record`` tries one decoder per shape, in that order, and returns
the first success as a canonical ``ExtractedMetadata``. The source file is
never rewritten.
"""
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, ValidationError

from ..config import ExtractionSettings
from ..errors import SchemaNormalizationError
from ..utils.text_utils import parse_date_to_epoch
from ..utils.yaml_utils import load_yaml
from .schemas import ExtractedMetadata, OCIArtifact

logger = logging.getLogger(__name__)

RawTimestamp = Optional[Union[StrictInt, StrictFloat, StrictStr]]


class TimestampKind(str, Enum):
    ABSENT = "absent"
    INTEGER = "integer"
    RAW_STRING = "raw_string"


def classify_timestamp(value: Any) -> Tuple[TimestampKind, Any]:
    """Tag a stored timestamp with the form it was written in."""
    if value is None:
        return TimestampKind.ABSENT, None
    if isinstance(value, bool):
        raise ValueError(f"boolean is not a timestamp: {value!r}")
    if isinstance(value, int):
        return TimestampKind.INTEGER, value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"fractional timestamp: {value!r}")
        return TimestampKind.INTEGER, int(value)
    if isinstance(value, str):
        if not value.strip():
            return TimestampKind.ABSENT, None
        return TimestampKind.RAW_STRING, value.strip()
    raise ValueError(f"unsupported timestamp type: {type(value).__name__}")


def coerce_timestamp(value: Any, settings: Optional[ExtractionSettings] = None) -> Optional[int]:
    """
    Normalise a mixed-form timestamp to integer seconds.

    Numeric strings become integers and recognised date strings are parsed;
    any other string is rejected with ValueError.
    """
    kind, payload = classify_timestamp(value)
    if kind == TimestampKind.ABSENT:
        return None
    if kind == TimestampKind.INTEGER:
        return payload
    if payload.lstrip("-").isdigit():
        return int(payload)
    parsed = parse_date_to_epoch(payload, settings)
    if parsed is None:
        raise ValueError(f"unrecognised timestamp string: {payload!r}")
    return parsed


class _RecordShape(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[StrictStr] = None
    provider: Optional[StrictStr] = None
    description: Optional[StrictStr] = None
    readme: Optional[StrictStr] = None
    language: Optional[List[StrictStr]] = None
    license: Optional[StrictStr] = None
    licenseLink: Optional[StrictStr] = None
    tags: Optional[List[StrictStr]] = None
    tasks: Optional[List[StrictStr]] = None
    validatedOn: Optional[List[StrictStr]] = None

    def base_fields(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "provider": self.provider,
            "description": self.description,
            "readme": self.readme,
            "language": self.language or [],
            "license": self.license,
            "license_link": self.licenseLink,
            "tags": self.tags or [],
            "tasks": self.tasks or [],
            "validated_on": self.validatedOn or [],
        }


class _StructuredArtifact(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uri: StrictStr
    createTimeSinceEpoch: Optional[StrictInt] = None
    lastUpdateTimeSinceEpoch: Optional[StrictInt] = None
    customProperties: Optional[Dict[str, Any]] = None


class _MixedArtifact(_StructuredArtifact):
    createTimeSinceEpoch: RawTimestamp = None
    lastUpdateTimeSinceEpoch: RawTimestamp = None


class CurrentShape(_RecordShape):
    createTimeSinceEpoch: Optional[StrictInt] = None
    lastUpdateTimeSinceEpoch: Optional[StrictInt] = None
    artifacts: Optional[List[_StructuredArtifact]] = None


class MixedShape(_RecordShape):
    createTimeSinceEpoch: RawTimestamp = None
    lastUpdateTimeSinceEpoch: RawTimestamp = None
    artifacts: Optional[List[_MixedArtifact]] = None


class LegacyShape(_RecordShape):
    createTimeSinceEpoch: RawTimestamp = None
    lastUpdateTimeSinceEpoch: RawTimestamp = None
    artifacts: List[StrictStr] = Field(default_factory=list)


def _artifact(uri: str, created: Optional[int], updated: Optional[int],
              custom_properties: Optional[Dict[str, Any]] = None) -> OCIArtifact:
    # an artifact never updated since creation carries its create time as last update
    return OCIArtifact(
        uri=uri,
        create_time_since_epoch=created,
        last_update_time_since_epoch=updated if updated is not None else created,
        custom_properties=custom_properties or {},
    )


def _decode_current(document: Dict[str, Any], settings: ExtractionSettings) -> ExtractedMetadata:
    shape = CurrentShape.model_validate(document)
    return ExtractedMetadata(
        **shape.base_fields(),
        create_time_since_epoch=shape.createTimeSinceEpoch,
        last_update_time_since_epoch=shape.lastUpdateTimeSinceEpoch,
        artifacts=[
            _artifact(a.uri, a.createTimeSinceEpoch, a.lastUpdateTimeSinceEpoch, a.customProperties)
            for a in shape.artifacts or []
        ],
    )


def _decode_mixed(document: Dict[str, Any], settings: ExtractionSettings) -> ExtractedMetadata:
    shape = MixedShape.model_validate(document)
    return ExtractedMetadata(
        **shape.base_fields(),
        create_time_since_epoch=coerce_timestamp(shape.createTimeSinceEpoch, settings),
        last_update_time_since_epoch=coerce_timestamp(shape.lastUpdateTimeSinceEpoch, settings),
        artifacts=[
            _artifact(
                a.uri,
                coerce_timestamp(a.createTimeSinceEpoch, settings),
                coerce_timestamp(a.lastUpdateTimeSinceEpoch, settings),
                a.customProperties,
            )
            for a in shape.artifacts or []
        ],
    )


def _decode_legacy(document: Dict[str, Any], settings: ExtractionSettings) -> ExtractedMetadata:
    shape = LegacyShape.model_validate(document)
    return ExtractedMetadata(
        **shape.base_fields(),
        create_time_since_epoch=coerce_timestamp(shape.createTimeSinceEpoch, settings),
        last_update_time_since_epoch=coerce_timestamp(shape.lastUpdateTimeSinceEpoch, settings),
        artifacts=[_artifact(uri, None, None) for uri in shape.artifacts],
    )


DECODERS: List[Tuple[str, Callable[[Dict[str, Any], ExtractionSettings], ExtractedMetadata]]] = [
    ("current", _decode_current),
    ("mixed", _decode_mixed),
    ("legacy", _decode_legacy),
]


def normalize_record(document: Any, settings: Optional[ExtractionSettings] = None,
                     origin: str = "<document>") -> ExtractedMetadata:
    """Decode a persisted record in any known shape into the canonical model."""
    settings = settings or ExtractionSettings()
    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise SchemaNormalizationError(f"{origin}: expected a mapping, got {type(document).__name__}")

    failures = []
    for shape_name, decoder in DECODERS:
        try:
            record = decoder(document, settings)
        except (ValidationError, ValueError) as e:
            failures.append(f"{shape_name}: {e.__class__.__name__}")
            continue
        if shape_name != "current":
            logger.info(f"Normalized {shape_name} record {origin}")
        return record

    raise SchemaNormalizationError(f"{origin} matches no known metadata shape ({'; '.join(failures)})")


def load_record(path: str, settings: Optional[ExtractionSettings] = None) -> ExtractedMetadata:
    """Read and normalize a persisted ``metadata.yaml``."""
    try:
        document = load_yaml(path)
    except yaml.YAMLError as e:
        raise SchemaNormalizationError(f"{path} is not valid YAML: {e}") from e
    return normalize_record(document, settings, origin=path)
