import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..utils.license_utils import get_license_url
from ..utils.text_utils import dedupe, generate_readable_description
from .schemas import (
    METADATA_FIELDS,
    CandidateField,
    ConfidenceLevel,
    DataSource,
    EnrichmentRecord,
    ExtractedMetadata,
    OCIArtifact,
    RegistryData,
)

logger = logging.getLogger(__name__)

# Fields chosen by priority; tags and artifacts are merged separately
PRIORITY_FIELDS = [f for f in METADATA_FIELDS if f not in ("tags", "artifacts")]


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict)):
        return len(value) > 0
    return True


class EnrichmentEngine:
    """
    Merges model card, Hugging Face and registry data into one record.

    For every field independently the first present value wins, in the order
    model card, Hugging Face, registry, generated default. Tags are the
    order-preserving union of all sources and artifacts always come from the
    registry. The engine performs no I/O.
    """

    def merge(
        self,
        reference: str,
        modelcard: Optional[Mapping[str, CandidateField]] = None,
        huggingface: Optional[Mapping[str, CandidateField]] = None,
        registry: Optional[RegistryData] = None,
        labels: Optional[Iterable[str]] = None,
        existing: Optional[ExtractedMetadata] = None,
        huggingface_model: Optional[str] = None,
        match_confidence: ConfidenceLevel = ConfidenceLevel.NONE,
    ) -> EnrichmentRecord:
        modelcard = modelcard or {}
        huggingface = huggingface or {}
        registry = registry or RegistryData()
        labels = list(labels or [])

        values: Dict[str, Any] = {}
        sources: Dict[str, DataSource] = {}

        for field in PRIORITY_FIELDS:
            value, source = self._choose(field, modelcard, huggingface, registry.values)
            values[field] = value
            sources[field] = source

        self._apply_generated_defaults(reference, values, sources)

        values["tags"], sources["tags"] = self._merge_tags(modelcard, huggingface, labels)
        values["artifacts"] = self._merge_artifacts(registry.artifacts, existing)
        sources["artifacts"] = DataSource.REGISTRY if values["artifacts"] else DataSource.NONE

        metadata = ExtractedMetadata(**{k: v for k, v in values.items() if v is not None})
        winners = {k: v.value for k, v in sources.items() if v != DataSource.NONE}
        logger.debug(f"Merged {reference}: {winners}")

        return EnrichmentRecord(
            reference=reference,
            metadata=metadata,
            sources=sources,
            huggingface_model=huggingface_model,
            match_confidence=match_confidence,
        )

    @staticmethod
    def _choose(field: str, modelcard, huggingface, registry_values):
        for candidates, source in ((modelcard, DataSource.MODEL_CARD), (huggingface, DataSource.HUGGINGFACE)):
            candidate = candidates.get(field)
            if candidate is not None and _present(candidate.value):
                return candidate.value, source
        if _present(registry_values.get(field)):
            return registry_values[field], DataSource.REGISTRY
        return None, DataSource.NONE

    @staticmethod
    def _apply_generated_defaults(reference: str, values: Dict[str, Any], sources: Dict[str, DataSource]) -> None:
        if values.get("description") is None:
            description = generate_readable_description(values.get("name") or reference)
            if description:
                values["description"] = description
                sources["description"] = DataSource.GENERATED

        if values.get("license_link") is None and values.get("license"):
            link = get_license_url(values["license"])
            if link:
                values["license_link"] = link
                sources["license_link"] = DataSource.GENERATED

        if values.get("last_update_time_since_epoch") is None and values.get("create_time_since_epoch") is not None:
            values["last_update_time_since_epoch"] = values["create_time_since_epoch"]
            sources["last_update_time_since_epoch"] = DataSource.GENERATED

    @staticmethod
    def _merge_tags(modelcard, huggingface, labels: List[str]):
        contributions = [
            (modelcard.get("tags"), DataSource.MODEL_CARD),
            (huggingface.get("tags"), DataSource.HUGGINGFACE),
        ]
        merged: List[str] = []
        source = DataSource.NONE
        for candidate, candidate_source in contributions:
            if candidate is not None and _present(candidate.value):
                merged.extend(candidate.value)
                if source == DataSource.NONE:
                    source = candidate_source
        if labels:
            merged.extend(labels)
            if source == DataSource.NONE:
                source = DataSource.REGISTRY
        return dedupe(merged), source

    @staticmethod
    def _merge_artifacts(artifacts: List[OCIArtifact], existing: Optional[ExtractedMetadata]) -> List[OCIArtifact]:
        previous = {a.uri: a for a in existing.artifacts} if existing else {}
        merged = []
        for artifact in artifacts:
            earlier = previous.get(artifact.uri)
            if earlier is not None:
                artifact = artifact.model_copy(update={
                    "create_time_since_epoch": artifact.create_time_since_epoch
                    if artifact.create_time_since_epoch is not None else earlier.create_time_since_epoch,
                    "last_update_time_since_epoch": artifact.last_update_time_since_epoch
                    if artifact.last_update_time_since_epoch is not None else earlier.last_update_time_since_epoch,
                })
            merged.append(artifact)
        return merged
