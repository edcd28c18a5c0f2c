import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence

from ..config import DEFAULT_MAX_CONCURRENT, HF_TOKEN, OUTPUT_DIR, ExtractionSettings
from ..errors import SchemaNormalizationError
from ..utils.yaml_utils import write_yaml
from .catalog import metadata_path
from .enrichment import EnrichmentEngine
from .extractor import CandidateSet, ModelCardExtractor
from .huggingface import HuggingFaceSource, match_model, normalise_model_id
from .layers import locate_modelcard_layer, read_modelcard
from .migration import load_record
from .registry import RegistryClient, build_registry_data
from .schemas import (
    ConfidenceLevel,
    EnrichmentRecord,
    ExtractedMetadata,
    ModelCardDocument,
    ModelEntry,
    ModelResult,
    ModelType,
    ProcessingStatus,
    RegistryData,
    VersionIndex,
)

logger = logging.getLogger(__name__)

ENRICHMENT_FILENAME = "enrichment.yaml"
MODELCARD_FILENAME = "modelcard.md"
MANIFEST_FILENAME = "manifests.yaml"


class ModelMetadataService:
    """
    Service layer for metadata collection.
    Runs the per-model pipeline (locate, extract, normalize, enrich, persist)
    and drives it over many models with a bounded worker pool.
    """

    def __init__(
        self,
        output_dir: str = OUTPUT_DIR,
        registry_client: Optional[RegistryClient] = None,
        huggingface: Optional[HuggingFaceSource] = None,
        settings: Optional[ExtractionSettings] = None,
        version_index: Optional[VersionIndex] = None,
        hf_token: Optional[str] = HF_TOKEN,
    ):
        self.output_dir = output_dir
        self.settings = settings or ExtractionSettings()
        self.registry = registry_client or RegistryClient()
        self.huggingface = huggingface or HuggingFaceSource(hf_token=hf_token, settings=self.settings)
        self.extractor = ModelCardExtractor(self.settings)
        self.engine = EnrichmentEngine()
        self.version_index = version_index

    # --- single model ---
    def process(self, entry: ModelEntry) -> ModelResult:
        """Run the pipeline for one index entry. Exceptions propagate to the caller."""
        logger.info(f"Processing {entry.type.value} model {entry.uri}")
        if entry.type == ModelType.HF:
            document, registry_data = None, RegistryData()
            hf_model, confidence = normalise_model_id(entry.uri), ConfidenceLevel.HIGH
        else:
            document, registry_data = self._read_image(entry.uri)
            hf_model, confidence = match_model(entry.uri, self.version_index)

        candidates: CandidateSet = self.extractor.extract(document.text) if document else {}
        if document is None:
            logger.warning(f"No model card for {entry.uri}, starting from an empty record")

        hf_candidates = self.huggingface.fetch_candidates(hf_model) if hf_model else {}
        existing = self._load_existing(entry.uri)

        record = self.engine.merge(
            entry.uri,
            modelcard=candidates,
            huggingface=hf_candidates,
            registry=registry_data,
            labels=entry.labels,
            existing=existing,
            huggingface_model=hf_model,
            match_confidence=confidence if hf_model else ConfidenceLevel.NONE,
        )
        path = self._persist(record, document)
        return ModelResult(
            reference=entry.uri,
            status=ProcessingStatus.PROCESSED,
            modelcard_found=document is not None,
            modelcard_fields=ModelCardExtractor.presence_flags(candidates),
            record=record,
            output_path=path,
        )

    def _read_image(self, reference: str):
        inspection = self.registry.inspect(reference)
        located = locate_modelcard_layer(
            inspection.layers,
            lambda descriptor: self.registry.fetch_blob(inspection.reference, descriptor),
        )
        document = None
        if located is not None:
            descriptor, blob = located
            document = read_modelcard(blob, descriptor.media_type)
        return document, build_registry_data(inspection)

    def _load_existing(self, reference: str) -> Optional[ExtractedMetadata]:
        path = metadata_path(self.output_dir, reference)
        if not os.path.exists(path):
            return None
        return load_record(path, self.settings)

    def _persist(self, record: EnrichmentRecord, document: Optional[ModelCardDocument]) -> str:
        path = metadata_path(self.output_dir, record.reference)
        model_dir = os.path.dirname(path)
        write_yaml(path, record.metadata.to_document())
        write_yaml(os.path.join(model_dir, ENRICHMENT_FILENAME), record.provenance_document())
        if document is not None:
            with open(os.path.join(model_dir, MODELCARD_FILENAME), "wb") as f:
                f.write(document.raw_bytes)
        logger.info(f"Saved metadata for {record.reference} to {path}")
        return path

    # --- many models ---
    def _process_isolated(self, entry: ModelEntry) -> ModelResult:
        try:
            return self.process(entry)
        except Exception as e:
            logger.error(f"Failed to process {entry.uri}: {e}", exc_info=True)
            return ModelResult(reference=entry.uri, status=ProcessingStatus.FAILED, error=e)

    def process_models(self, entries: Sequence[ModelEntry], max_workers: int = DEFAULT_MAX_CONCURRENT) -> List[ModelResult]:
        """
        Process every entry with at most ``max_workers`` pipelines in flight.

        One failing model never cancels the others. Results come back in input
        order once every pipeline has finished.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be positive")
        entries = unique_entries(entries)
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            results = list(executor.map(self._process_isolated, entries))

        failed = sum(1 for r in results if not r.ok)
        logger.info(f"Processed {len(results) - failed}/{len(results)} models ({failed} failed)")
        return results

    def write_manifest(self, results: Sequence[ModelResult]) -> str:
        path = os.path.join(self.output_dir, MANIFEST_FILENAME)
        write_yaml(path, {"models": [r.manifest_entry() for r in results]})
        return path


def unique_entries(entries: Sequence[ModelEntry]) -> List[ModelEntry]:
    """Drop repeated references; two pipelines must never write the same output files."""
    seen = set()
    unique = []
    for entry in entries:
        if entry.uri in seen:
            logger.warning(f"Skipping duplicate index entry {entry.uri}")
            continue
        seen.add(entry.uri)
        unique.append(entry)
    return unique


def raise_for_fatal(results: Sequence[ModelResult]) -> None:
    """Re-raise the first schema normalization failure; those stop the whole run."""
    for result in results:
        if isinstance(result.error, SchemaNormalizationError):
            raise result.error


def summarize(results: Sequence[ModelResult]) -> Dict[str, int]:
    return {
        "total": len(results),
        "processed": sum(1 for r in results if r.ok),
        "failed": sum(1 for r in results if not r.ok),
        "with_modelcard": sum(1 for r in results if r.modelcard_found),
    }
