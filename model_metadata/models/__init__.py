from .schemas import (
    DataSource,
    ConfidenceLevel,
    CandidateField,
    ExtractedMetadata,
    OCIArtifact,
    EnrichmentRecord,
    ModelsCatalog,
    ModelEntry,
    ModelResult,
)
from .extractor import ModelCardExtractor
from .enrichment import EnrichmentEngine
from .migration import normalize_record, load_record
from .catalog import CatalogBuilder
from .service import ModelMetadataService
