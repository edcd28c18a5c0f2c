from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Enums ---
class DataSource(str, Enum):
    """Enumeration of data sources for provenance tracking, highest priority first"""
    MODEL_CARD = "modelcard"
    HUGGINGFACE = "huggingface"
    REGISTRY = "registry"
    GENERATED = "generated"
    NONE = "none"

class ConfidenceLevel(str, Enum):
    """Confidence of a registry reference to Hugging Face model match"""
    HIGH = "high"        # similarity >= 0.8
    MEDIUM = "medium"    # similarity >= 0.5
    NONE = "none"        # no match

class ModelType(str, Enum):
    OCI = "oci"
    HF = "hf"


# --- internal Models ---
class CandidateField(BaseModel):
    """A single candidate value with the source and method that produced it"""
    value: Any
    source: DataSource
    extraction_method: str

    def __str__(self):
        return f"{self.value} (source: {self.source.value}, method: {self.extraction_method})"

class BlobDescriptor(BaseModel):
    """A content blob listed in an image manifest"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    digest: str
    media_type: str = Field(default="", alias="mediaType")
    size: int = 0
    annotations: Dict[str, str] = Field(default_factory=dict)

class ModelCardDocument(BaseModel):
    filename: str
    raw_bytes: bytes

    @property
    def text(self) -> str:
        return self.raw_bytes.decode("utf-8", errors="replace")


# --- Persisted records ---
class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

class OCIArtifact(_CamelModel):
    uri: str
    create_time_since_epoch: Optional[int] = Field(default=None, alias="createTimeSinceEpoch")
    last_update_time_since_epoch: Optional[int] = Field(default=None, alias="lastUpdateTimeSinceEpoch")
    custom_properties: Dict[str, Any] = Field(default_factory=dict, alias="customProperties")

class ExtractedMetadata(_CamelModel):
    """Canonical per-model metadata record"""
    name: Optional[str] = None
    provider: Optional[str] = None
    description: Optional[str] = None
    readme: Optional[str] = None
    language: List[str] = Field(default_factory=list)
    license: Optional[str] = None
    license_link: Optional[str] = Field(default=None, alias="licenseLink")
    tags: List[str] = Field(default_factory=list)
    tasks: List[str] = Field(default_factory=list)
    create_time_since_epoch: Optional[int] = Field(default=None, alias="createTimeSinceEpoch")
    last_update_time_since_epoch: Optional[int] = Field(default=None, alias="lastUpdateTimeSinceEpoch")
    validated_on: List[str] = Field(default_factory=list, alias="validatedOn")
    artifacts: List[OCIArtifact] = Field(default_factory=list)

# Attribute names of every field that carries provenance
METADATA_FIELDS = [
    "name", "provider", "description", "readme", "language", "license", "license_link",
    "tags", "tasks", "create_time_since_epoch", "last_update_time_since_epoch",
    "validated_on", "artifacts",
]

def field_alias(field_name: str) -> str:
    return ExtractedMetadata.model_fields[field_name].alias or field_name

class RegistryData(BaseModel):
    """Values derived from the image itself: manifest annotations, config and artifacts"""
    values: Dict[str, Any] = Field(default_factory=dict)
    artifacts: List[OCIArtifact] = Field(default_factory=list)

class EnrichmentRecord(BaseModel):
    """A merged record plus where every field came from"""
    reference: str
    metadata: ExtractedMetadata
    sources: Dict[str, DataSource] = Field(default_factory=dict)
    huggingface_model: Optional[str] = None
    match_confidence: ConfidenceLevel = ConfidenceLevel.NONE

    def provenance_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"reference": self.reference}
        if self.huggingface_model:
            doc["huggingface_model"] = self.huggingface_model
            doc["match_confidence"] = self.match_confidence.value
        doc["data_sources"] = {field_alias(k): v.value for k, v in self.sources.items()}
        return doc


# --- Catalog ---
class MetadataValue(BaseModel):
    metadataType: str = "MetadataStringValue"
    string_value: str = ""

class CatalogArtifact(_CamelModel):
    uri: str
    create_time_since_epoch: Optional[str] = Field(default=None, alias="createTimeSinceEpoch")
    last_update_time_since_epoch: Optional[str] = Field(default=None, alias="lastUpdateTimeSinceEpoch")
    custom_properties: Dict[str, MetadataValue] = Field(default_factory=dict, alias="customProperties")

class CatalogEntry(_CamelModel):
    name: Optional[str] = None
    provider: Optional[str] = None
    description: Optional[str] = None
    readme: Optional[str] = None
    logo: Optional[str] = None
    language: List[str] = Field(default_factory=list)
    license: Optional[str] = None
    license_link: Optional[str] = Field(default=None, alias="licenseLink")
    tasks: List[str] = Field(default_factory=list)
    create_time_since_epoch: Optional[str] = Field(default=None, alias="createTimeSinceEpoch")
    last_update_time_since_epoch: Optional[str] = Field(default=None, alias="lastUpdateTimeSinceEpoch")
    custom_properties: Dict[str, MetadataValue] = Field(default_factory=dict, alias="customProperties")
    artifacts: List[CatalogArtifact] = Field(default_factory=list)

class ModelsCatalog(BaseModel):
    source: str
    models: List[CatalogEntry] = Field(default_factory=list)


# --- Inputs ---
class ModelEntry(BaseModel):
    type: ModelType = ModelType.OCI
    uri: str
    labels: List[str] = Field(default_factory=list)

class ModelsIndex(BaseModel):
    models: List[ModelEntry] = Field(default_factory=list)

class ModelIndex(BaseModel):
    name: str
    url: str
    readme_path: str

class VersionIndex(BaseModel):
    version: str
    models: List[ModelIndex] = Field(default_factory=list)


# --- Pipeline results ---
class ProcessingStatus(str, Enum):
    PROCESSED = "processed"
    FAILED = "failed"

class ModelResult(BaseModel):
    """Outcome of one pipeline instance"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    reference: str
    status: ProcessingStatus
    modelcard_found: bool = False
    modelcard_fields: Dict[str, bool] = Field(default_factory=dict)
    record: Optional[EnrichmentRecord] = None
    output_path: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.status == ProcessingStatus.PROCESSED

    def manifest_entry(self) -> Dict[str, Any]:
        entry: Dict[str, Any] = {
            "ref": self.reference,
            "status": self.status.value,
            "modelcard": {"present": self.modelcard_found, "metadata": dict(self.modelcard_fields)},
        }
        if self.error is not None:
            entry["error"] = f"{type(self.error).__name__}: {self.error}"
        return entry
