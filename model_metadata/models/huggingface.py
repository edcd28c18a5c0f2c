import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from huggingface_hub import HfApi, hf_hub_download
from huggingface_hub.utils import EntryNotFoundError, RepositoryNotFoundError

from ..config import PROJECT_NAME, PROJECT_VERSION, ExtractionSettings
from ..utils.text_utils import (
    TEXT_MAX_LENGTH,
    calculate_similarity,
    dedupe,
    is_valid_value,
    normalize_task,
    parse_timestamp_to_epoch,
)
from .extractor import CandidateSet, ModelCardExtractor
from .schemas import CandidateField, ConfidenceLevel, DataSource, VersionIndex

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE_SIMILARITY = 0.8
MATCH_THRESHOLD = 0.5

LANGUAGE_TAGS = {
    "en", "fr", "de", "es", "it", "pt", "ru", "zh", "ja", "ko", "ar", "hi", "nl", "sv",
    "da", "no", "fi", "pl", "cs", "hu", "tr", "he", "th", "vi", "id", "ms", "tl", "sw",
}

TASK_TAGS = {
    "text-generation": "text-generation",
    "text2text-generation": "text-generation",
    "text-to-text-generation": "text-generation",
    "conversational": "text-generation",
    "summarization": "text-generation",
    "translation": "text-generation",
    "fill-mask": "text-generation",
    "feature-extraction": "text-generation",
    "text-classification": "text-classification",
    "token-classification": "text-classification",
    "zero-shot-classification": "text-classification",
    "question-answering": "question-answering",
    "table-question-answering": "question-answering",
    "visual-question-answering": "question-answering",
    "multiple-choice": "question-answering",
    "image-classification": "image-classification",
    "image-to-text": "image-to-text",
    "image-text-to-text": "image-text-to-text",
    "image-to-image": "image-to-image",
    "sentence-similarity": "sentence-similarity",
    "text-ranking": "text-ranking",
    "any-to-any": "any-to-any",
    "text-to-video": "text-to-video",
    "video-to-video": "video-to-video",
    "automatic-speech-recognition": "automatic-speech-recognition",
}

LICENSE_TAGS = {"llama2", "llama3", "llama3.1", "llama3.2", "llama3.3", "llama4",
                "apache-2.0", "mit", "gpl-3.0", "bsd-3-clause"}

# Hub bookkeeping tags that say nothing about the model itself
IGNORED_TAG_PREFIXES = ("license:", "arxiv:", "base_model:", "dataset:", "region:", "doi:", "endpoints_")


def parse_tags_for_structured_data(tags: Iterable[str]) -> Tuple[List[str], Optional[str], List[str]]:
    """Pull languages, a license and normalised tasks out of Hugging Face tags."""
    languages: List[str] = []
    license_value: Optional[str] = None
    tasks: List[str] = []

    for raw in tags or []:
        tag = raw.strip().lower()
        if tag.startswith("license:"):
            extracted = tag[len("license:"):]
            if extracted != "other":
                license_value = extracted
            continue
        if tag in LICENSE_TAGS:
            if license_value in (None, "other"):
                license_value = tag
            continue
        if tag in LANGUAGE_TAGS:
            languages.append(tag)
            continue
        if tag in TASK_TAGS and TASK_TAGS[tag] not in tasks:
            tasks.append(TASK_TAGS[tag])

    return dedupe(languages), license_value, tasks


def filter_descriptive_tags(tags: Iterable[str]) -> List[str]:
    """Keep tags worth showing in a catalog: no hub bookkeeping and no language codes."""
    kept = []
    for tag in tags or []:
        lowered = tag.strip().lower()
        if not lowered or lowered.startswith(IGNORED_TAG_PREFIXES) or lowered in LANGUAGE_TAGS:
            continue
        kept.append(tag.strip())
    return dedupe(kept)


def normalise_model_id(raw_id: str) -> str:
    """Reduce a Hugging Face URL to ``owner/name``."""
    if raw_id.startswith(("http://", "https://")):
        path = urlparse(raw_id).path.lstrip("/")
        parts = path.split("/")
        if len(parts) >= 2:
            return "/".join(parts[:2])
        return path
    return raw_id.strip().strip("/")


def match_model(reference: str, index: Optional[VersionIndex]) -> Tuple[Optional[str], ConfidenceLevel]:
    """Find the index model whose name is most similar to a registry reference."""
    if index is None or not index.models:
        return None, ConfidenceLevel.NONE

    best_name, best_score = None, 0.0
    for model in index.models:
        score = calculate_similarity(reference, model.name)
        if score > best_score:
            best_name, best_score = model.name, score

    if best_score >= HIGH_CONFIDENCE_SIMILARITY:
        return best_name, ConfidenceLevel.HIGH
    if best_score >= MATCH_THRESHOLD:
        return best_name, ConfidenceLevel.MEDIUM
    logger.debug(f"No Hugging Face match for {reference} (best {best_name}: {best_score:.2f})")
    return None, ConfidenceLevel.NONE


class HuggingFaceSource:
    """
    External enrichment source backed by the Hugging Face Hub.

    Any API failure degrades to an empty candidate set; the caller never sees
    a Hub exception.
    """

    def __init__(self, hf_token: Optional[str] = None, hf_api: Optional[HfApi] = None,
                 settings: Optional[ExtractionSettings] = None, enabled: bool = True):
        self.hf_token = hf_token
        self.enabled = enabled
        self.hf_api = hf_api or HfApi(token=hf_token, library_name=PROJECT_NAME, library_version=PROJECT_VERSION)
        self.extractor = ModelCardExtractor(settings)

    def fetch_candidates(self, model_id: str) -> CandidateSet:
        if not self.enabled:
            return {}
        model_id = normalise_model_id(model_id)
        model_info = self._fetch_model_info(model_id)
        if model_info is None:
            return {}

        readme = self._fetch_readme(model_id)
        readme_candidates = self.extractor.extract(readme) if readme else {}
        return self._build_candidates(model_id, model_info, readme_candidates)

    def _fetch_model_info(self, model_id: str) -> Optional[Any]:
        try:
            return self.hf_api.model_info(model_id)
        except Exception as e:
            logger.warning(f"Error fetching model info for {model_id}: {e}")
            return None

    def _fetch_readme(self, model_id: str) -> Optional[str]:
        try:
            path = hf_hub_download(repo_id=model_id, filename="README.md", token=self.hf_token)
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                return f.read()
        except (RepositoryNotFoundError, EntryNotFoundError):
            logger.info(f"No README for {model_id}")
        except Exception as e:
            logger.warning(f"Error fetching README for {model_id}: {e}")
        return None

    @staticmethod
    def _card_data(model_info: Any) -> Dict[str, Any]:
        card_data = getattr(model_info, "card_data", None) or getattr(model_info, "cardData", None)
        if card_data is None:
            return {}
        if hasattr(card_data, "to_dict"):
            return card_data.to_dict()
        return dict(card_data) if isinstance(card_data, dict) else {}

    def _acceptable(self, field: str, value: str) -> bool:
        # the README is kept verbatim; descriptions may span lines
        if field == "readme":
            return bool(value.strip())
        if field == "description":
            return is_valid_value(value, 10, TEXT_MAX_LENGTH, settings=self.extractor.settings, multiline=True)
        return is_valid_value(value, settings=self.extractor.settings)

    def _build_candidates(self, model_id: str, model_info: Any, readme: CandidateSet) -> CandidateSet:
        candidates: CandidateSet = {}

        def put(field: str, value: Any, method: str) -> None:
            if field in candidates or value is None or value == [] or value == "":
                return
            if isinstance(value, str) and not self._acceptable(field, value):
                return
            candidates[field] = CandidateField(value=value, source=DataSource.HUGGINGFACE, extraction_method=method)

        card = self._card_data(model_info)
        tags = list(getattr(model_info, "tags", None) or [])
        tag_languages, tag_license, tag_tasks = parse_tags_for_structured_data(tags)

        # README values first; they are the richest source
        for field, candidate in readme.items():
            put(field, candidate.value, f"readme_{candidate.extraction_method}")

        put("name", model_id.split("/")[-1], "model_id")
        put("provider", getattr(model_info, "author", None) or model_id.split("/")[0], "api_author")
        put("license", card.get("license_name") or card.get("license"), "card_data")
        put("license", tag_license, "tags")
        put("license_link", card.get("license_link"), "card_data")

        card_languages = card.get("language")
        if isinstance(card_languages, str):
            card_languages = [card_languages]
        put("language", dedupe(card_languages or []), "card_data")
        put("language", tag_languages, "tags")

        pipeline_tag = getattr(model_info, "pipeline_tag", None) or card.get("pipeline_tag")
        if pipeline_tag:
            put("tasks", [normalize_task(pipeline_tag)], "pipeline_tag")
        put("tasks", tag_tasks, "tags")

        descriptive = filter_descriptive_tags(tags + list(card.get("tags") or []))
        if "tags" in candidates:
            descriptive = dedupe(list(candidates["tags"].value) + descriptive)
            del candidates["tags"]
        put("tags", descriptive, "tags")

        put("create_time_since_epoch", parse_timestamp_to_epoch(getattr(model_info, "created_at", None)), "api_created_at")
        put("last_update_time_since_epoch", parse_timestamp_to_epoch(getattr(model_info, "last_modified", None)), "api_last_modified")

        logger.info(f"Hugging Face candidates for {model_id}: {sorted(candidates)}")
        return candidates
