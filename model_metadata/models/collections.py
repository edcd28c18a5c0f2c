"""
Discovery of validated-model collections on the Hugging Face Hub and the
version index documents written for each of them.
"""
import glob
import logging
import os
import re
from typing import List, Optional, Tuple

from huggingface_hub import HfApi

from ..utils.yaml_utils import load_yaml, write_yaml
from .schemas import ModelIndex, VersionIndex

logger = logging.getLogger(__name__)

VERSION_INDEX_PREFIX = "hugging-face-validated-"

MONTHS = {
    "january": "01", "february": "02", "march": "03", "april": "04",
    "may": "05", "june": "06", "july": "07", "august": "08",
    "september": "09", "october": "10", "november": "11", "december": "12",
}

_SEMVER_TITLE = re.compile(r"\bv(\d+\.\d+(?:\.\d+)?)", re.IGNORECASE)
_MONTH_TITLE = re.compile(r"(" + "|".join(MONTHS) + r")\s+(\d{4})", re.IGNORECASE)


def parse_version_from_title(title: str) -> Optional[str]:
    """
    "Validated Models v1.2" -> "v1.2"; "Validated Models - May 2025" -> "v2025.05".
    Returns None when the title carries no version.
    """
    match = _SEMVER_TITLE.search(title or "")
    if match:
        return "v" + match.group(1)
    match = _MONTH_TITLE.search(title or "")
    if match:
        return f"v{match.group(2)}.{MONTHS[match.group(1).lower()]}"
    return None


def _version_key(version: str) -> Tuple[int, ...]:
    return tuple(int(part) for part in re.findall(r"\d+", version))


def version_index_path(data_dir: str, version: str) -> str:
    return os.path.join(data_dir, f"{VERSION_INDEX_PREFIX}{version.replace('.', '-')}.yaml")


def build_version_index(version: str, model_ids: List[str]) -> VersionIndex:
    return VersionIndex(
        version=version,
        models=[
            ModelIndex(name=model_id, url=f"https://huggingface.co/{model_id}", readme_path=f"/{model_id}/README.md")
            for model_id in model_ids
        ],
    )


class CollectionsService:
    """Writes one version index per validated-models collection."""

    def __init__(self, hf_api: Optional[HfApi] = None, owner: str = "RedHatAI", data_dir: str = "data"):
        self.hf_api = hf_api or HfApi()
        self.owner = owner
        self.data_dir = data_dir

    def discover(self) -> List[Tuple[str, str]]:
        """Return ``(slug, version)`` for every versioned validated-models collection."""
        found = []
        for collection in self.hf_api.list_collections(owner=self.owner, limit=100):
            title = collection.title or ""
            if "validated" not in title.lower():
                continue
            version = parse_version_from_title(title)
            if version is None:
                logger.info(f"Skipping collection without a version: {title}")
                continue
            found.append((collection.slug, version))
        logger.info(f"Discovered {len(found)} validated model collections for {self.owner}")
        return found

    def write_version_indexes(self) -> List[str]:
        written = []
        for slug, version in self.discover():
            try:
                collection = self.hf_api.get_collection(slug)
            except Exception as e:
                logger.warning(f"Error fetching collection {slug}: {e}")
                continue
            model_ids = [item.item_id for item in collection.items if item.item_type == "model"]
            path = version_index_path(self.data_dir, version)
            write_yaml(path, build_version_index(version, model_ids).model_dump())
            logger.info(f"Wrote {len(model_ids)} models to {path}")
            written.append(path)
        return written


def load_latest_version_index(data_dir: str) -> Optional[VersionIndex]:
    """Load the newest version index in ``data_dir``, if any."""
    indexes = []
    for path in glob.glob(os.path.join(data_dir, f"{VERSION_INDEX_PREFIX}*.yaml")):
        try:
            indexes.append(VersionIndex.model_validate(load_yaml(path)))
        except Exception as e:
            logger.warning(f"Skipping unreadable version index {path}: {e}")
    if not indexes:
        return None
    return max(indexes, key=lambda index: _version_key(index.version))
