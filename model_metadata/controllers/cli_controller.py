import logging
import os
from typing import List, Optional

from pydantic import ValidationError

from ..config import (
    CATALOG_OUTPUT_PATH,
    CATALOG_SOURCE,
    DATA_DIR,
    HF_COLLECTIONS_OWNER,
    HF_TOKEN,
    MAX_CONCURRENT,
    MODELS_INDEX_PATH,
    OUTPUT_DIR,
    STATIC_CATALOG_PATH,
    load_extraction_settings,
)
from ..errors import ConfigurationError
from ..models.catalog import CatalogBuilder
from ..models.collections import CollectionsService, load_latest_version_index
from ..models.huggingface import HuggingFaceSource
from ..models.schemas import ModelEntry, ModelsIndex
from ..models.service import ModelMetadataService, raise_for_fatal, summarize
from ..utils.yaml_utils import load_yaml

logger = logging.getLogger(__name__)


def load_models_index(path: str) -> List[ModelEntry]:
    """Read the models index; an unreadable or invalid index stops the run."""
    try:
        document = load_yaml(path) or {}
        return ModelsIndex.model_validate(document).models
    except (OSError, ValidationError) as e:
        raise ConfigurationError(f"Invalid models index {path}: {e}") from e
    except Exception as e:
        raise ConfigurationError(f"Cannot read models index {path}: {e}") from e


class CLIController:
    def __init__(self, output_dir: str = OUTPUT_DIR, data_dir: str = DATA_DIR,
                 extraction_config: Optional[str] = None):
        self.output_dir = output_dir
        self.data_dir = data_dir
        self.settings = load_extraction_settings(extraction_config)

    def update_collections(self) -> List[str]:
        print(f"Discovering validated model collections for {HF_COLLECTIONS_OWNER}...")
        service = CollectionsService(owner=HF_COLLECTIONS_OWNER, data_dir=self.data_dir)
        written = service.write_version_indexes()
        for path in written:
            print(f"  - {path}")
        return written

    def run(
        self,
        index_path: str = MODELS_INDEX_PATH,
        catalog_path: str = CATALOG_OUTPUT_PATH,
        static_catalogs: Optional[List[str]] = None,
        max_concurrent: int = MAX_CONCURRENT,
        update_collections: bool = False,
        skip_huggingface: bool = False,
        catalog_only: bool = False,
        verbose: bool = False,
    ) -> int:
        if verbose:
            logging.getLogger().setLevel(logging.DEBUG)

        static_catalogs = static_catalogs if static_catalogs is not None else [STATIC_CATALOG_PATH]
        builder = CatalogBuilder(self.output_dir, source=CATALOG_SOURCE, settings=self.settings)

        if catalog_only:
            catalog = builder.build(static_paths=static_catalogs)
            builder.write(catalog, catalog_path)
            print(f"\n✅ Catalog with {len(catalog.models)} models written to {catalog_path}")
            return 0

        if update_collections:
            self.update_collections()

        entries = load_models_index(index_path)
        print(f"Processing {len(entries)} models from {index_path} (max {max_concurrent} in parallel)...")

        version_index = None if skip_huggingface else load_latest_version_index(self.data_dir)
        if version_index:
            print(f"  - Matching against Hugging Face index {version_index.version}")

        service = ModelMetadataService(
            output_dir=self.output_dir,
            huggingface=HuggingFaceSource(hf_token=HF_TOKEN, settings=self.settings, enabled=not skip_huggingface),
            settings=self.settings,
            version_index=version_index,
        )
        results = service.process_models(entries, max_workers=max_concurrent)
        manifest_path = service.write_manifest(results)
        raise_for_fatal(results)

        for result in results:
            if result.ok:
                marker = "📄" if result.modelcard_found else "⚪"
                print(f"  {marker} {result.reference}")
            else:
                print(f"  ❌ {result.reference}: {result.error}")

        # every record on disk, so a model that failed this run keeps its last good entry
        catalog = builder.build(static_paths=static_catalogs)
        builder.write(catalog, catalog_path)

        stats = summarize(results)
        print(f"\n✅ Processed {stats['processed']}/{stats['total']} models "
              f"({stats['with_modelcard']} with a model card, {stats['failed']} failed)")
        print(f"   Manifest: {manifest_path}")
        print(f"   Catalog:  {os.path.abspath(catalog_path)} ({len(catalog.models)} models)")
        return 0

